"""Float to signed 16-bit PCM conversion."""

from typing import Sequence, Union

import numpy as np

from ..models.audio import AudioFrame, EncodedFrame

PCM_SCALE = 32767
PCM_MIN = -32768
PCM_MAX = 32767


class PCMEncoder:
    """Converts float audio frames to little-endian int16 PCM.

    Each sample becomes ``clamp(round(v * 32767), -32768, 32767)``. Values
    outside [-1.0, 1.0] are clamped rather than wrapped; NaN encodes as 0.
    """

    @staticmethod
    def encode_samples(samples: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
        """Encode a sequence of float samples.

        Args:
            samples: Float samples, nominally in [-1.0, 1.0]

        Returns:
            numpy array of little-endian int16 with the same length and order
        """
        values = np.asarray(samples, dtype=np.float64)
        scaled = np.rint(np.nan_to_num(values, nan=0.0) * PCM_SCALE)
        return np.clip(scaled, PCM_MIN, PCM_MAX).astype("<i2")

    def encode(self, frame: AudioFrame) -> EncodedFrame:
        """Encode one captured frame."""
        return EncodedFrame(
            samples=self.encode_samples(frame.samples),
            sequence_number=frame.sequence_number,
        )
