"""Exception definitions for the Kapalbhati tracker client."""


class KapalbhatiError(Exception):
    """Base exception class for Kapalbhati tracker errors."""

    pass


class ConfigurationError(KapalbhatiError):
    """Raised when the configuration file cannot be loaded."""

    pass


class CaptureError(KapalbhatiError):
    """Raised when the microphone cannot be acquired."""

    pass


class PermissionDenied(CaptureError):
    """Raised when the operating system refuses microphone access."""

    pass


class DeviceUnavailable(CaptureError):
    """Raised when no usable input device exists or it rejects the constraints."""

    pass


class TransportError(KapalbhatiError):
    """Raised when the analysis service connection fails."""

    pass


class MalformedPayload(KapalbhatiError):
    """Raised when an inbound results message cannot be decoded."""

    pass
