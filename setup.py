from setuptools import setup, find_packages

setup(
    name="kapalbhati-tracker",
    version="0.1.0",
    description="Real-time breath counting client streaming microphone audio to an analysis service",
    author="",
    python_requires=">=3.9",
    packages=find_packages(include=["kapalbhati", "kapalbhati.*"]),
    install_requires=[
        "sounddevice>=0.4.6",
        "numpy>=1.21.0",
        "rich>=12.5.0",
        "pyyaml>=6.0.0",
        "blinker>=1.6",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "kapalbhati=kapalbhati.main:main",
        ],
    },
)
