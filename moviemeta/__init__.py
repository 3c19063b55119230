"""Camera calibration lookup, exiftool-based photo and movie metadata extraction, and maker note decoding."""

__version__ = "0.1.0"