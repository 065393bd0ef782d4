"""Bronze to Silver to Gold cleansing pipeline for hotel booking records."""

__version__ = "0.1.0"
