"""Gemini proxy for I2P: forwards Gemini requests over SAM v3 streams."""

__version__ = "0.1.0"
