"""Encode setFeePercentage call data and run it against a development chain"""

__version__ = "0.1.0"
