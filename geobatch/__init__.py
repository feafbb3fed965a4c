"""geobatch - resumable batch geocoding for tabular datasets."""

__version__ = "0.1.0"
