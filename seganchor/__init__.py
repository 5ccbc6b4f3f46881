"""Segmentation-mask anchoring: decode, synthesize, color and anchor instance masks."""

__version__ = "0.1.0"
