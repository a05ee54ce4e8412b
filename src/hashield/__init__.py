"""hashield: session-key transaction pipeline with pooled funding and hash-locked escrow settlement."""

__version__ = "0.1.0"
