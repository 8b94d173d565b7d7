"""Terminal dashboard that tails node logfiles and charts their metrics."""

__version__ = "0.1.0"

__all__ = ["__version__"]
