"""scafalra - cache GitHub repository subtrees as named project templates."""

__version__ = "1.4.0"

__all__ = ["__version__"]
