"""Owner-only chat bot that streams a local coding assistant into a DM."""

__version__ = "0.1.0"
