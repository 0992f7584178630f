"""starkbot-cli - terminal client for Starkbot instances."""

__version__ = "0.3.1"
