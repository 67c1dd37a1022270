"""Client library and CLI for the Triton CloudAPI."""

__version__ = "0.4.0"
