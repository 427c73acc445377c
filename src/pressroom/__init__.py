"""Static site build and AT Protocol mirroring for a markdown blog."""

__version__ = "0.1.0"
