"""Local cache and background sync engine for a Spotify music library."""

__version__ = "0.1.0"
