"""Event registration and QR check-in portal."""

__version__ = "1.0.0"
