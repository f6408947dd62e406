"""Local HTTPS single-file upload server."""

__version__ = "1.0.0"
