"""Remote filesystem over HTTP with live change notifications."""

__version__ = "0.1.0"
