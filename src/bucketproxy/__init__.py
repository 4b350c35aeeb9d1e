"""Plain HTTP gateway in front of an object storage backend."""

__version__ = "0.1.0"
