"""Cloud asset inventory sync with an asynchronous task queue."""

__version__ = "0.1.0"
