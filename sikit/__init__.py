"""Buffered streams, DB-API row scanning, HMAC helpers and a thread worker pool."""

__version__ = "0.1.0"