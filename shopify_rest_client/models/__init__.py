"""Data models shared by the client."""

from .request import RequestOptions

__all__ = ["RequestOptions"]
