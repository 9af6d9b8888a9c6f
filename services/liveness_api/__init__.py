"""Liveness HTTP API service."""

from .server import LivenessApiServer, MalformedRequest

__all__ = ["LivenessApiServer", "MalformedRequest"]
