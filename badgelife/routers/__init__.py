"""Router package for the identification API."""

from . import embeddings, health, identify  # noqa: F401

__all__ = ["embeddings", "health", "identify"]
