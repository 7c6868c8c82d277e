"""In-memory graph store."""

from .store import GraphStore

__all__ = ["GraphStore"]
