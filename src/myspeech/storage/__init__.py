"""Generated audio artifacts: naming, atomic writes, retention."""
from .artifacts import ArtifactStore

__all__ = ["ArtifactStore"]
