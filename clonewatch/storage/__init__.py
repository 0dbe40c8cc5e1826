"""Storage modules for CloneWatch."""

from .database import Database
from .evidence import EvidenceStore

__all__ = ["Database", "EvidenceStore"]
