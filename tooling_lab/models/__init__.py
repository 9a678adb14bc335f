"""Database models."""

from tooling_lab.models.document import Collection, StoredDocument

__all__ = ["Collection", "StoredDocument"]
