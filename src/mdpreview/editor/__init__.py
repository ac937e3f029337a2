"""Editor-side models: document snapshots and markdown syntax helpers."""

from . import document_model

__all__ = ["document_model"]
