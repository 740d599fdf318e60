"""Durable storage for the journal."""

from .store import JournalStore

__all__ = ["JournalStore"]
