"""Occurrence records: model, formatting, persistence and indexing."""

from bee_atlas.occurrences.models import HEADER, InsertResult, Occurrence

__all__ = ["HEADER", "InsertResult", "Occurrence"]
