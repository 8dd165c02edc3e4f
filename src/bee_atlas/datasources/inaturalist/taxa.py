"""
Plant taxon cache.

Observation taxa carry ``min_species_ancestry``, a comma-joined list of
ancestor ids. ``taxa.json`` maps the ids of saved ranks to names so the
ancestry resolves without an API call per observation::

    {"211194": {"rank": "phylum", "name": "Tracheophyta"}, ...}
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from bee_atlas.datasources.inaturalist.cache import JsonCache
from bee_atlas.reference.inat import SAVED_TAXON_RANKS, SPECIES_OR_LOWER_RANKS

if TYPE_CHECKING:
    from pathlib import Path

    from bee_atlas.datasources.inaturalist.client import InatClient

logger = logging.getLogger(__name__)


@dataclass
class PlantAncestry:
    phylum: str = ""
    order: str = ""
    family: str = ""
    genus: str = ""
    species: str = ""

    def lowest_rank(self) -> str:
        """Most specific rank with a name, or ""."""
        for rank in reversed(SAVED_TAXON_RANKS):
            if getattr(self, rank):
                return rank
        return ""

    def as_occurrence_fields(self, taxon_rank: str = "") -> dict[str, str]:
        """Plant taxonomy columns of an occurrence."""
        return {
            "phylum_plant": self.phylum,
            "order_plant": self.order,
            "family_plant": self.family,
            "genus_plant": self.genus,
            "species_plant": self.species,
            "taxon_rank_plant": taxon_rank or self.lowest_rank(),
        }


class TaxaCache(JsonCache):
    """Resolves observation taxa to their plant ancestry."""

    def __init__(self, path: Path, client: InatClient) -> None:
        super().__init__(path)
        self.client = client

    def plant_ancestry(self, taxon: dict[str, Any] | None) -> PlantAncestry:
        ancestry = PlantAncestry()
        if not taxon:
            return ancestry

        for ancestor_id in _ancestor_ids(taxon):
            ancestor = self.data.get(ancestor_id)
            if ancestor and ancestor.get("rank") in SAVED_TAXON_RANKS:
                setattr(ancestry, ancestor["rank"], ancestor.get("name") or "")

        rank = taxon.get("rank") or ""
        name = taxon.get("name") or ""
        if name and rank in SPECIES_OR_LOWER_RANKS:
            ancestry.species = name
        if name and rank in SAVED_TAXON_RANKS:
            setattr(ancestry, rank, name)
        return ancestry

    def taxon_names(self, taxon_ids: Iterable[int | str]) -> list[str]:
        names = []
        for taxon_id in taxon_ids:
            entry = self.data.get(str(taxon_id))
            if entry and entry.get("name"):
                names.append(entry["name"])
        return names

    def unknown_ids(self, observations: Iterable[dict[str, Any]]) -> list[str]:
        unknown: dict[str, None] = {}
        for obs in observations:
            taxon = obs.get("taxon") or {}
            synonyms = [str(i) for i in taxon.get("current_synonymous_taxon_ids") or ()]
            for taxon_id in [*_ancestor_ids(taxon), *synonyms]:
                if taxon_id not in self:
                    unknown[taxon_id] = None
        return list(unknown)

    def update_from_observations(
        self,
        observations: Iterable[dict[str, Any]],
        on_progress: Callable[[float], None] | None = None,
    ) -> int:
        """Fetch and cache saved-rank taxa referenced by observations.

        Returns:
            Number of taxa added.
        """
        unknown = self.unknown_ids(observations)
        added = 0
        if unknown:
            for taxon in self.client.fetch_taxa_by_ids(unknown, on_progress):
                if taxon.get("rank") not in SAVED_TAXON_RANKS:
                    continue
                self.data[str(taxon["id"])] = {"rank": taxon["rank"], "name": taxon.get("name") or ""}
                added += 1
            logger.info("Cached %d new taxon/taxa of %d unknown", added, len(unknown))
        self.write()
        return added


def _ancestor_ids(taxon: dict[str, Any]) -> list[str]:
    ancestry = taxon.get("min_species_ancestry") or ""
    return [part.strip() for part in ancestry.split(",") if part.strip()]
