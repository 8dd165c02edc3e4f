"""iNaturalist data source.

Observation fetching plus the local place and taxon caches that resolve the
ids in observation payloads to names.

Public API:
  - client: InatClient (batched id lookups, project pulls, 429 backoff)
  - places: PlacesCache, PlaceNames
  - taxa: TaxaCache, PlantAncestry
"""

from bee_atlas.datasources.inaturalist.client import InatClient
from bee_atlas.datasources.inaturalist.places import PlaceNames, PlacesCache
from bee_atlas.datasources.inaturalist.taxa import PlantAncestry, TaxaCache

__all__ = [
    "InatClient",
    "PlaceNames",
    "PlacesCache",
    "PlantAncestry",
    "TaxaCache",
]
