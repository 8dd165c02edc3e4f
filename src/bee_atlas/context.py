"""
Process-wide services.

Everything a handler needs is built once from ``Settings`` and passed in
explicitly, so tests can assemble a context around an in-memory database
and a temporary data directory.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import Engine  # noqa: TC002

from bee_atlas.config import Settings, get_settings
from bee_atlas.datasources.inaturalist import InatClient, PlacesCache, TaxaCache
from bee_atlas.db import create_db_engine
from bee_atlas.elevation import ElevationLookup
from bee_atlas.occurrences.store import OccurrenceStore
from bee_atlas.services.http import create_session, retry_policy
from bee_atlas.store import OutputStore
from bee_atlas.tasks import TaskStore
from bee_atlas.usernames import Usernames

PLACES_FILE = "places.json"
TAXA_FILE = "taxa.json"
USERNAMES_FILE = "usernames.csv"


@dataclass
class PipelineContext:
    settings: Settings
    engine: Engine
    occurrences: OccurrenceStore
    tasks: TaskStore
    outputs: OutputStore
    elevation: ElevationLookup
    inat: InatClient
    places: PlacesCache
    taxa: TaxaCache
    usernames: Usernames


def build_context(settings: Settings | None = None, engine: Engine | None = None) -> PipelineContext:
    """Wire up stores and collaborators from settings."""
    settings = settings or get_settings()
    data_dir = settings.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)

    engine = engine or create_db_engine(settings.database_url, echo=settings.debug)
    inat = InatClient(
        api_base=settings.inat_api_base,
        session=create_session(
            retry=retry_policy(
                total=settings.inat_retries,
                backoff_factor=settings.inat_backoff_factor,
                backoff_max=settings.inat_backoff_limit,
            )
        ),
    )
    return PipelineContext(
        settings=settings,
        engine=engine,
        occurrences=OccurrenceStore(
            engine,
            page_size=settings.page_size,
            url_prefix=settings.field_number_url_prefix,
        ),
        tasks=TaskStore(engine),
        outputs=OutputStore(data_dir),
        elevation=ElevationLookup(settings.elevation_dir),
        inat=inat,
        places=PlacesCache(data_dir / PLACES_FILE, inat),
        taxa=TaxaCache(data_dir / TAXA_FILE, inat),
        usernames=Usernames(data_dir / USERNAMES_FILE),
    )
