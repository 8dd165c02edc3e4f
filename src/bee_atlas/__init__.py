"""Bee Atlas - occurrence processing pipeline for a volunteer bee survey.

Architecture::

    csvio.py        Chunked CSV reading and paged writing
    occurrences/    Occurrence model, formatting, store, field-number indexing
    tasks.py        Task store and lifecycle
    handlers/       One subtask handler per pipeline stage
    datasources/    External APIs (iNaturalist observations, places, taxa)
    elevation.py    Elevation lookup from 1-degree GeoTIFF tiles
    renderers/      Pure data -> HTML (label sheets)
    messaging/      Task queue transport (Azure Service Bus, in-memory)
    consumer.py     Queue consumer and task runner
    flows/          Prefect flow for manual task runs
    services/       Shared utilities (HTTP client with retry)

Data flow: upload -> occurrence store -> handlers -> output files, with task
state polled from the task store.

Extension points:
  - New pipeline stage:  handlers/__init__.py
"""

__version__ = "0.1.0"

from bee_atlas.config import Settings
from bee_atlas.schemas import Task, TaskStatus

__all__ = ["Settings", "Task", "TaskStatus", "__version__"]
