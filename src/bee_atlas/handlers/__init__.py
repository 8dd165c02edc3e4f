"""Subtask handlers, one per pipeline stage.

``HANDLERS`` maps each ``SubtaskType`` to its handler class. The task runner
instantiates handlers with the process-wide ``PipelineContext``.

Adding a stage
--------------
1. Add the type to ``SubtaskType`` in ``schemas.py``.
2. Subclass ``SubtaskHandler`` in ``handlers/{name}.py`` and implement
   ``process``.
3. Register the class below.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from bee_atlas.errors import UnknownSubtaskError
from bee_atlas.handlers.addresses import AddressesHandler
from bee_atlas.handlers.base import SubtaskHandler
from bee_atlas.handlers.emails import EmailsHandler
from bee_atlas.handlers.labels import LabelsHandler
from bee_atlas.handlers.observations import ObservationsHandler
from bee_atlas.handlers.occurrences import OccurrencesHandler
from bee_atlas.handlers.pivots import PivotsHandler
from bee_atlas.schemas import SubtaskType

if TYPE_CHECKING:
    from bee_atlas.context import PipelineContext

HANDLERS: dict[SubtaskType, type[SubtaskHandler]] = {
    SubtaskType.OCCURRENCES: OccurrencesHandler,
    SubtaskType.OBSERVATIONS: ObservationsHandler,
    SubtaskType.LABELS: LabelsHandler,
    SubtaskType.ADDRESSES: AddressesHandler,
    SubtaskType.EMAILS: EmailsHandler,
    SubtaskType.PIVOTS: PivotsHandler,
}


def handler_for(subtask_type: str, context: PipelineContext) -> SubtaskHandler:
    try:
        handler_class = HANDLERS[SubtaskType(subtask_type)]
    except (KeyError, ValueError):
        msg = f"No handler registered for subtask type {subtask_type!r}"
        raise UnknownSubtaskError(msg) from None
    return handler_class(context)


__all__ = [
    "HANDLERS",
    "AddressesHandler",
    "EmailsHandler",
    "LabelsHandler",
    "ObservationsHandler",
    "OccurrencesHandler",
    "PivotsHandler",
    "SubtaskHandler",
    "handler_for",
]
