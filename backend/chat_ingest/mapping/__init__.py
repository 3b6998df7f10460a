"""Provider-to-canonical message mapping."""

from chat_ingest.mapping.mapper import map_evolution_row, map_hub_event, map_source_record
from chat_ingest.mapping.types import HelperProjection, MappedMessage, MapperContext

__all__ = [
    "HelperProjection",
    "MappedMessage",
    "MapperContext",
    "map_evolution_row",
    "map_hub_event",
    "map_source_record",
]
