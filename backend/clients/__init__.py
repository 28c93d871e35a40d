from .data_api import DataApiClient
from .ingestion import IngestionClient
from .types import EntitySource, IngestionResult, IngestionTrigger

__all__ = [
    "DataApiClient",
    "EntitySource",
    "IngestionClient",
    "IngestionResult",
    "IngestionTrigger",
]
