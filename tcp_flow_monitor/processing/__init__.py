"""Processing layer: flow resolution, ingestion and queries."""

from .flow_resolver import resolve_flow
from .ingestion import IngestionLoop, IngestionState, IngestionStats
from .query import FlowQuery

__all__ = [
    "resolve_flow",
    "IngestionLoop",
    "IngestionState",
    "IngestionStats",
    "FlowQuery",
]
