"""Flow table storage backends."""

from .flow_table import FlowTable
from .memory_store import InMemoryFlowTable
from .kv_store import KeyValueStore, KeyValueFlowTable
from .eviction import EvictingFlowTable

__all__ = [
    "FlowTable",
    "InMemoryFlowTable",
    "KeyValueStore",
    "KeyValueFlowTable",
    "EvictingFlowTable",
]
