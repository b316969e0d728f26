"""Read-only access to tracked flows for the HTTP layer and dashboard."""

from typing import Any, Dict, List, Optional

from ..models.connection import ConnectionState
from ..storage.flow_table import FlowTable
from .ingestion import IngestionLoop


class FlowQuery:
    """
    Read-only façade over the flow table.

    Every accessor returns copies or plain dicts; an absent flow is None
    rather than an error.
    """

    def __init__(self, table: FlowTable, loop: Optional[IngestionLoop] = None):
        self.table = table
        self.loop = loop

    def latest(self) -> Optional[ConnectionState]:
        """Most recently updated connection."""
        if self.loop is None or self.loop.latest_key is None:
            return None
        return self.table.get(self.loop.latest_key)

    def get(self, key: str) -> Optional[ConnectionState]:
        return self.table.get(key)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """All connections as JSON-compatible dicts keyed by flow key."""
        return {key: state.to_dict() for key, state in self.table.snapshot().items()}

    def top_flows(self, limit: int = 10, sort_by: str = "bytes") -> List[ConnectionState]:
        """Top flows by bytes, packets or SYNs."""
        flows = list(self.table.snapshot().values())

        if sort_by == "bytes":
            flows.sort(key=lambda f: f.total_bytes, reverse=True)
        elif sort_by == "packets":
            flows.sort(key=lambda f: f.total_packets, reverse=True)
        elif sort_by == "syn":
            flows.sort(key=lambda f: f.a_to_z_syn_counter + f.z_to_a_syn_counter, reverse=True)
        elif sort_by == "recent":
            flows.sort(key=lambda f: f.last_seen, reverse=True)

        return flows[:limit]

    def flow_count(self) -> int:
        return len(self.table)

    def tracked_count(self) -> int:
        """Datagrams tracked since start or the last reset."""
        return self.loop.tracked_count() if self.loop else 0

    def reset_count(self) -> int:
        return self.loop.reset_count() if self.loop else 0

    def stats(self) -> Dict[str, Any]:
        stats = self.loop.get_stats().to_dict() if self.loop else {}
        stats["state"] = self.loop.state.value if self.loop else "idle"
        stats["flows"] = self.flow_count()
        return stats
