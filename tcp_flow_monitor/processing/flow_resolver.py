"""Canonical flow identity relative to the local host."""

import logging
from typing import Optional

from ..models.datagram import Datagram
from ..models.connection import Endpoint, FlowDirection, FlowIdentity

log = logging.getLogger(__name__)


def resolve_flow(datagram: Datagram, local_ip: str) -> Optional[FlowIdentity]:
    """
    Resolve the canonical identity of a datagram.

    Endpoint A is the peer and Z the local host, whichever way the datagram
    travels, so both directions of a conversation share one key.

    Returns None when the local host is neither source nor destination.
    """
    if datagram.dst_ip == local_ip:
        return FlowIdentity(
            a_endpoint=Endpoint(datagram.src_ip, datagram.src_port),
            z_endpoint=Endpoint(datagram.dst_ip, datagram.dst_port),
            direction=FlowDirection.A_TO_Z,
        )
    if datagram.src_ip == local_ip:
        return FlowIdentity(
            a_endpoint=Endpoint(datagram.dst_ip, datagram.dst_port),
            z_endpoint=Endpoint(datagram.src_ip, datagram.src_port),
            direction=FlowDirection.Z_TO_A,
        )
    log.debug("Unable to identify flow direction for %s", datagram.flow_string)
    return None
