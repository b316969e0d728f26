"""
Flow routes: latest connection, snapshot, counters.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, abort, current_app, jsonify

from ..errors import GeoLookupError, StoreError
from ..geo import lookup_ip
from ..processing.query import FlowQuery

log = logging.getLogger(__name__)

bp = Blueprint("flows", __name__)

INDEX_PAGE = """<html>
    <head>
        <title>TCP Flow Monitor</title>
    </head>
    <body>
        <h1>TCP Flow Monitor</h1>
        <p>Visit <a href="/conn">/conn</a> to see the latest connection,
        <a href="/flows">/flows</a> for every tracked flow.</p>
    </body>
</html>"""


def _query() -> FlowQuery:
    return current_app.extensions["flow_query"]


@bp.errorhandler(StoreError)
def handle_store_error(e: StoreError):
    log.warning("Query failed: %s", e)
    return jsonify({"success": False, "error": "Backing store unavailable"}), 503


@bp.route("/")
def index():
    return Response(INDEX_PAGE, mimetype="text/html")


@bp.route("/conn")
def conn():
    """Latest connection, enriched with the peer's geolocation."""
    state = _query().latest()
    if state is None:
        abort(404, description="No latest conn")

    body = state.to_dict()
    body["geo"] = None
    if current_app.config["GEO_LOOKUP"]:
        try:
            info = lookup_ip(state.a_endpoint.ip, timeout=current_app.config["GEO_TIMEOUT"])
            body["geo"] = info.to_dict()
        except GeoLookupError as e:
            log.info("%s", e)
    return jsonify(body)


@bp.route("/count")
def count():
    return str(_query().tracked_count())


@bp.route("/reset_count")
def reset_count():
    return str(_query().reset_count())


@bp.route("/flows")
def flows():
    return jsonify(_query().snapshot())


@bp.route("/flows/<path:key>")
def flow(key: str):
    state = _query().get(key)
    if state is None:
        abort(404, description=f"Unknown flow {key}")
    return jsonify(state.to_dict())


@bp.route("/stats")
def stats():
    return jsonify(_query().stats())
