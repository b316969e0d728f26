"""
Flask app factory: registers the flow query, blueprints, and error handlers.
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from ..config import ApiConfig
from ..processing.query import FlowQuery
from . import routes

log = logging.getLogger(__name__)


def create_app(query: FlowQuery, config: Optional[ApiConfig] = None) -> Flask:
    """Create the Flask application serving the flow table."""
    app = Flask(__name__)
    config = config or ApiConfig()

    app.config["GEO_LOOKUP"] = config.geo_lookup
    app.config["GEO_TIMEOUT"] = config.geo_timeout

    app.extensions["flow_query"] = query

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return jsonify({"success": False, "error": e.description}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected_exception(e: Exception):
        log.exception("Unhandled error")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    app.register_blueprint(routes.bp)

    @app.route("/healthz")
    def healthz():
        return jsonify({"status": "ok"}), 200

    return app
