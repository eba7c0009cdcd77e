from __future__ import annotations

import hmac
import logging
from functools import wraps

from flask import Flask, jsonify, request

from ..container import Container
from ..core.exceptions import RelayError

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Admin-Token"


def register(app: Flask, container: Container) -> None:
    settings = container.settings
    orchestrator = container.orchestrator

    def token_required(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            expected = settings.admin_token
            if not expected:
                if settings.admin_require_token:
                    return jsonify({"success": False, "message": "Admin token is not configured"}), 403
                return view(*args, **kwargs)

            supplied = request.headers.get(TOKEN_HEADER, "")
            if not hmac.compare_digest(supplied.encode(), expected.encode()):
                logger.warning("Rejected admin request to %s from %s", request.path, request.remote_addr)
                return jsonify({"success": False, "message": "Invalid admin token"}), 401
            return view(*args, **kwargs)

        return wrapper

    @app.route("/health", methods=["GET"], endpoint="health")
    def health():
        status = orchestrator.status()
        healthy = not status["stopping"] and (status["idle"] or status["devices"]["connected"] > 0)
        return jsonify({"success": True, "healthy": healthy, **status}), 200 if healthy else 503

    @app.route("/devices", methods=["GET"], endpoint="devices")
    def devices():
        return jsonify({"success": True, "devices": container.fleet.summary()})

    @app.route("/stores", methods=["GET"], endpoint="stores")
    def stores():
        rows = [
            {
                "name": h.name,
                "connection": h.connection_info,
                "connected_at": h.connected_at.isoformat(),
            }
            for h in container.fanout.handles
        ]
        return jsonify({"success": True, "stores": rows})

    @app.route("/maintenance/resync", methods=["POST"], endpoint="maintenance_resync")
    @token_required
    def maintenance_resync():
        logger.warning("Manual clear-and-resync requested from %s", request.remote_addr)
        try:
            report = orchestrator.resync()
        except RelayError as e:
            return jsonify({"success": False, "message": str(e)}), 409
        except Exception:
            logger.exception("Resync failed")
            return jsonify({"success": False, "message": "Resync failed"}), 500
        return jsonify({"success": True, "report": report.as_dict()}), 200
