"""
HTTP query surface: status, health, webhook registration, driven input and
a server-sent-events stream of status changes.
"""

import json
import logging
import queue
import threading
import time

from flask import Flask, Response, jsonify, request
from werkzeug.serving import make_server

from .endpoints import EndpointRegistry
from .errors import DuplicateUrlError, EndpointValidationError
from .health import SystemMonitor
from .status import SharedStatus, Status

STREAM_KEEPALIVE_SEC = 15.0
STREAM_POLL_SEC = 1.0


def create_app(shared_status: SharedStatus,
               registry: EndpointRegistry,
               source=None,
               system_monitor: SystemMonitor = None,
               shutdown_event: threading.Event = None) -> Flask:
    """Build the API app; open event streams end once ``shutdown_event`` is set."""
    app = Flask("door_sensor")
    logger = logging.getLogger("door_sensor.api")
    system_monitor = system_monitor or SystemMonitor()
    shutdown_event = shutdown_event or threading.Event()
    app.config["SHUTDOWN_EVENT"] = shutdown_event

    @app.route("/status")
    def api_status():
        return jsonify({"state": shared_status.get().value})

    @app.route("/health")
    def api_health():
        stats = system_monitor.get_system_stats()
        stats.update({
            "status": "ok",
            "state": shared_status.get().value,
            "endpoints": len(registry),
            "source": getattr(source, "kind", None),
        })
        return jsonify(stats)

    @app.route("/webhooks", methods=["GET"])
    def api_list_webhooks():
        return jsonify({"endpoints": [e.to_dict() for e in registry.list()]})

    @app.route("/webhooks", methods=["POST"])
    def api_add_webhook():
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return jsonify({"error": "InvalidEndpoint", "message": "expected a JSON object"}), 400

        try:
            endpoint = registry.add(
                body.get("url"),
                label=body.get("label"),
                timeout=body.get("timeout"),
                retries=body.get("retries"),
            )
        except DuplicateUrlError as e:
            return jsonify({"error": e.error_code, "message": str(e)}), 409
        except EndpointValidationError as e:
            return jsonify({"error": e.error_code, "message": str(e)}), 400

        return jsonify(endpoint.to_dict()), 201

    @app.route("/webhooks", methods=["DELETE"])
    def api_remove_webhook():
        body = request.get_json(silent=True) or {}
        url = body.get("url") if isinstance(body, dict) else None
        url = url or request.args.get("url")
        if not url:
            return jsonify({"error": "InvalidUrl", "message": "missing 'url'"}), 400
        return jsonify({"removed": registry.remove(url)})

    @app.route("/monitor/state", methods=["POST"])
    def api_push_state():
        if not hasattr(source, "set"):
            return jsonify({"error": "NotDriven", "message": "signal source does not accept pushed state"}), 409

        body = request.get_json(silent=True) or {}
        try:
            status = Status.parse(body.get("state") if isinstance(body, dict) else None)
        except ValueError as e:
            return jsonify({"error": "InvalidState", "message": str(e)}), 400

        source.set(status is Status.CLOSED)
        logger.info(f"Driven source state pushed: {status.value}")
        return jsonify({"state": status.value}), 202

    @app.route("/events")
    def api_stream():
        def gen():
            subscription = shared_status.subscribe()
            try:
                yield f"event: state\ndata: {json.dumps({'state': shared_status.get().value})}\n\n"
                last_sent = time.monotonic()
                while not shutdown_event.is_set():
                    try:
                        status = subscription.get(timeout=STREAM_POLL_SEC)
                    except queue.Empty:
                        if time.monotonic() - last_sent >= STREAM_KEEPALIVE_SEC:
                            last_sent = time.monotonic()
                            yield ":keepalive\n\n"
                        continue
                    last_sent = time.monotonic()
                    yield f"event: state\ndata: {json.dumps({'state': status.value})}\n\n"
            finally:
                shared_status.unsubscribe(subscription)

        return Response(gen(), mimetype="text/event-stream")

    return app


class ApiServer:
    """Runs the Flask app on a werkzeug server that can be shut down."""

    def __init__(self, app: Flask, host: str, port: int, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger("door_sensor.api")
        self._shutdown_event = app.config.get("SHUTDOWN_EVENT")
        self._server = make_server(host, port, app, threaded=True)
        self.host = host
        self.port = self._server.server_port

    def serve_forever(self) -> None:
        self.logger.info(f"Starting API server on {self.host}:{self.port}")
        self._server.serve_forever()

    def shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()
        self._server.shutdown()
        self._server.server_close()
        self.logger.info("API server stopped")
