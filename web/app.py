from __future__ import annotations

import atexit
import logging
from typing import Any

from flask import Flask, jsonify, request, send_from_directory
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from booking.models import BookingRequest, OutcomeStatus
from booking.service import BookingInProgress, BookingRunner, BookingService
from booking.snapshots import InvalidSnapshotName, SnapshotStore
from engine.config import RunConfig, configure_logging, load_config

app = Flask(__name__)
log = logging.getLogger("booking")

_STATUS_CODES = {
    OutcomeStatus.SUCCESS: 200,
    OutcomeStatus.FAILURE: 500,
    OutcomeStatus.INTERIM: 202,
}

_config: RunConfig | None = None
_runner: BookingRunner | None = None
_snapshot_store: SnapshotStore | None = None


def get_config() -> RunConfig:
    global _config
    if _config is None:
        _config = load_config()
        configure_logging(_config)
    return _config


def get_runner() -> BookingRunner:
    global _runner
    if _runner is None:
        config = get_config()
        _runner = BookingRunner(BookingService(config, snapshots=get_snapshot_store()))
    return _runner


def get_snapshot_store() -> SnapshotStore:
    global _snapshot_store
    if _snapshot_store is None:
        _snapshot_store = SnapshotStore(get_config().snapshot_dir)
    return _snapshot_store


def _validation_errors(exc: ValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
        for error in exc.errors()
    ]


@app.errorhandler(404)
def not_found(error: Exception):  # pragma: no cover - simple JSON handler
    return jsonify({"error": f"resource not found: {request.path}"}), 404


@app.errorhandler(Exception)
def handle_exception(error: Exception):
    if isinstance(error, HTTPException):
        return jsonify({"error": error.description}), error.code
    log.exception("Unhandled exception: %s", error)
    return jsonify({"error": "internal server error"}), 500


@app.route("/")
def index():
    return "Booking automation service is running.\n", 200, {"Content-Type": "text/plain; charset=utf-8"}


@app.get("/health")
def health():
    return jsonify({"status": "ok"})


@app.post("/book")
def book():
    data: Any = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "request body must be a JSON object"}), 400
    try:
        booking_request = BookingRequest.model_validate(data)
    except ValidationError as exc:
        return jsonify({"error": "invalid booking request", "errors": _validation_errors(exc)}), 400

    try:
        outcome = get_runner().submit(booking_request)
    except BookingInProgress as exc:
        return jsonify({"error": exc.message, **exc.as_dict()}), 409

    return jsonify(outcome.as_dict()), _STATUS_CODES[outcome.status]


@app.get("/snapshots")
def list_snapshots():
    return jsonify({"snapshots": get_snapshot_store().list()})


@app.get("/snapshots/<path:filename>")
def get_snapshot(filename: str):
    store = get_snapshot_store()
    try:
        path = store.path_for(filename)
    except InvalidSnapshotName as exc:
        return jsonify({"error": str(exc)}), 400
    except FileNotFoundError:
        return jsonify({"error": f"snapshot not found: {filename}"}), 404
    return send_from_directory(directory=str(path.parent), path=path.name, mimetype="image/png")


@atexit.register
def _shutdown_runner() -> None:  # pragma: no cover - shutdown hook
    if _runner is not None:
        _runner.shutdown()


def main() -> None:  # pragma: no cover - manual run helper
    get_config()
    app.run(host="0.0.0.0", port=5000)


if __name__ == "__main__":  # pragma: no cover - manual run helper
    main()
