from datetime import datetime

from flask import Blueprint, abort, current_app, send_file

from app.store.storage import LocalStorage, StorageError, storage_from_config

bp = Blueprint("routes", __name__)

SERVICE_NAME = "template-store"


@bp.get("/")
def index():
    return {"service": SERVICE_NAME, "message": "Template Store API", "api": current_app.config.get("API_PREFIX")}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"status": "ok", "timestamp": datetime.utcnow().isoformat(), "service": SERVICE_NAME}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/storage/<path:key>")
def storage_file(key: str):
    """Serves objects from the local storage backend (development only)."""
    storage = storage_from_config(current_app.config)
    if not isinstance(storage, LocalStorage):
        abort(404)
    try:
        if not storage.exists(key):
            abort(404)
        return send_file(storage.open(key), download_name=key.rsplit("/", 1)[-1])
    except StorageError:
        abort(404)
