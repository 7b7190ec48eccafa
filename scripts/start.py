#!/usr/bin/env python3
"""
Container entry point: release phase, then exec gunicorn on app.wsgi:app.

Environment: PORT (default 8080), WEB_CONCURRENCY (default 2),
GUNICORN_TIMEOUT (default 60 seconds).
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = 8080


def _positive_int(environ: dict[str, str], name: str, default: int, *, upper: int | None = None) -> int:
    raw = (environ.get(name) or "").strip()
    if not raw:
        return default
    value = int(raw)
    if value < 1 or (upper is not None and value > upper):
        raise ValueError(f"{name}={raw} is out of range")
    return value


def gunicorn_argv(environ: dict[str, str] | None = None) -> list[str]:
    environ = os.environ if environ is None else environ
    port = _positive_int(environ, "PORT", DEFAULT_PORT, upper=65535)
    workers = _positive_int(environ, "WEB_CONCURRENCY", 2)
    timeout = _positive_int(environ, "GUNICORN_TIMEOUT", 60)
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    try:
        argv = gunicorn_argv()
    except ValueError as e:
        print(f"[start] invalid server setting: {e}", flush=True)
        sys.exit(1)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"[start] release failed: {e}", flush=True)
        sys.exit(1)

    print(f"[start] exec {' '.join(argv)}", flush=True)
    # exec: gunicorn takes over this PID and receives signals directly.
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
