#!/usr/bin/env python3
"""
Container entrypoint: release phase, then hand the process over to gunicorn.

Environment:
  PORT               listen port (default 8080)
  WEB_CONCURRENCY    gunicorn workers (default 2)
  GUNICORN_TIMEOUT   worker timeout in seconds (default 60)
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _positive_int_env(name: str, default: int, *, upper: int | None = None) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise SystemExit(f"{name} must be an integer, got {raw!r}")
    if value < 1 or (upper is not None and value > upper):
        raise SystemExit(f"{name} out of range: {value}")
    return value


def gunicorn_argv(port: int, workers: int, timeout: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        # engine is disposed in each forked worker, see create_app()
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _positive_int_env("PORT", 8080, upper=65535)
    workers = _positive_int_env("WEB_CONCURRENCY", 2)
    timeout = _positive_int_env("GUNICORN_TIMEOUT", 60)

    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed, not starting web workers: {e}", flush=True)
        sys.exit(1)

    argv = gunicorn_argv(port, workers, timeout)
    print(f"Starting dealership on :{port} with {workers} worker(s)", flush=True)
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
