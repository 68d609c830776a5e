#!/usr/bin/env python3
"""
Production entry point: release (migrate + seed), then exec gunicorn.

Login sessions are held in process memory, so gunicorn runs a single worker
and scales with threads (GUNICORN_THREADS, default 4).

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _port() -> int:
    raw = (os.environ.get("PORT") or "").strip() or "8080"
    try:
        port = int(raw)
    except ValueError:
        port = 0
    if not 1 <= port <= 65535:
        print(f"ERROR: Invalid PORT value '{raw}'. Must be integer 1-65535.", flush=True)
        sys.exit(1)
    return port


def gunicorn_argv(port: int, threads: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", "1",
        "--threads", str(threads),
        "--timeout", "60",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _port()
    threads = int((os.environ.get("GUNICORN_THREADS") or "4").strip())

    from scripts.release import run_release
    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({threads} threads) ===", flush=True)
    os.execvp("gunicorn", gunicorn_argv(port, threads))


if __name__ == "__main__":
    main()
