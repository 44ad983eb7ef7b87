#!/usr/bin/env python3
"""
ECDC Budget Dashboard: launch the web app.

Usage:
    python main.py                          # http://localhost:8000
    python main.py --port 9000
    python main.py --host 0.0.0.0           # listen on all interfaces
    python main.py --db /path/to/ecdc_budget.sqlite
    python main.py --reload                 # auto-reload on code changes

Defaults come from APP_HOST, APP_PORT and APP_DB_PATH.  The database
(schema plus the VA and NC locations) is created before the server starts,
so a fresh checkout needs no separate setup step.
"""

from __future__ import annotations

import argparse
import os
import threading
import webbrowser
from pathlib import Path

from utils.config import AppConfig


def build_parser(cfg: AppConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Launch the ECDC budget dashboard.")
    parser.add_argument("--host", default=cfg.api_host,
                        help=f"Bind address (default: {cfg.api_host})")
    parser.add_argument("--port", type=int, default=cfg.api_port,
                        help=f"Port to listen on (default: {cfg.api_port})")
    parser.add_argument("--db", type=Path, default=cfg.db_path,
                        help=f"SQLite database file (default: {cfg.db_path})")
    parser.add_argument("--reload", action="store_true",
                        help="Restart the server when source files change")
    parser.add_argument("--no-browser", action="store_true",
                        help="Don't open a browser window")
    return parser


def dashboard_url(host: str, port: int) -> str:
    """Address to open in the browser; wildcard binds are reached via localhost."""
    shown = "localhost" if host in ("0.0.0.0", "::", "") else host
    return f"http://{shown}:{port}/"


def main(argv: list[str] | None = None) -> None:
    args = build_parser(AppConfig.from_env()).parse_args(argv)

    # The uvicorn worker imports api.app fresh and reads the path from the environment.
    os.environ["APP_DB_PATH"] = str(args.db)

    import uvicorn

    from api.database import init_database

    existed = args.db.exists()
    init_database(args.db)
    print(f"{'Using' if existed else 'Created'} database {args.db}")

    url = dashboard_url(args.host, args.port)
    print(f"Starting ECDC Budget Dashboard at {url}")

    if not args.no_browser:
        threading.Timer(1.5, webbrowser.open, args=(url,)).start()

    uvicorn.run("api.app:app", host=args.host, port=args.port,
                reload=args.reload, log_level="info")


if __name__ == "__main__":
    main()
