#!/usr/bin/env python
"""
Server Entry Point

Usage:
    Development:  python run_server.py --dev
    Production:   python run_server.py

    Or with Gunicorn:
    gunicorn shop_analytics.main:app -c gunicorn.conf.py

Host, port and worker count come from ``API_HOST``, ``API_PORT`` and
``API_WORKERS``; ``DEBUG=true`` runs the development server.
"""

import argparse
import os
import subprocess
from typing import List, Optional

import uvicorn

from shop_analytics.config import Settings, get_settings

APP_PATH = "shop_analytics.main:app"


def run_dev_server(settings: Settings, port: int):
    """Run development server with auto-reload."""
    uvicorn.run(
        APP_PATH,
        host=settings.api_host,
        port=port,
        reload=True,
        reload_dirs=["shop_analytics"],
        log_level="debug",
    )


def run_prod_server(settings: Settings, port: int):
    """Run production server with Uvicorn directly."""
    uvicorn.run(
        APP_PATH,
        host=settings.api_host,
        port=port,
        workers=settings.api_workers,
        log_level=settings.monitoring.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips="*",
        server_header=False,
    )


def run_gunicorn(settings: Settings, port: int):
    """Run with Gunicorn (recommended for production)."""
    env = dict(os.environ, BIND=f"{settings.api_host}:{port}", WORKERS=str(settings.api_workers))
    subprocess.run(["gunicorn", APP_PATH, "-c", "gunicorn.conf.py"], check=True, env=env)


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None):
    settings = settings or get_settings()

    parser = argparse.ArgumentParser(description="Storefront Sales Analytics API Server")
    parser.add_argument("--dev", action="store_true", help="Run in development mode with auto-reload")
    parser.add_argument("--gunicorn", action="store_true", help="Run with Gunicorn (production)")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Port to run on")

    args = parser.parse_args(argv)

    if args.dev or settings.debug:
        run_dev_server(settings, args.port)
    elif args.gunicorn:
        run_gunicorn(settings, args.port)
    else:
        run_prod_server(settings, args.port)


if __name__ == "__main__":
    main()
