# start_app.py
"""Prepare the order store and launch the API server."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import uvicorn
from dotenv import load_dotenv

import config


async def _prepare_store(settings: config.Settings) -> None:
    from orderhub.app.db import get_engine
    from orderhub.app.store import create_schema

    engine = get_engine(settings.store_url, slow_query_ms=settings.db_slow_query_ms)
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> None:
    """Load settings, optionally create the store schema, then start the API."""

    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--skip-schema",
        action="store_true",
        help="Start without creating the documents table",
    )
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    args = parser.parse_args(argv)

    load_dotenv()  # load environment variables from a .env file
    config.get_settings.cache_clear()
    settings = config.get_settings()

    env_flag = os.getenv("SKIP_STORE_SCHEMA")
    skip = args.skip_schema or (env_flag and env_flag.lower() not in {"0", "false"})
    if not skip:
        try:
            asyncio.run(_prepare_store(settings))
        except OSError as exc:
            print(f"order store unavailable: {exc}", file=sys.stderr)
            raise SystemExit(1)

    uvicorn.run(
        "orderhub.app.main:create_app",
        factory=True,
        host="0.0.0.0",  # nosec B104: bind for local development
        port=args.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
