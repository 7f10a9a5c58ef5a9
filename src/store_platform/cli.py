"""Run the store platform API with uvicorn."""
from __future__ import annotations

import argparse
import os

import uvicorn

from store_platform.app import StorePlatformSettings, create_app
from store_platform.observability import configure_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="store-platform")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", "3001")))
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = StorePlatformSettings.from_env()
    configure_logging(level=settings.log_level, json_output=settings.log_json)
    app = create_app(settings)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
