"""
Shoot Sync — Entry Point.

Single entry point: `python main.py` starts the HTTP API.
"""

import logging

from shootsync.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

import uvicorn

from shootsync.api.app import create_app


def main() -> None:
    uvicorn.run(create_app(), host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    main()
