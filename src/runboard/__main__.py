# src/runboard/__main__.py

"""Entry point: ``python -m runboard`` serves the API with uvicorn."""

import logging

import uvicorn

from runboard.config import settings

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def main() -> None:
    """Configure logging and run the server until interrupted."""
    logging.basicConfig(
        level=settings.log_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    uvicorn.run(
        "runboard.main:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
