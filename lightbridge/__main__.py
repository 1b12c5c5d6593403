"""Entrypoint for running the light bridge HTTP service."""
from __future__ import annotations

import uvicorn

from .config import build_environment_config
from .logging_config import configure_logging
from .server import create_app


def main() -> None:
    configure_logging()
    config = build_environment_config()
    uvicorn.run(create_app(config=config), host="0.0.0.0", port=config.port)


if __name__ == "__main__":
    main()
