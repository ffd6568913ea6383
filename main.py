"""
RagWeave Server Entry Point

Run with: python main.py [--config config.yaml]
Or with uvicorn: uvicorn app:app
"""

import argparse
import os

import uvicorn

from app import create_app
from ragweave.config import Config
from ragweave.utils.logger import setup_logging


def main() -> None:
    parser = argparse.ArgumentParser(description="RagWeave API server")
    parser.add_argument("--config", default="config.yaml", help="YAML config (env overrides it)")
    parser.add_argument("--host", default=os.getenv("RAGWEAVE_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("RAGWEAVE_PORT", "9380")))
    args = parser.parse_args()

    config = Config.from_env_or_yaml(args.config)
    setup_logging(config.logging)

    # Workers hold the task queue in-process, so the server runs a single process
    uvicorn.run(
        create_app(config),
        host=args.host,
        port=args.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
