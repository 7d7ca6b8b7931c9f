"""Dungeon Master launcher. Serves the game API with uvicorn."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "13013"))


def main():
    parser = argparse.ArgumentParser(description="Dungeon Master game server")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON settings file (default: $DM_CONFIG_FILE)")
    parser.add_argument("--demo", action="store_true",
                        help="Play the built-in scripted adventure, no backends needed")
    parser.add_argument("--reload", action="store_true",
                        help="Restart on code changes")
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warning", "error"])
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The app reads its settings from the environment when uvicorn imports it
    if args.config:
        os.environ["DM_CONFIG_FILE"] = str(args.config.resolve())
    if args.demo:
        os.environ["DM_DEMO"] = "1"

    print(f"Starting Dungeon Master on http://localhost:{args.port} ...")
    uvicorn.run(
        "dungeon_master.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
