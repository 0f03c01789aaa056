"""Fortune teller — console launcher. Loads .env and config, then runs the session."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

DEFAULT_CONFIG = Path(os.getenv("FORTUNE_CONFIG", str(ROOT / "fortune.json")))


def main():
    parser = argparse.ArgumentParser(description="Fortune teller console session")
    parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG,
                        help="Config JSON file (default: ./fortune.json, defaults if missing)")
    parser.add_argument("--no-audio", action="store_true",
                        help="Text only: no speech synthesis, no music")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from fortune_teller.config import ConfigError, load_config
    from fortune_teller.console import run_console

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(e, file=sys.stderr)
        sys.exit(1)

    print("Type 1-3 to choose, Enter to skip the intro, q to quit.")
    try:
        asyncio.run(run_console(config, audio=not args.no_audio))
    except KeyboardInterrupt:
        print("\nThe candles gutter out.")


if __name__ == "__main__":
    main()
