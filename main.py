#!/usr/bin/env python3
"""
Community Pulse — score this week's community posts with two agents and a validator.

Usage:
    python main.py                          # settings from config/settings.yaml
    python main.py --config prod.yaml       # alternate settings file
    python main.py --log-level DEBUG --json-logs
"""
import argparse
import asyncio
import sys

from dotenv import load_dotenv

from config.settings import load_settings
from core.runtime import AgentRuntime
from utils.logging import configure_logging


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one Community Pulse analysis pass")
    parser.add_argument("--config", default=None, help="Path to settings YAML")
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    load_dotenv()
    args = parse_args(argv)
    settings = load_settings(args.config)
    configure_logging(
        level=args.log_level or settings.logging.level,
        json_output=args.json_logs or settings.logging.json,
    )
    try:
        return asyncio.run(AgentRuntime(settings=settings).run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
