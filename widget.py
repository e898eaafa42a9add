#!/usr/bin/env python3
"""
LibreGlance: shell widget backend.

Fetches the current LibreLinkUp glucose reading and prints exactly one JSON
object on stdout for the widget to render. Meant to be run by the shell on a
timer; each run logs in fresh.

Usage:
    libre-glance                         # print the current reading
    libre-glance --pretty --verbose      # indented output, logs on stderr
    libre-glance --transport curl        # use curl instead of requests
    libre-glance --unit mg/dL            # override the display unit
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from libre_client import DEFAULT_TIMEOUT, ConfigError, CurlTransport, RequestsTransport
from libre_config import ENV_PATH, PLUGIN_SETTINGS_PATH, load_config, with_unit
from libre_fetch import fetch_latest_reading
from libre_reading import UNIT_MGDL, UNIT_MMOL

# -- Paths --
LOG_DIR = Path.home() / ".local" / "state" / "libre-glance" / "logs"

logger = logging.getLogger("libre_glance.widget")

TRANSPORTS = {
    "requests": RequestsTransport,
    "curl": CurlTransport,
}


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """Attach a rotating file handler (and stderr when verbose) to libre_glance."""
    root = logging.getLogger("libre_glance")
    root.setLevel(logging.DEBUG)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        # Rotating file handler: 5 MB max, keep 3 backups
        file_handler = RotatingFileHandler(
            str(log_dir / "libre-glance.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
        )
    except OSError as exc:
        # stdout belongs to the widget; complain on stderr and keep going
        print(f"libre-glance: cannot write logs to {log_dir}: {exc}", file=sys.stderr)
    else:
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    if verbose:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root.addHandler(stream_handler)


def out(data: dict, pretty: bool = False) -> None:
    print(json.dumps(data, indent=2 if pretty else None, ensure_ascii=False))


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="LibreLinkUp glucose reading for the shell widget")
    parser.add_argument("--settings", type=Path, default=PLUGIN_SETTINGS_PATH,
                        help="Plugin settings JSON (default: %(default)s)")
    parser.add_argument("--env", type=Path, default=ENV_PATH,
                        help=".env file with LIBRE_* overrides (default: %(default)s)")
    parser.add_argument("--transport", choices=sorted(TRANSPORTS), default="requests",
                        help="HTTP transport to use")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT,
                        help="Per-request timeout in seconds")
    parser.add_argument("--unit", choices=[UNIT_MMOL, UNIT_MGDL],
                        help="Override the configured display unit")
    parser.add_argument("--pretty", action="store_true", help="Indent the JSON output")
    parser.add_argument("--log-dir", type=Path, default=LOG_DIR,
                        help="Directory for the rotating log file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Also log to stderr")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_dir, args.verbose)

    try:
        config = load_config(args.settings, args.env)
        if args.unit:
            config = with_unit(config, args.unit)
    except ConfigError as exc:
        logger.error("%s", exc)
        out({"error": str(exc)}, args.pretty)
        return 1

    try:
        transport = TRANSPORTS[args.transport](timeout=args.timeout)
        result = fetch_latest_reading(config, transport)
    except Exception as exc:
        logger.exception("Unexpected error while fetching reading: %s", exc)
        result = {"error": f"Fetch failed: {exc}"}

    out(result, args.pretty)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
