"""Entry point for the command-line interface."""

from __future__ import annotations

import argparse

from jobrelay.log import configure_logging
from jobrelay.settings import EngineSettings, load_engine_settings

from .commands import COMMANDS


def build_parser() -> argparse.ArgumentParser:
    """Construct argument parser for CLI commands."""
    parser = argparse.ArgumentParser(description="jobrelay CLI")
    parser.add_argument(
        "--settings",
        help="path to JSON/TOML engine settings",
    )
    parser.add_argument(
        "--log-dir",
        help="directory for log files",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    for name, cmd in COMMANDS.items():
        p = sub.add_parser(name, help=cmd.help)
        cmd.add_arguments(p)
        p.set_defaults(func=cmd.func)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = EngineSettings()
    if args.settings:
        try:
            settings = load_engine_settings(args.settings)
        except (OSError, ValueError) as exc:
            parser.error(f"cannot load settings: {exc}")
    configure_logging(settings.log_level, log_dir=args.log_dir, console=False)
    args.engine_settings = settings
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
