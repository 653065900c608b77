"""CLI - discover keybinds and optionally select one with fzf."""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from iterfzf import iterfzf

from .config import (
    FORMATS,
    config_home,
    find_config,
    load_settings,
    write_sample_config,
)
from .errors import SettingsError
from .keybind import Keybind, find_conflicts
from .source import Source, create_source, discover_all, registered_sources
from . import sources  # noqa: F401  registers the built-in sources

EXIT_OK = 0
EXIT_SOURCE_FAILED = 1
EXIT_USAGE = 2
EXIT_NO_SELECTION = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fzf-keys",
        description="Search through keybinds from various programs",
        epilog=(
            "Example: fzf-keys -k | fzf\n\n"
            "Exit status: 0 ok, 1 a source failed, 2 bad settings or usage, "
            "3 nothing selected with --select"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", "-c", type=Path,
                        help="Settings TOML file (default: ~/.config/fzf-keys/config.toml)")
    parser.add_argument("--niri-config", "-n", type=Path,
                        help="Path to niri config file (default: ~/.config/niri/config.kdl)")
    parser.add_argument("--kitty", "-k", action="store_true",
                        help="Include kitty keybinds (requires kitty's Python modules)")
    parser.add_argument("--source", action="append", choices=sorted(registered_sources()),
                        help="Source to run, may be repeated (overrides the settings file)")
    parser.add_argument("--format", "-f", choices=FORMATS,
                        help="Output format (default: line)")
    parser.add_argument("--select", "-s", action="store_true",
                        help="Interactive selection with fzf")
    parser.add_argument("--conflicts", action="store_true",
                        help="Only report key combinations bound more than once")
    parser.add_argument("--init", action="store_true",
                        help="Write a sample settings file and exit")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Log debug details to stderr")
    return parser


def build_sources(settings, args) -> list[Source]:
    names = list(args.source) if args.source else list(settings.sources)
    if args.kitty and "kitty" not in names:
        names.append("kitty")

    built = []
    for name in names:
        section = dict(settings.section(name))
        if name == "niri" and args.niri_config:
            section["config"] = str(args.niri_config)
        built.append(create_source(name, section))
    return built


def format_keybinds(keybinds: list[Keybind], fmt: str) -> str:
    if fmt == "json":
        return json.dumps([kb.to_dict() for kb in keybinds], indent=2)
    if fmt == "tsv":
        return "\n".join(kb.to_tsv() for kb in keybinds)
    return "\n".join(kb.to_line() for kb in keybinds)


def format_conflicts(keybinds: list[Keybind]) -> str:
    lines = []
    for group in find_conflicts(keybinds).values():
        lines.append(f"{group[0].program}: {group[0].combo} is bound {len(group)} times")
        lines.extend(f"  {kb.to_line()}" for kb in group)
    return "\n".join(lines)


def write_output(text: str) -> None:
    try:
        print(text)
        sys.stdout.flush()
    except BrokenPipeError:
        # stdout was closed early, e.g. piped into head
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())


def run(args) -> int:
    if args.init:
        path = args.config or config_home() / "fzf-keys/config.toml"
        try:
            write_sample_config(path)
        except SettingsError as err:
            print(f"Error: {err}", file=sys.stderr)
            return EXIT_USAGE
        print(f"Created: {path}")
        return EXIT_OK

    try:
        settings = load_settings(args.config or find_config())
        selected = build_sources(settings, args)
    except SettingsError as err:
        print(f"Error: {err}", file=sys.stderr)
        return EXIT_USAGE

    keybinds, failures = discover_all(selected)
    for name, err in failures.items():
        print(f"Error: {name}: {err}", file=sys.stderr)
    status = EXIT_SOURCE_FAILED if failures else EXIT_OK

    # Interactive mode
    if args.select:
        selection = iterfzf((kb.to_line() for kb in keybinds), exact=True)
        if not selection:
            return EXIT_NO_SELECTION
        write_output(selection)
        return status

    if args.conflicts:
        output = format_conflicts(keybinds)
    else:
        output = format_keybinds(keybinds, args.format or settings.format)
    if output:
        write_output(output)
    return status


def main(argv: Optional[list[str]] = None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    sys.exit(run(args))


if __name__ == "__main__":
    main()
