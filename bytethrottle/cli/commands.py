from __future__ import annotations

import argparse
import contextlib
import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests
from rich.console import Console

from bytethrottle.config import Settings, get_settings
from bytethrottle.net import fetch_url
from bytethrottle.pacer import ConfigurationError, PacerConfig
from bytethrottle.streams import CopyStats, copy_stream


_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kKmMgG]?)[bB]?\s*$")
_UNITS = {"": 1, "k": 1024, "m": 1024 ** 2, "g": 1024 ** 3}


def _parse_size(value: str) -> float:
    """Parse ``"500"``, ``"100K"``, ``"1.5M"`` ... into a byte count."""
    m = _SIZE_RE.match(value)
    if not m:
        raise argparse.ArgumentTypeError(f"invalid size: {value!r}")
    return float(m.group(1)) * _UNITS[m.group(2).lower()]


def _build_options(args: argparse.Namespace, settings: Settings) -> Dict[str, Any]:
    def pick(name: str, fallback: Any) -> Any:
        value = getattr(args, name, None)
        return fallback if value is None else value

    opts: Dict[str, Any] = {
        "target_rate": pick("rate", settings.rate),
        "chunk_size": pick("chunk_size", settings.chunk_size),
        "burst_threshold": pick("burst", settings.burst_threshold),
        "burst_rate": pick("burst_rate", settings.burst_rate),
    }
    for key in ("chunk_size", "burst_threshold"):
        if opts[key] is not None:
            opts[key] = int(opts[key])
    return opts


def _console(args: argparse.Namespace) -> Console:
    return Console(stderr=True, quiet=bool(getattr(args, "quiet", False)))


def _print_stats(console: Console, stats: CopyStats) -> None:
    console.print(
        f"[green]Done:[/green] {stats.bytes_copied:,} bytes in {stats.seconds:.2f}s "
        f"({stats.rate:,.0f} B/s)"
    )


def cmd_copy(args: argparse.Namespace) -> int:
    console = _console(args)
    settings = get_settings()
    try:
        config = PacerConfig.coerce(_build_options(args, settings))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 2

    if args.input_path != "-" and not Path(args.input_path).exists():
        console.print(f"[red]Input file not found:[/red] {args.input_path}")
        return 2

    read_size = int(args.read_size or settings.read_size)
    console.print(
        f"[bold]Throttling[/bold] {args.input_path} -> {args.out} "
        f"at {config.target_rate:,.0f} B/s"
    )
    with contextlib.ExitStack() as stack:
        if args.input_path == "-":
            src = sys.stdin.buffer
        else:
            src = stack.enter_context(Path(args.input_path).open("rb"))
        if args.out == "-":
            dst = sys.stdout.buffer
        else:
            out = Path(args.out)
            out.parent.mkdir(parents=True, exist_ok=True)
            dst = stack.enter_context(out.open("wb"))
        try:
            stats = copy_stream(src, dst, config, read_size=read_size, console=console)
        except OSError as e:
            console.print(f"[red]I/O error:[/red] {e}")
            return 1
    _print_stats(console, stats)
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    console = _console(args)
    settings = get_settings()
    try:
        config = PacerConfig.coerce(_build_options(args, settings))
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        return 2

    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    console.print(f"[bold]Fetching[/bold] {args.url} at {config.target_rate:,.0f} B/s")
    try:
        with out.open("wb") as f:
            stats = fetch_url(
                args.url,
                f,
                config,
                timeout=settings.http_timeout,
                read_size=int(args.read_size or settings.read_size),
                console=console,
            )
    except requests.RequestException as e:
        console.print(f"[red]Download failed:[/red] {e}")
        return 1
    except OSError as e:
        console.print(f"[red]I/O error:[/red] {e}")
        return 1
    console.print(f"[green]Saved:[/green] {out}")
    _print_stats(console, stats)
    return 0


def _add_rate_options(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("--rate", type=_parse_size, default=None, help="Steady-state bytes per second (e.g. 100K)")
    sp.add_argument("--chunk-size", type=_parse_size, default=None, help="Initial slice size per tick")
    sp.add_argument("--burst", type=_parse_size, default=None, help="Bytes allowed at the burst rate (0 disables)")
    sp.add_argument("--burst-rate", type=_parse_size, default=None, help="Bytes per second while bursting")
    sp.add_argument("--read-size", type=_parse_size, default=None, help="Input read size in bytes")
    sp.add_argument("--quiet", action="store_true", help="Suppress status output")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="bytethrottle",
        description="Copy bytes no faster than a configured rate.",
    )
    sub = parser.add_subparsers(dest="command")

    sp = sub.add_parser("copy", help="Copy a file (or stdin) to a file (or stdout) at a capped rate")
    sp.add_argument("input_path", nargs="?", default="-", help="Input file, '-' for stdin")
    sp.add_argument("--out", type=str, default="-", help="Output file, '-' for stdout")
    _add_rate_options(sp)
    sp.set_defaults(func=cmd_copy)

    sp = sub.add_parser("fetch", help="Download a URL to a file at a capped rate")
    sp.add_argument("url", type=str, help="HTTP(S) URL to download")
    sp.add_argument("--out", type=str, required=True, help="Output file")
    _add_rate_options(sp)
    sp.set_defaults(func=cmd_fetch)

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 1
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
