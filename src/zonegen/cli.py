"""Command line interface for zonegen."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .logging import configure_logging, get_logger, step
from .reporting import REPORTERS, get_reporter, set_reporter, set_verbosity
from .config import load_config
from .zone.errors import ZoneError
import json
from .api import (
    BuildOptions,
    archive_listing,
    batch_dump,
    build_zone,
    dump_zone,
    inspect_zone,
    validate_zone,
)


def _build_cmd(args: argparse.Namespace) -> int:
    opts = BuildOptions(
        build_list=args.build_list,
        output_dir=args.output,
        source_paths=list(args.source or []),
        zone_name=args.zone_name,
        pack_index=args.pack_index,
        config=args.config_obj,
    )
    res = build_zone(opts)
    return 1 if res.closure.dropped and args.strict else 0


def _dump_cmd(args: argparse.Namespace) -> int:
    step(f"dumping {args.zone.name}")
    res = dump_zone(args.zone, args.output, config=args.config_obj)
    return 1 if res.failures or res.load_failures else 0


def _batch_dump_cmd(args: argparse.Namespace) -> int:
    step(f"dumping zones in {args.directory}")
    results = batch_dump(
        args.directory, args.output, recursive=args.recursive, config=args.config_obj
    )
    return 1 if any(r.failures for r in results) else 0


def _list_cmd(args: argparse.Namespace) -> int:
    step(f"listing zones in {args.directory}")
    archive_listing(
        args.directory,
        args.output,
        chunk_size=args.chunk_size,
        recursive=args.recursive,
        config=args.config_obj,
    )
    return 0


def _inspect_cmd(args: argparse.Namespace) -> int:
    info = inspect_zone(args.zone)
    issues = validate_zone(args.zone)
    rep = get_reporter()
    rep.flush()
    if args.json:
        info["issues"] = issues
        print(json.dumps(info, indent=2, sort_keys=True))
    else:
        # a zone with a bad magic carries only file_size and header
        streams = ",".join(
            f"{s['name']}@{s['offset']}+{s['size']}"
            for s in info.get("streams", [])
            if s["size"]
        )
        assets = info.get("assets", [])
        relocations = info.get("relocations", [])
        rep.status(
            f"Inspect summary: file_size={info['file_size']} "
            f"assets={len(assets)} relocations={len(relocations)} streams={streams}"
        )
        for issue in issues:
            rep.warning(issue)
    return 1 if issues else 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="zonegen", description="Zone and fastfile generation tool"
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (repeatable)",
    )
    p.add_argument(
        "-r",
        "--reporter",
        choices=["plain", "rich", "json", "silent"],
        default="plain",
        help="Select reporter backend: plain (default), rich, json (JSONL events), silent",
    )
    p.add_argument(
        "-c",
        "--config",
        type=Path,
        help="Tool configuration (JSON or YAML)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    b = sub.add_parser("build", help="Build a zone from a build list")
    b.add_argument("build_list", type=Path)
    b.add_argument("-o", "--output", type=Path, required=True)
    b.add_argument(
        "-s",
        "--source",
        type=Path,
        action="append",
        help="Source search path (repeatable, first match wins)",
    )
    b.add_argument("--zone-name", dest="zone_name")
    b.add_argument(
        "--pack-index",
        type=int,
        dest="pack_index",
        help="Pack file index for streamed blocks (0 keeps them out)",
    )
    b.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero when dependencies were dropped",
    )
    b.set_defaults(func=_build_cmd)

    d = sub.add_parser("dump", help="Export every asset of a zone")
    d.add_argument("zone", type=Path)
    d.add_argument("-o", "--output", type=Path)
    d.set_defaults(func=_dump_cmd)

    bd = sub.add_parser("batch-dump", help="Dump every zone in a directory")
    bd.add_argument("directory", type=Path)
    bd.add_argument("-o", "--output", type=Path)
    bd.add_argument("--recursive", action="store_true")
    bd.set_defaults(func=_batch_dump_cmd)

    ls = sub.add_parser("list", help="Write archive listing chunks")
    ls.add_argument("directory", type=Path)
    ls.add_argument("-o", "--output", type=Path, required=True)
    ls.add_argument("--chunk-size", type=int, dest="chunk_size")
    ls.add_argument("--recursive", action="store_true")
    ls.set_defaults(func=_list_cmd)

    i = sub.add_parser("inspect", help="Inspect and validate a zone file")
    i.add_argument("zone", type=Path)
    i.add_argument("--json", action="store_true", help="Emit JSON layout")
    i.set_defaults(func=_inspect_cmd)

    return p


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    name = args.reporter
    if name == "rich" and not sys.stderr.isatty():
        # rich falls back to plain without a TTY
        name = "plain"
    set_reporter(REPORTERS[name]())
    set_verbosity(args.verbose)
    configure_logging(args.verbose)
    try:
        args.config_obj = load_config(args.config)
        return args.func(args)
    except (ZoneError, OSError, ValueError) as exc:
        get_logger().error("%s failed: %s", args.cmd, exc)
        return 1
    finally:
        get_reporter().flush()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
