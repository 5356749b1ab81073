import argparse
import json
import logging
import sys
from pathlib import Path

from crush import CrushError, place_object
from parser import Parser, ParsingError

DEFAULT_MAP = Path(__file__).parent / "maps" / "default_map"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(message)s"

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool, level: int = logging.WARNING) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Compute the OSDs holding placement groups under a crush rule"
    )
    ap.add_argument("rule", help="rule name")
    ap.add_argument("pgs", nargs="+", type=int, help="placement group ids")
    ap.add_argument(
        "--map", type=Path, default=DEFAULT_MAP, help="crush map file (default: %(default)s)"
    )
    ap.add_argument("--json", action="store_true", help="print one JSON object")
    ap.add_argument("-v", "--verbose", action="store_true")
    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        text = args.map.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"cannot read {args.map}: {e}", file=sys.stderr)
        return 1

    try:
        cmap = Parser(text).parse()
        placements = {pg: place_object(pg, cmap, args.rule) for pg in args.pgs}
    except (ParsingError, CrushError) as e:
        print(e, file=sys.stderr)
        return 1

    for pg, osds in placements.items():
        logger.info("pg %d -> %s", pg, osds)

    if args.json:
        print(json.dumps({str(pg): osds for pg, osds in placements.items()}))
    else:
        for pg, osds in placements.items():
            print(f"pg {pg} -> [{', '.join(osds)}]")
    return 0


if __name__ == "__main__":
    sys.exit(main())
