#!/usr/bin/env python3
import argparse
import json
import logging
import sys
from typing import Optional

import openair


def _normalize_openair_text(text: str) -> str:
    """Normalize OpenAIR text for parsing while keeping line numbers intact.

    Operations:
      - Strip UTF-8 BOM if present.
      - Normalize line endings to \n.
    Blank lines are kept so reported line numbers match the file.
    """
    if text.startswith("\ufeff"):
        text = text.lstrip("\ufeff")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def read_input(path: Optional[str]) -> str:
    if path and path != "-":
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            print(f"Error: could not read file '{path}': {e}", file=sys.stderr)
            sys.exit(2)
    # Read from stdin
    data = sys.stdin.read()
    if not data:
        print("Error: no input provided on stdin", file=sys.stderr)
        sys.exit(2)
    return data


def _classes(value: str):
    classes = [c.strip().upper() for c in value.split(",") if c.strip()]
    if not classes:
        raise argparse.ArgumentTypeError("expected a comma separated list of classes")
    return tuple(classes)


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="pyopenair",
        description="Convert an OpenAIR airspace file into a GeoJSON FeatureCollection.",
    )
    p.add_argument(
        "input",
        nargs="?",
        help="Path to an OpenAIR file. Use '-' or omit to read from stdin.",
        default="-",
    )
    p.add_argument("-o", "--output", help="Write GeoJSON to this file instead of stdout.")
    p.add_argument(
        "--json-indent", type=int, default=None, help="Indent the JSON output by N spaces."
    )
    p.add_argument(
        "--no-validate",
        dest="validate_geometry",
        action="store_false",
        help="Do not reject invalid or self-intersecting polygons.",
    )
    p.add_argument(
        "--fix",
        dest="fix_geometry",
        action="store_true",
        help="Repair invalid polygons. This may change their shape.",
    )
    p.add_argument(
        "--include-openair",
        action="store_true",
        help="Add the source definition of each airspace to its properties.",
    )
    p.add_argument(
        "--geometry-detail",
        type=int,
        default=openair.ParserConfig.geometry_detail,
        help="Points per full circle for arcs and circles (default: %(default)s).",
    )
    p.add_argument(
        "--unlimited",
        type=int,
        default=openair.ParserConfig.unlimited,
        help="Flight level used for unlimited ceilings (default: %(default)s).",
    )
    p.add_argument("--default-alt-unit", choices=("ft", "m"), default="ft")
    p.add_argument("--target-alt-unit", choices=("ft", "m"), default="ft")
    p.add_argument("--round-alt-values", action="store_true")
    p.add_argument(
        "--classes",
        dest="airspace_classes",
        type=_classes,
        default=openair.ParserConfig.airspace_classes,
        help="Comma separated list of accepted AC classes.",
    )
    p.add_argument(
        "--workers",
        dest="max_workers",
        type=int,
        default=1,
        help="Threads used to build airspaces (default: %(default)s).",
    )
    p.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop at the first airspace that cannot be converted.",
    )
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-error messages.",
    )
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> openair.ParserConfig:
    return openair.ParserConfig(
        airspace_classes=args.airspace_classes,
        unlimited=args.unlimited,
        geometry_detail=args.geometry_detail,
        validate_geometry=args.validate_geometry,
        fix_geometry=args.fix_geometry,
        include_openair=args.include_openair,
        default_alt_unit=args.default_alt_unit,
        target_alt_unit=args.target_alt_unit,
        round_alt_values=args.round_alt_values,
        max_workers=args.max_workers,
        fail_fast=args.fail_fast,
    )


def main(argv=None) -> int:
    args = parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.ERROR if args.quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    text = _normalize_openair_text(read_input(args.input))
    try:
        result = openair.Parser(config).parse(text)
    except openair.ParserError as e:
        print(f"Parse error: {e}", file=sys.stderr)
        return 1

    output = json.dumps(result.to_geojson(), ensure_ascii=False, indent=args.json_indent)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output + "\n")
    else:
        print(output)

    for error in result.errors:
        print(f"Error in {error}", file=sys.stderr)
    if not args.quiet:
        print(
            f"{len(result.features)} airspace(s) converted, {len(result.errors)} failed",
            file=sys.stderr,
        )
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
