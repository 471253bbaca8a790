#!/usr/bin/env python3
"""
Format an address given as a JSON object of components.

Usage:
  address-format --input address.json --country-code DE
  echo '{"road": "Main St", "houseNumber": "10", "countryCode": "US"}' | address-format --array
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .data import AddressData
from .errors import AddressFormatterError
from .formatter import AddressFormatter, FormatOptions


def configure_logging(verbose: bool = False) -> None:
    root = logging.getLogger()
    if root.handlers:
        # Assume logging already configured.
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    ))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _read_fields(path: Optional[str]) -> Dict[str, Any]:
    text = Path(path).read_text(encoding="utf-8") if path else sys.stdin.read()
    fields = json.loads(text)
    if not isinstance(fields, dict):
        raise ValueError("Expected a JSON object of address components.")
    return fields


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="address-format", description=__doc__.strip().splitlines()[0])
    ap.add_argument("--input", default=None, help="Path to a JSON file (default: stdin)")
    ap.add_argument("--country-code", default=None, help="Override the input's country code")
    ap.add_argument("--fallback-country-code", default=None, help="Country code used when the input's is unknown")
    ap.add_argument("--abbreviate", action="store_true", help="Abbreviate common words (Street -> St)")
    ap.add_argument("--append-country", action="store_true", help="Add the country name when missing")
    ap.add_argument("--no-cleanup-postcode", action="store_true", help="Keep the postcode as given")
    ap.add_argument("--array", action="store_true", help="Print the lines as a JSON array")
    ap.add_argument("--data-dir", default=None, help="Directory with alternative data files")
    ap.add_argument("--verbose", action="store_true", help="Log debug output")
    return ap


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        fields = _read_fields(args.input)
        data = AddressData.load(args.data_dir) if args.data_dir else None
        formatter = AddressFormatter(data=data)
        options = FormatOptions(
            abbreviate=args.abbreviate,
            append_country=args.append_country,
            cleanup_postcode=not args.no_cleanup_postcode,
            country_code=args.country_code,
            fallback_country_code=args.fallback_country_code,
            output="array" if args.array else "string",
        )
        result = formatter.format(fields, options)
    except (AddressFormatterError, ValueError, OSError) as e:
        sys.exit(f"address-format: {e}")

    if args.array:
        print(json.dumps(result, ensure_ascii=False))
    else:
        sys.stdout.write(result)


if __name__ == "__main__":
    main()
