"""Search a JSON document for objects with target billing codes."""

from __future__ import annotations

import argparse
import json
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, BinaryIO

from .legacy_extract import extract_to_csv

TARGET_CODES = frozenset({"99283", "99284", "99285", "99291"})
DEFAULT_PATH = "billing_code_matches.json"
_PROGRESS_INTERVAL = 10_000

_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


class ProgressReader:
    """Binary reader wrapper that reports the percentage consumed after every read."""

    def __init__(
        self,
        reader: BinaryIO,
        total: int,
        callback: Callable[[float], None] | None = None,
    ) -> None:
        self.reader = reader
        self.total = total
        self.callback = callback
        self.bytes_read = 0

    @property
    def percent(self) -> float:
        if not self.total:
            return 100.0
        return self.bytes_read / self.total * 100

    def read(self, size: int = -1) -> bytes:
        chunk = self.reader.read(size)
        self.bytes_read += len(chunk)
        if self.callback is not None:
            self.callback(self.percent)
        return chunk


def find_matching_objects(data: Any) -> list[dict[str, Any]]:
    """Return every object, at any depth, whose billing_code is a target code, in document order."""
    matches: list[dict[str, Any]] = []
    processed = 0
    stack = [data]
    while stack:
        node = stack.pop()
        processed += 1
        if processed % _PROGRESS_INTERVAL == 0:
            print(f"\rSearching... Processed {processed} objects", end="", flush=True)
        if isinstance(node, dict):
            code = node.get("billing_code")
            if isinstance(code, str) and code in TARGET_CODES:
                matches.append(node)
            stack.extend(reversed(list(node.values())))
        elif isinstance(node, list):
            stack.extend(reversed(node))
    print(f"\nSearch completed. Processed {processed} total objects")
    return matches


def _report_progress(percent: float) -> None:
    print(f"\rProgress: {percent:.1f}%", end="", flush=True)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Keep only target billing-code objects from a JSON file and export them to CSV."
    )
    parser.add_argument("input", nargs="?", default=DEFAULT_PATH)
    parser.add_argument("--csv", dest="csv_path", default="extracted.csv")
    args = parser.parse_args(argv)

    print("Starting JSON parser...")
    with open(args.input, "rb") as handle:
        size = os.fstat(handle.fileno()).st_size
        print(f"Loading JSON file into memory... (File size: {size / (1024 * 1024):.2f} MB)")
        data = json.load(ProgressReader(handle, size, _report_progress))
    print("\nJSON file loaded successfully!")

    print("Searching for objects with billing codes: " + ", ".join(sorted(TARGET_CODES)))
    records = find_matching_objects(data)
    print(f"Found {len(records)} matching objects")

    if not records:
        print("No matching billing codes found")
        return 0

    print("Writing matching objects to output file")
    text = json.dumps(records, indent=2, sort_keys=True, ensure_ascii=False)
    Path(args.input).write_text(text.translate(_HTML_ESCAPES) + "\n", encoding="utf-8")
    print(f"Done! {len(records)} matching objects written to {os.path.basename(args.input)}")

    extract_to_csv(args.input, args.csv_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())