"""Read, validate and pretty-print JSON files."""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON value {name}")


def _dumps_indented(data: Any) -> str:
    """Serialise with sorted keys, two-space indent and HTML-safe escapes."""
    text = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False)
    return text.translate(_HTML_ESCAPES)


def parse_json_file(input_file: str | os.PathLike[str]) -> Any:
    """Read and parse a JSON file, returning the decoded data."""
    try:
        raw = Path(input_file).read_bytes()
    except OSError as exc:
        raise OSError(f"error reading file {input_file}: {exc}") from exc
    try:
        return json.loads(raw, parse_constant=_reject_constant)
    except ValueError as exc:
        raise ValueError(f"error parsing JSON in {input_file}: {exc}") from exc


def formatted_filename(input_file: str | os.PathLike[str]) -> str:
    """Name of the formatted copy: the base name without extension plus '_formatted.json'."""
    name = os.path.basename(os.fspath(input_file))
    dot = name.rfind(".")
    if dot >= 0:
        name = name[:dot]
    return f"{name}_formatted.json"


def format_json_to_file(input_file: str | os.PathLike[str]) -> str:
    """Write an indented copy of a JSON file to the current directory and return its name."""
    data = parse_json_file(input_file)
    output_file = formatted_filename(input_file)
    try:
        Path(output_file).write_text(_dumps_indented(data), encoding="utf-8")
    except OSError as exc:
        raise OSError(f"error writing to {output_file}: {exc}") from exc
    print(f"Successfully formatted JSON from {os.fspath(input_file)} to {output_file}")
    return output_file


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    prog = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "jsonformat"
    if not args:
        print(f"Usage: {prog} <input_file.json>", file=sys.stderr)
        print(f"Example: {prog} data.json", file=sys.stderr)
        return 1
    try:
        format_json_to_file(args[0])
    except (OSError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())