"""Stream gzip-compressed JSON and write out objects with target billing codes."""

from __future__ import annotations

import codecs
import gzip
import json
import os
import zlib
from typing import Any, TextIO

from .search import TARGET_CODES

_CHUNK = 64 * 1024
_JSON_WHITESPACE = " \t\n\r"
_HTML_ESCAPES = str.maketrans(
    {
        "<": "\\u003c",
        ">": "\\u003e",
        "&": "\\u0026",
        "\u2028": "\\u2028",
        "\u2029": "\\u2029",
    }
)
_DECODER = json.JSONDecoder()


class StreamFormatError(Exception):
    """The compressed stream could not be read or is not the expected JSON."""


def is_target_match(record: Any) -> bool:
    """True when record is an object whose billing_code is a target code."""
    if not isinstance(record, dict):
        return False
    code = record.get("billing_code")
    return isinstance(code, str) and code in TARGET_CODES


def find_matching_objects_recursive(data: Any) -> list[dict[str, Any]]:
    """Every object at any depth whose billing_code is a target code, in document order."""
    matches: list[dict[str, Any]] = []
    stack = [data]
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            if is_target_match(node):
                matches.append(node)
            stack.extend(reversed(list(node.values())))
        elif isinstance(node, list):
            stack.extend(reversed(node))
    return matches


def _encode(record: Any) -> str:
    text = json.dumps(record, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return text.translate(_HTML_ESCAPES) + "\n"


class StreamingGzipProcessor:
    """Reads a gzip file of JSON incrementally and writes matching records as JSON lines."""

    def __init__(self, gzip_file_path: str | os.PathLike[str]) -> None:
        try:
            self._raw = open(gzip_file_path, "rb")
        except OSError as exc:
            raise OSError(f"failed to open gzip file: {exc}") from exc
        header = self._raw.read(10)
        if len(header) < 10 or header[:2] != b"\x1f\x8b" or header[2] != 8:
            self._raw.close()
            reason = "EOF" if not header else "invalid header"
            raise StreamFormatError(f"failed to create gzip reader: {reason}")
        self._raw.seek(0)
        self._gzip: gzip.GzipFile | None = gzip.GzipFile(fileobj=self._raw, mode="rb")
        self._text = codecs.getincrementaldecoder("utf-8")("replace")
        self._buf = ""
        self._pos = 0
        self._eof = False

    def close(self) -> None:
        if self._gzip is not None:
            self._gzip.close()
            self._gzip = None
        self._raw.close()

    def __enter__(self) -> StreamingGzipProcessor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _fill(self) -> None:
        if self._eof:
            return
        if self._pos > _CHUNK:
            self._buf = self._buf[self._pos :]
            self._pos = 0
        size = max(_CHUNK, len(self._buf) - self._pos)
        try:
            chunk = self._gzip.read(size) if self._gzip is not None else b""
        except (OSError, EOFError, zlib.error) as exc:
            raise StreamFormatError(f"failed to decode record: {exc}") from exc
        if chunk:
            self._buf += self._text.decode(chunk)
        else:
            self._buf += self._text.decode(b"", final=True)
            self._eof = True

    def _peek(self, whitespace: str | None = _JSON_WHITESPACE) -> str | None:
        while True:
            while self._pos < len(self._buf):
                char = self._buf[self._pos]
                is_space = char.isspace() if whitespace is None else char in whitespace
                if not is_space:
                    return char
                self._pos += 1
            if self._eof:
                return None
            self._fill()

    def _decode_value(self) -> Any:
        while True:
            try:
                value, end = _DECODER.raw_decode(self._buf, self._pos)
            except ValueError as exc:
                if self._eof:
                    raise StreamFormatError(f"failed to decode record: {exc}") from exc
                self._fill()
                continue
            if end == len(self._buf) and not self._eof:
                self._fill()
                continue
            self._pos = end
            return value

    def _next_record(self) -> dict[str, Any] | None:
        value = self._decode_value()
        if value is not None and not isinstance(value, dict):
            raise StreamFormatError(
                f"failed to decode record: cannot decode {type(value).__name__} into object"
            )
        return value

    def process_matches(self, writer: TextIO) -> int:
        """Write matching records to writer, one JSON line each; return how many."""
        try:
            first = self._peek(whitespace=None)
            if first is None:
                raise StreamFormatError("failed to peek first byte: EOF")
            if first == "[":
                return self._process_array(writer)
            if first == "{":
                return self._process_objects(writer)
            raise StreamFormatError(f"unexpected JSON structure, starts with: {first}")
        finally:
            self.close()

    def _process_array(self, writer: TextIO) -> int:
        self._pos += 1
        count = 0
        first = True
        while True:
            char = self._peek()
            if char is None:
                raise StreamFormatError("failed to decode record: unexpected EOF")
            if char == "]":
                self._pos += 1
                return count
            if not first:
                if char != ",":
                    raise StreamFormatError(
                        f"failed to decode record: invalid character {char!r} after array element"
                    )
                self._pos += 1
                self._peek()
            first = False
            record = self._next_record()
            if is_target_match(record):
                writer.write(_encode(record))
                count += 1

    def _process_objects(self, writer: TextIO) -> int:
        count = 0
        while self._peek() is not None:
            record = self._next_record()
            if is_target_match(record):
                writer.write(_encode(record))
                count += 1
            else:
                for match in find_matching_objects_recursive(record):
                    writer.write(_encode(match))
                    count += 1
        return count