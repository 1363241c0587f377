"""Decompress downloaded gzip files and check that their content is JSON."""

from __future__ import annotations

import argparse
import gzip
import json
import os
import re
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, BinaryIO

DEFAULT_DOWNLOADS = os.path.join("..", "scraper", "downloads")
DEFAULT_OUTPUT = "output"

_ROBUST_CHUNK = 8192
_STREAM_CHUNK = 4096
_COPY_CHUNK = 64 * 1024
_PROGRESS_EVERY = 1000
_READ_ERRORS = (EOFError, OSError, zlib.error)
_WHITESPACE = re.compile(r"[ \t\n\r]*")


class DecompressionError(Exception):
    """A gzip file could not be opened, decompressed or validated."""


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON value {name}")


_DECODER = json.JSONDecoder(parse_constant=_reject_constant)


def _skip_whitespace(text: str, pos: int) -> int:
    match = _WHITESPACE.match(text, pos)
    return match.end() if match else pos


def output_path_for(
    gzip_file: str | os.PathLike[str], output_dir: str | os.PathLike[str] = DEFAULT_OUTPUT
) -> Path:
    """Where a gzip file is decompressed to: its base name without '.gz' inside output_dir."""
    name = os.fspath(gzip_file)
    if name.endswith(".gz"):
        name = name[: -len(".gz")]
    return Path(output_dir) / os.path.basename(name)


def is_already_decompressed(
    gzip_file: str | os.PathLike[str], output_dir: str | os.PathLike[str] = DEFAULT_OUTPUT
) -> bool:
    """True when the decompressed output exists and is not empty."""
    try:
        return os.stat(output_path_for(gzip_file, output_dir)).st_size > 0
    except OSError:
        return False


def _print_skip(gzip_file: str | os.PathLike[str], output_dir: str | os.PathLike[str]) -> None:
    target = output_path_for(gzip_file, output_dir).name
    print(f"⏭ Skipping {os.path.basename(os.fspath(gzip_file))} - already decompressed to {target}")


def _check_header(raw: BinaryIO) -> None:
    header = raw.read(10)
    if not header:
        raise DecompressionError("failed to create gzip reader: EOF")
    if len(header) < 10:
        raise DecompressionError("failed to create gzip reader: unexpected EOF")
    if header[:2] != b"\x1f\x8b" or header[2] != 8:
        raise DecompressionError("failed to create gzip reader: gzip: invalid header")
    raw.seek(0)


@contextmanager
def _open_gzip(
    path: str | os.PathLike[str], open_message: str = "failed to open file"
) -> Iterator[gzip.GzipFile]:
    try:
        raw = open(path, "rb")
    except OSError as exc:
        raise DecompressionError(f"{open_message}: {exc}") from exc
    try:
        _check_header(raw)
        with gzip.GzipFile(fileobj=raw, mode="rb") as reader:
            yield reader
    finally:
        raw.close()


def _ensure_output_dir(output_dir: str | os.PathLike[str]) -> None:
    try:
        os.makedirs(output_dir, exist_ok=True)
    except OSError as exc:
        raise DecompressionError(f"failed to create output directory: {exc}") from exc


def _create_output(path: Path) -> BinaryIO:
    try:
        return open(path, "wb")
    except OSError as exc:
        raise DecompressionError(f"failed to create output file: {exc}") from exc


def _copy(reader: gzip.GzipFile, out: BinaryIO) -> int:
    total = 0
    for chunk in iter(lambda: reader.read(_COPY_CHUNK), b""):
        out.write(chunk)
        total += len(chunk)
    return total


def robust_decompress(
    gzip_file: str | os.PathLike[str], output_dir: str | os.PathLike[str] = DEFAULT_OUTPUT
) -> int | None:
    """Decompress as much as possible, keeping partial output of a corrupted stream.

    Returns the number of bytes written, or None when the file was already decompressed.
    """
    if is_already_decompressed(gzip_file, output_dir):
        _print_skip(gzip_file, output_dir)
        return None

    output_file = output_path_for(gzip_file, output_dir)
    with _open_gzip(gzip_file) as reader:
        _ensure_output_dir(output_dir)
        with _create_output(output_file) as out:
            total = 0
            chunks = 0
            while True:
                try:
                    chunk = reader.read(_ROBUST_CHUNK)
                except _READ_ERRORS as exc:
                    if total > 0:
                        print(f"⚠ Warning: Got error during decompression: {exc}")
                        print(
                            f"⚠ But we've already decompressed {total} bytes, "
                            "attempting to save..."
                        )
                        print(
                            f"✓ Successfully saved {total} bytes to {output_file} "
                            "(partial decompression)"
                        )
                        return total
                    raise DecompressionError(f"error reading gzip: {exc}") from exc
                if not chunk:
                    break
                try:
                    out.write(chunk)
                except OSError as exc:
                    raise DecompressionError(f"failed to write to output: {exc}") from exc
                total += len(chunk)
                chunks += 1
                if chunks % _PROGRESS_EVERY == 0:
                    print(f"Processed {chunks} chunks, {total} total bytes")

    print(f"✓ Successfully decompressed {total} bytes to {output_file}")
    return total


def simple_decompress(
    gzip_file: str | os.PathLike[str], output_dir: str | os.PathLike[str] = DEFAULT_OUTPUT
) -> int | None:
    """Decompress a whole file in one copy.

    Returns the number of bytes written, or None when the file was already decompressed.
    """
    if is_already_decompressed(gzip_file, output_dir):
        _print_skip(gzip_file, output_dir)
        return None

    output_file = output_path_for(gzip_file, output_dir)
    with _open_gzip(gzip_file) as reader:
        _ensure_output_dir(output_dir)
        with _create_output(output_file) as out:
            try:
                written = _copy(reader, out)
            except _READ_ERRORS as exc:
                raise DecompressionError(f"failed to copy data: {exc}") from exc

    print(f"✓ Successfully decompressed {written} bytes to {output_file}")
    return written


def read_gzipped_json(filename: str | os.PathLike[str]) -> bytes:
    """Return the decompressed bytes of a gzip file, checking that non-empty content is JSON."""
    with _open_gzip(filename) as reader:
        try:
            data = reader.read()
        except EOFError as exc:
            raise DecompressionError(
                f"unexpected EOF - gzip file may be corrupted or incomplete: {exc}"
            ) from exc
        except _READ_ERRORS as exc:
            raise DecompressionError(f"failed to read decompressed data: {exc}") from exc

    if data:
        try:
            _DECODER.decode(data.decode("utf-8", errors="replace"))
        except ValueError as exc:
            raise DecompressionError(f"decompressed data is not valid JSON: {exc}") from exc
        print("✓ Valid JSON structure detected")
    return data


def decompress_gzip_to_file(
    gzip_file: str | os.PathLike[str], output_file: str | os.PathLike[str]
) -> int:
    """Decompress gzip_file into output_file and return the number of bytes written."""
    with _open_gzip(gzip_file, "failed to open gzip file") as reader:
        with _create_output(Path(output_file)) as out:
            try:
                written = _copy(reader, out)
            except EOFError as exc:
                raise DecompressionError(
                    f"unexpected EOF during decompression - file may be corrupted: {exc}"
                ) from exc
            except _READ_ERRORS as exc:
                raise DecompressionError(f"failed to write decompressed data: {exc}") from exc

    print(f"Wrote {written} bytes to {os.fspath(output_file)}")
    return written


def process_gzip_stream(filename: str | os.PathLike[str]) -> tuple[int, int]:
    """Read a gzip file in small chunks; return (chunk count, total decompressed bytes)."""
    total = 0
    chunks = 0
    with _open_gzip(filename) as reader:
        while True:
            try:
                chunk = reader.read(_STREAM_CHUNK)
            except EOFError as exc:
                raise DecompressionError(
                    f"unexpected EOF during stream processing - file may be corrupted: {exc}"
                ) from exc
            except _READ_ERRORS as exc:
                raise DecompressionError(f"error reading stream: {exc}") from exc
            if not chunk:
                break
            total += len(chunk)
            chunks += 1
            if chunks % _PROGRESS_EVERY == 0:
                print(f"Processed {chunks} chunks, {total} total bytes")

    print(f"Stream processing complete: {chunks} chunks, {total} total bytes")
    return chunks, total


def is_valid_json(filename: str | os.PathLike[str]) -> bool:
    """True when the file starts with a complete JSON value and what follows also decodes."""
    try:
        text = Path(filename).read_bytes().decode("utf-8", errors="replace")
    except OSError:
        return False
    try:
        _, end = _DECODER.raw_decode(text, _skip_whitespace(text, 0))
        pos = _skip_whitespace(text, end)
        if pos == len(text):
            return True
        _DECODER.raw_decode(text, pos)
    except ValueError:
        return False
    return True


def _walk(path: str) -> Iterator[tuple[str, os.stat_result]]:
    info = os.lstat(path)
    yield path, info
    if os.path.isdir(path) and not os.path.islink(path):
        for name in sorted(os.listdir(path)):
            yield from _walk(os.path.join(path, name))


def find_gzip_files(directory: str | os.PathLike[str]) -> list[str]:
    """All non-empty '.gz' files below directory, in lexical walk order."""
    found: list[str] = []
    for path, info in _walk(os.fspath(directory)):
        if os.path.isdir(path) and not os.path.islink(path):
            continue
        if not os.path.basename(path).lower().endswith(".gz"):
            continue
        if info.st_size == 0:
            print(f"⚠ Skipping empty file: {os.path.basename(path)}")
            continue
        found.append(path)
    return found


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Decompress every gzip file in a directory and check the JSON inside."
    )
    parser.add_argument("directory", nargs="?", default=DEFAULT_DOWNLOADS)
    parser.add_argument("--output", default=DEFAULT_OUTPUT)
    args = parser.parse_args(argv)
    output_dir = args.output

    print(f"Scanning directory: {args.directory}")
    try:
        gzip_files = find_gzip_files(args.directory)
    except OSError as exc:
        print(f"Error scanning directory: {exc}")
        return 1

    total = len(gzip_files)
    print(f"Found {total} gzip files to process")

    success = errors = partial = skipped = 0
    for index, gzip_file in enumerate(gzip_files, start=1):
        print(f"\n[{index}/{total}] Processing: {os.path.basename(gzip_file)}")

        if is_already_decompressed(gzip_file, output_dir):
            skipped += 1
            continue

        try:
            simple_decompress(gzip_file, output_dir)
        except DecompressionError as exc:
            print(f"⚠ Simple decompression failed: {exc}")
            print("🔄 Trying robust decompression...")
            try:
                robust_decompress(gzip_file, output_dir)
            except DecompressionError as robust_exc:
                print(
                    f"❌ Both decompression methods failed for "
                    f"{os.path.basename(gzip_file)}: {robust_exc}"
                )
                errors += 1
                continue
            print("⚠ Robust decompression completed (may be partial)")
            partial += 1
        else:
            print("✅ Simple decompression successful")
            success += 1

        if is_valid_json(output_path_for(gzip_file, output_dir)):
            print("✅ JSON validation passed")
        else:
            print("⚠ JSON validation failed - file may be incomplete")
            if success > 0:
                success -= 1
            partial += 1

    print("\n=== Summary ===")
    print(f"Total files: {total}")
    print(f"Skipped (already decompressed): {skipped}")
    print(f"Complete & Valid: {success}")
    print(f"Partial/Invalid: {partial}")
    print(f"Failed: {errors}")

    if partial > 0:
        print(f"\n⚠ Warning: {partial} files may have incomplete JSON due to gzip corruption")
        print("These files may cause 'unexpected end of JSON input' errors in your pipeline")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())