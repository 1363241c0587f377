"""Scan downloaded gzip files for target billing codes and collect matches as JSON lines."""

from __future__ import annotations

import argparse
import json
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, TextIO

from .csvexport import extract_to_csv
from .matching import StreamFormatError, StreamingGzipProcessor

PROCESSED_FILES_LOG = "processed_files.json"
DEFAULT_DOWNLOADS = os.path.join("..", "scraper", "downloads")
DEFAULT_OUTPUT = "matches.jsonl"
DEFAULT_CSV = "matches.csv"


@dataclass
class FileResult:
    """Outcome of scanning one file."""

    file_name: str
    records_found: int = 0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def load_processed_files(path: str | os.PathLike[str] = PROCESSED_FILES_LOG) -> set[str]:
    """Names of files already processed; empty when the log is missing or empty."""
    try:
        raw = Path(path).read_bytes()
    except FileNotFoundError:
        return set()
    if not raw.strip():
        return set()
    data = json.loads(raw)
    if data is None:
        return set()
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ValueError(f"{os.fspath(path)}: expected a JSON array of file names")
    return set(data)


def save_processed_files(
    files: Iterable[str], path: str | os.PathLike[str] = PROCESSED_FILES_LOG
) -> None:
    """Write the processed file names as an indented JSON array."""
    text = json.dumps(sorted(set(files)), indent=2, ensure_ascii=False)
    Path(path).write_text(text + "\n", encoding="utf-8")


def find_new_files(
    directory: str | os.PathLike[str], processed: set[str] | frozenset[str] = frozenset()
) -> list[str]:
    """Paths of '.gz' files directly in directory whose names are not yet processed."""
    found: list[str] = []
    with os.scandir(directory) as entries:
        for entry in sorted(entries, key=lambda e: e.name):
            if entry.is_dir():
                continue
            if not entry.name.lower().endswith(".gz"):
                continue
            if entry.name in processed:
                continue
            found.append(os.path.join(os.fspath(directory), entry.name))
    return found


def process_file(
    file_path: str | os.PathLike[str], writer: TextIO, lock: threading.Lock
) -> FileResult:
    """Scan one file, writing its matches to writer while holding lock."""
    path = os.fspath(file_path)
    result = FileResult(file_name=os.path.basename(path))
    with lock:
        if path.lower().endswith(".gz"):
            try:
                processor = StreamingGzipProcessor(path)
            except (OSError, StreamFormatError) as exc:
                result.error = StreamFormatError(f"failed to create gzip processor: {exc}")
            else:
                try:
                    result.records_found = processor.process_matches(writer)
                except (OSError, StreamFormatError) as exc:
                    result.error = exc
        else:
            result.error = ValueError(
                "JSON file processing is disabled - only processing .gz files"
            )
        try:
            writer.flush()
        except OSError as exc:
            if result.error is None:
                result.error = OSError(f"failed to flush writer: {exc}")
    if result.error is not None:
        result.records_found = 0
    return result


def _default_workers() -> int:
    return max(1, (os.cpu_count() or 1) // 2)


def run(
    files: list[str],
    output_file: str | os.PathLike[str] = DEFAULT_OUTPUT,
    workers: int | None = None,
) -> list[FileResult]:
    """Scan files concurrently, appending matches to output_file; results in completion order."""
    workers = workers or _default_workers()
    total = len(files)
    results: list[FileResult] = []
    lock = threading.Lock()
    with open(output_file, "a", encoding="utf-8", newline="\n") as out:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(process_file, path, out, lock) for path in files]
            for done, future in enumerate(as_completed(futures), start=1):
                res = future.result()
                results.append(res)
                if res.error is not None:
                    print(
                        f"\n[{done}/{total}] Error processing {res.file_name}: {res.error}",
                        end="",
                    )
                elif res.records_found > 0:
                    print(
                        f"\n[{done}/{total}] Processed {res.file_name}, "
                        f"found {res.records_found} records.",
                        end="",
                    )
    return results


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Collect target billing-code records from gzip files and export them to CSV."
    )
    parser.add_argument("--downloads", default=DEFAULT_DOWNLOADS)
    parser.add_argument("--output", default=DEFAULT_OUTPUT)
    parser.add_argument("--log", default=PROCESSED_FILES_LOG)
    parser.add_argument("--csv", dest="csv_path", default=DEFAULT_CSV)
    parser.add_argument("--workers", type=int, default=None)
    args = parser.parse_args(argv)

    print("Starting optimized streaming JSON parser...")
    processed = load_processed_files(args.log)
    print(f"Loaded {len(processed)} previously processed files from {args.log}")

    files: list[str] = []
    try:
        files = find_new_files(args.downloads, processed)
        print(f"Found {len(files)} new gzip files to process directly")
    except OSError as exc:
        print(f"Could not access gzip directory {args.downloads}: {exc}")

    if not files:
        print("No new files to process.")
        return 0

    print(f"Total files to process: {len(files)}")
    workers = args.workers if args.workers and args.workers > 0 else _default_workers()
    print(f"Using {workers} worker(s) to process files...")

    results = run(files, args.output, workers)
    total_new = 0
    for res in results:
        if res.error is None:
            total_new += res.records_found
            processed.add(res.file_name)
    print()

    try:
        save_processed_files(processed, args.log)
    except OSError as exc:
        print(f"\nWarning: could not update processed files log: {exc}")

    print("\nProcessing complete!")
    print(f"Total new records added: {total_new}")
    print(f"Files processed in this run: {len(results)}")
    print(f"Files skipped (already processed): {len(processed)}")

    print("\nGenerating CSV output...")
    extract_to_csv(args.output, args.csv_path)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())