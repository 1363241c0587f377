"""Download the files listed in a URL file, with retries and bounded concurrency."""

from __future__ import annotations

import argparse
import os
import random
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlsplit

import requests
from requests.adapters import HTTPAdapter

DEFAULT_URL_FILE = "urls.txt"
DEFAULT_DOWNLOAD_DIR = "downloads"
REQUEST_TIMEOUT = 60.0
COPY_BUFFER = 1024 * 1024
REQUEST_PAUSE = 0.1
PROGRESS_INTERVAL = 2.0

_RETRYABLE_ERRORS = (
    "timeout",
    "connection reset",
    "connection refused",
    "temporary failure",
    "no route to host",
    "network is unreachable",
)
_RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_UNICODE_ESCAPES = (
    ("\\u0026", "&"),
    ("\\u003d", "="),
    ("\\u003f", "?"),
    ("\\u007e", "~"),
)


@dataclass
class DownloadResult:
    """Outcome of downloading one URL."""

    url: str
    success: bool = False
    error: Exception | None = None
    file_path: str | None = None
    retries: int = 0


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy; delays are in seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter_factor: float = 0.1


DEFAULT_RETRY_CONFIG = RetryConfig()


def calculate_backoff_delay(attempt: int, config: RetryConfig = DEFAULT_RETRY_CONFIG) -> float:
    """Seconds to wait before the next attempt: exponential with jitter, capped."""
    if attempt <= 0:
        return config.initial_delay
    delay = config.initial_delay * config.backoff_factor**attempt
    delay += delay * config.jitter_factor * (random.random() * 2 - 1)
    return min(delay, config.max_delay)


def is_retryable_error(err: BaseException | None) -> bool:
    """True for network errors that are usually transient."""
    if err is None:
        return False
    text = str(err).lower()
    return any(marker in text for marker in _RETRYABLE_ERRORS)


def is_retryable_http_status(status_code: int) -> bool:
    return status_code in _RETRYABLE_STATUSES


def optimal_concurrency() -> int:
    """A deliberately low number of parallel downloads, to stay friendly to the server."""
    cores = os.cpu_count() or 1
    return 10 if cores >= 6 else 5


def fix_unicode_escapes(text: str) -> str:
    """Replace the escapes commonly left in copied URLs with their characters."""
    for escape, char in _UNICODE_ESCAPES:
        text = text.replace(escape, char)
    return text


def is_url(text: str) -> bool:
    return text.startswith(("http://", "https://"))


def load_urls_from_file(filename: str | os.PathLike[str]) -> list[str]:
    """URLs from a text file, one per line; blank lines, comments and non-URLs are skipped."""
    with open(filename, encoding="utf-8", newline="") as handle:
        content = handle.read()
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    urls: list[str] = []
    for raw in lines:
        line = raw[:-1] if raw.endswith("\r") else raw
        if not line or line.startswith("#"):
            continue
        cleaned = fix_unicode_escapes(line)
        if is_url(cleaned):
            urls.append(cleaned)
    return urls


def filename_from_url(url: str) -> str:
    """Last segment of the decoded URL path, or 'unknown_file' when it is empty."""
    path = unquote(urlsplit(url).path)
    return path.split("/")[-1] or "unknown_file"


def _make_session(pool_size: int = 100) -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def download_file(
    url: str,
    download_dir: str | os.PathLike[str],
    existing: set[str] | frozenset[str] = frozenset(),
    session: requests.Session | None = None,
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> DownloadResult:
    """Download one URL into download_dir, retrying transient failures."""
    result = DownloadResult(url=url)
    try:
        filename = filename_from_url(url)
    except ValueError as exc:
        result.error = ValueError(f"invalid URL: {exc}")
        return result

    file_path = os.path.join(os.fspath(download_dir), filename)
    if filename in existing:
        result.success = True
        result.file_path = file_path
        return result

    client = session if session is not None else _make_session()
    for attempt in range(config.max_retries + 1):
        if attempt > 0:
            time.sleep(calculate_backoff_delay(attempt - 1, config))

        try:
            response = client.get(url, stream=True, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as exc:
            result.error = ConnectionError(f"HTTP request failed: {exc}")
            result.retries = attempt
            if is_retryable_error(exc) and attempt < config.max_retries:
                continue
            return result

        with response:
            if response.status_code != 200:
                result.error = RuntimeError(f"HTTP status {response.status_code}")
                result.retries = attempt
                if (
                    is_retryable_http_status(response.status_code)
                    and attempt < config.max_retries
                ):
                    continue
                return result

            try:
                out = open(file_path, "wb")
            except OSError as exc:
                result.error = OSError(f"failed to create file: {exc}")
                result.retries = attempt
                return result

            try:
                with out:
                    for chunk in response.iter_content(COPY_BUFFER):
                        out.write(chunk)
            except (OSError, requests.RequestException) as exc:
                Path(file_path).unlink(missing_ok=True)
                result.error = OSError(f"failed to write file: {exc}")
                result.retries = attempt
                return result

        result.success = True
        result.file_path = file_path
        result.retries = attempt
        return result

    result.error = RuntimeError("max retries exceeded")
    result.retries = config.max_retries
    return result


def _print_progress(done: int, total: int) -> None:
    print(f"\rProgress: {done / total * 100:.1f}% ({done}/{total})", end="", flush=True)


def download_files(
    urls: list[str],
    download_dir: str | os.PathLike[str],
    concurrency: int,
    existing: set[str] | frozenset[str] = frozenset(),
) -> list[DownloadResult]:
    """Download all URLs with at most concurrency at a time; results follow the URL order."""
    if not urls:
        return []
    total = len(urls)
    results: list[DownloadResult | None] = [None] * total
    session = _make_session(max(concurrency, 1))

    def job(url: str) -> DownloadResult:
        time.sleep(REQUEST_PAUSE)
        return download_file(url, download_dir, existing, session)

    done = 0
    last_print = time.monotonic()
    with ThreadPoolExecutor(max_workers=max(concurrency, 1)) as pool:
        futures = {pool.submit(job, url): index for index, url in enumerate(urls)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
            done += 1
            now = time.monotonic()
            if now - last_print >= PROGRESS_INTERVAL:
                _print_progress(done, total)
                last_print = now
    _print_progress(done, total)
    print()
    session.close()
    return [r for r in results if r is not None]


def count_existing_files(download_dir: str | os.PathLike[str]) -> int:
    """Number of non-directory entries in download_dir; 0 when it cannot be read."""
    return len(build_existing_file_map(download_dir))


def build_existing_file_map(download_dir: str | os.PathLike[str]) -> set[str]:
    """Names of the non-directory entries in download_dir; empty when it cannot be read."""
    try:
        with os.scandir(download_dir) as entries:
            return {entry.name for entry in entries if not entry.is_dir()}
    except OSError:
        return set()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Download every URL listed in a text file.")
    parser.add_argument("url_file", nargs="?", default=DEFAULT_URL_FILE)
    parser.add_argument("--dir", dest="download_dir", default=DEFAULT_DOWNLOAD_DIR)
    args = parser.parse_args(argv)

    print("Starting URL Downloader...")
    print(f"Hardware: {os.cpu_count() or 1} CPU cores detected")

    print(f"Reading URLs from: {args.url_file}")
    try:
        urls = load_urls_from_file(args.url_file)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Error reading URL file: {exc}")
        print("Usage: scraper [urls.txt]")
        print("Create a urls.txt file with one URL per line")
        return 1

    print(f"Found {len(urls)} URLs to download")
    if not urls:
        print("No valid URLs found in the file")
        return 0

    download_dir = args.download_dir
    try:
        os.makedirs(download_dir, exist_ok=True)
    except OSError as exc:
        print(f"Error creating downloads directory: {exc}")
        return 1

    print(f"Found {count_existing_files(download_dir)} existing files in downloads directory")
    concurrency = optimal_concurrency()
    print(f"Using {concurrency} concurrent downloads")
    print("Starting download process...")
    print(f"Progress: 0.0% (0/{len(urls)})")

    print("Pre-checking existing files...")
    existing = build_existing_file_map(download_dir)
    results = download_files(urls, download_dir, concurrency, existing)

    success = retried = total_retries = 0
    for result in results:
        if result.success:
            success += 1
            if result.retries > 0:
                retried += 1
                total_retries += result.retries
        else:
            print(
                f"Failed to download {result.url} after {result.retries + 1} attempts: "
                f"{result.error}"
            )

    total = len(urls)
    print("\nDownload Summary:")
    print(f"Total URLs: {total}")
    print(f"Successful: {success}")
    print(f"Failed: {total - success}")
    print(f"Success Rate: {success / total * 100:.1f}%")
    if retried > 0:
        print(
            f"Downloads that required retries: {retried} ({retried / total * 100:.1f}%)"
        )
        print(f"Average retries per failed download: {total_retries / retried:.1f}")
    print(f"Files saved to: {download_dir}/")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())