# mrfparse

Tools for working with large machine-readable price files. They download the
files, unpack them, and pick out the records for a fixed set of emergency and
critical-care billing codes (99283, 99284, 99285, 99291). The matching records
are then flattened into a CSV file.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Commands

### 1. Download

```
mrf-scrape [urls.txt] [--dir DIR]
```

`mrf-scrape` reads URLs from the file, one per line. It skips blank lines,
lines that start with `#`, and lines that are not `http://` or `https://`
URLs. It also decodes the escapes `\u0026`, `\u003d`, `\u003f` and `\u007e`.

Each file is saved under the last segment of its URL path. The target is
`--dir`, or `downloads/` by default. A file whose name is already in that
directory is not downloaded again.

Downloads run in parallel: 10 at a time on machines with six or more CPU
cores, and 5 at a time otherwise. A request is retried up to three times,
with exponential backoff and jitter, in two cases:

- it fails with a network error such as a timeout, a reset or refused
  connection, or an unreachable host;
- it returns status 429, 500, 502, 503 or 504.

At the end a summary of successes, failures and retries is printed.

### 2. Stream and match

```
mrf-pipeline [--downloads DIR] [--output FILE] [--log FILE] [--csv FILE] [--workers N]
```

`mrf-pipeline` scans the `.gz` files found directly in `--downloads`. The
default is `../scraper/downloads`, so pass `--downloads downloads` when you
run it in the same directory as `mrf-scrape`.

Each file is decompressed and parsed as a stream. The content may be one JSON
array of records, or one or more JSON objects. Matching records are appended
to `--output` (default `matches.jsonl`), one per line. Inside objects the
search runs at every depth.

The names of files that were processed without error are kept in `--log`
(default `processed_files.json`). Those files are skipped on later runs.
Several files are handled at once; the default number of workers is half the
CPU count, and at least 1.

Last, the command writes `--csv` (default `matches.csv`), with one row per
negotiated price. Each row has:

- the record fields;
- service code columns, at most 100;
- provider reference columns, at most 50;
- counts of provider references, provider groups, NPIs and TINs;
- the NPI count and TIN of the first provider group.

### Optional steps

```
mrf-gunzip [DIRECTORY] [--output DIR]
```

`mrf-gunzip` searches `DIRECTORY` recursively for non-empty `.gz` files. The
default directory is `../scraper/downloads`. Each file is unpacked into
`--output` (default `output/`). Files whose unpacked copy already exists and
is not empty are skipped.

The command tries a plain decompression first. If that fails, it falls back to
a tolerant one that keeps whatever could be recovered from a damaged stream.
Each result is checked for valid JSON, and a summary of complete, partial and
failed files is printed.

```
mrf-search [INPUT] [--csv FILE]
```

`mrf-search` loads `INPUT` (default `billing_code_matches.json`) and searches
it at every depth for objects with a target billing code. If any are found,
`INPUT` is **overwritten** with the matches as an indented JSON array. After
that, `--csv` (default `extracted.csv`) is written with one row per
negotiated price.

```
mrf-format data.json
```

`mrf-format` writes an indented copy of the file, with sorted keys, to
`data_formatted.json` in the current directory.

## Library use

```python
from mrfparse.matching import StreamingGzipProcessor, find_matching_objects_recursive
from mrfparse.csvexport import load_records, extract_to_csv
from mrfparse.jsonformat import formatted_filename

with open("matches.jsonl", "a") as out, StreamingGzipProcessor("rates.json.gz") as proc:
    count = proc.process_matches(out)

records = load_records("matches.jsonl")
rows = extract_to_csv("matches.jsonl", "matches.csv")
```

Other modules:

- `mrfparse.gunzip` has the decompression helpers, such as
  `simple_decompress`, `robust_decompress`, `read_gzipped_json` and
  `is_valid_json`.
- `mrfparse.scraper` has `download_file`, `download_files` and the retry
  helpers.
- `mrfparse.pipeline` has `run`, `process_file` and the processed-files log
  functions.

Problems are reported as exceptions:

- `mrfparse.matching.StreamFormatError` is raised when a compressed stream
  cannot be read or does not hold the expected JSON.
- `mrfparse.gunzip.DecompressionError` is raised when a gzip file cannot be
  opened, decompressed or validated.

## Limits

- `mrf-pipeline` reads gzip files only. Uncompressed `.json` files are not
  scanned.
- The set of billing codes is fixed and cannot be changed from the command
  line.
- Matches are kept only as JSON lines and CSV. There is no database or other
  storage.