import csv
import gzip
import io
import json
import threading

import pytest

from mrfparse.pipeline import (
    FileResult,
    find_new_files,
    load_processed_files,
    main,
    process_file,
    run,
    save_processed_files,
)

MATCH = {"billing_code": "99283", "name": "ED visit"}
OTHER = {"billing_code": "12345", "name": "Other"}


def _write_gz(path, data):
    path.write_bytes(gzip.compress(json.dumps(data).encode("utf-8")))
    return path


def test_load_missing_log_is_empty(tmp_path):
    assert load_processed_files(tmp_path / "missing.json") == set()


def test_load_empty_log_is_empty(tmp_path):
    log = tmp_path / "log.json"
    log.write_text("")
    assert load_processed_files(log) == set()


def test_save_and_load_round_trip(tmp_path):
    log = tmp_path / "log.json"
    save_processed_files({"b.gz", "a.gz"}, log)
    assert load_processed_files(log) == {"a.gz", "b.gz"}
    assert json.loads(log.read_text()) == ["a.gz", "b.gz"]


def test_save_empty_writes_empty_array(tmp_path):
    log = tmp_path / "log.json"
    save_processed_files(set(), log)
    assert json.loads(log.read_text()) == []
    assert load_processed_files(log) == set()


@pytest.mark.parametrize("content", ["not json", '{"a": 1}', "[1, 2]"])
def test_load_bad_log_raises(tmp_path, content):
    log = tmp_path / "log.json"
    log.write_text(content)
    with pytest.raises(ValueError):
        load_processed_files(log)


def test_find_new_files_filters(tmp_path):
    (tmp_path / "a.gz").write_bytes(b"x")
    (tmp_path / "B.GZ").write_bytes(b"x")
    (tmp_path / "c.json").write_bytes(b"x")
    (tmp_path / "d.gz").mkdir()
    found = find_new_files(tmp_path, {"a.gz"})
    assert found == [str(tmp_path / "B.GZ")]


def test_find_new_files_missing_directory(tmp_path):
    with pytest.raises(OSError):
        find_new_files(tmp_path / "nope", set())


def test_process_file_array_match(tmp_path):
    path = _write_gz(tmp_path / "f.json.gz", [MATCH, OTHER])
    out = io.StringIO()
    result = process_file(path, out, threading.Lock())
    assert result.ok
    assert result.file_name == "f.json.gz"
    assert result.records_found == 1
    lines = out.getvalue().splitlines()
    assert [json.loads(line) for line in lines] == [MATCH]


def test_process_file_nested_object(tmp_path):
    path = _write_gz(tmp_path / "n.gz", {"in_network": [MATCH, OTHER, MATCH]})
    out = io.StringIO()
    result = process_file(path, out, threading.Lock())
    assert result.records_found == 2
    assert [json.loads(line) for line in out.getvalue().splitlines()] == [MATCH, MATCH]


def test_process_file_non_gzip_is_disabled(tmp_path):
    path = tmp_path / "data.json"
    path.write_text(json.dumps([MATCH]))
    out = io.StringIO()
    result = process_file(path, out, threading.Lock())
    assert isinstance(result.error, ValueError)
    assert "disabled" in str(result.error)
    assert result.records_found == 0
    assert out.getvalue() == ""


def test_process_file_bad_gzip(tmp_path):
    path = tmp_path / "bad.gz"
    path.write_bytes(b"this is not gzip data")
    result = process_file(path, io.StringIO(), threading.Lock())
    assert not result.ok
    assert "failed to create gzip processor" in str(result.error)
    assert result.records_found == 0


def test_run_appends_matches(tmp_path):
    a = _write_gz(tmp_path / "a.gz", [MATCH])
    b = _write_gz(tmp_path / "b.gz", [OTHER, MATCH])
    output = tmp_path / "out.jsonl"
    output.write_text(json.dumps(OTHER) + "\n")
    results = run([str(a), str(b)], output, workers=2)
    assert sorted(r.file_name for r in results) == ["a.gz", "b.gz"]
    assert sum(r.records_found for r in results) == 2
    assert all(isinstance(r, FileResult) and r.ok for r in results)
    lines = [json.loads(line) for line in output.read_text().splitlines()]
    assert lines == [OTHER, MATCH, MATCH]


def test_main_end_to_end(tmp_path, monkeypatch, capsys):
    downloads = tmp_path / "downloads"
    downloads.mkdir()
    _write_gz(downloads / "plan.json.gz", [MATCH, OTHER])
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)

    assert main(["--downloads", str(downloads), "--workers", "1"]) == 0
    assert load_processed_files(work / "processed_files.json") == {"plan.json.gz"}
    jsonl = (work / "matches.jsonl").read_text()
    assert [json.loads(line) for line in jsonl.splitlines()] == [MATCH]
    with open(work / "matches.csv", newline="") as handle:
        header = next(csv.reader(handle))
    assert header[0] == "billing_code"
    assert header[-3:] == ["first_group_npi_count", "first_group_tin_type", "first_group_tin_value"]

    capsys.readouterr()
    assert main(["--downloads", str(downloads)]) == 0
    assert "No new files to process." in capsys.readouterr().out
    assert (work / "matches.jsonl").read_text() == jsonl


def test_main_failed_file_not_logged(tmp_path, monkeypatch):
    downloads = tmp_path / "downloads"
    downloads.mkdir()
    (downloads / "broken.gz").write_bytes(b"garbage")
    monkeypatch.chdir(tmp_path)
    assert main(["--downloads", str(downloads), "--workers", "1"]) == 0
    assert load_processed_files(tmp_path / "processed_files.json") == set()