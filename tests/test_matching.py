import gzip
import io
import json

import pytest

from mrfparse.matching import (
    StreamFormatError,
    StreamingGzipProcessor,
    find_matching_objects_recursive,
    is_target_match,
)


def _gz(tmp_path, text, name="in.json.gz"):
    path = tmp_path / name
    path.write_bytes(gzip.compress(text.encode()))
    return path


def _run(path):
    out = io.StringIO()
    with StreamingGzipProcessor(path) as proc:
        count = proc.process_matches(out)
    lines = [json.loads(line) for line in out.getvalue().splitlines()]
    return count, lines


def test_is_target_match():
    assert is_target_match({"billing_code": "99285"})
    assert not is_target_match({"billing_code": "12345"})
    assert not is_target_match({"billing_code": 99285})
    assert not is_target_match(["99285"])


def test_recursive_search_order():
    data = {"a": {"billing_code": "99283", "x": [{"billing_code": "99291"}]}, "b": []}
    codes = [m["billing_code"] for m in find_matching_objects_recursive(data)]
    assert codes == ["99283", "99291"]


def test_array_top_level_only(tmp_path):
    records = [
        {"billing_code": "99283", "v": 1},
        {"billing_code": "1"},
        {"billing_code": "1", "inner": {"billing_code": "99284"}},
        {"billing_code": "99291"},
    ]
    count, lines = _run(_gz(tmp_path, "  " + json.dumps(records)))
    assert count == 2 == len(lines)
    assert lines[0] == records[0]


def test_object_stream_searches_nested(tmp_path):
    text = json.dumps({"in_network": [{"billing_code": "99284"}, {"billing_code": "99285"}]})
    text += "\n" + json.dumps({"billing_code": "99283"})
    count, lines = _run(_gz(tmp_path, text))
    assert count == 3
    assert [l["billing_code"] for l in lines] == ["99284", "99285", "99283"]


def test_large_array_across_chunks(tmp_path):
    records = [{"billing_code": "99283", "pad": "x" * 500, "n": i} for i in range(500)]
    count, lines = _run(_gz(tmp_path, json.dumps(records)))
    assert count == 500
    assert [l["n"] for l in lines] == list(range(500))


def test_output_escapes_html(tmp_path):
    out = io.StringIO()
    path = _gz(tmp_path, json.dumps([{"billing_code": "99283", "d": "a&b"}]))
    with StreamingGzipProcessor(path) as proc:
        proc.process_matches(out)
    assert "\\u0026" in out.getvalue()


def test_bad_start_raises(tmp_path):
    with StreamingGzipProcessor(_gz(tmp_path, '"text"')) as proc:
        with pytest.raises(StreamFormatError, match="unexpected JSON structure"):
            proc.process_matches(io.StringIO())


def test_empty_stream_raises(tmp_path):
    with StreamingGzipProcessor(_gz(tmp_path, "   ")) as proc:
        with pytest.raises(StreamFormatError, match="failed to peek"):
            proc.process_matches(io.StringIO())


def test_truncated_array_raises(tmp_path):
    with StreamingGzipProcessor(_gz(tmp_path, '[{"billing_code": "99283"}, {"a"')) as proc:
        with pytest.raises(StreamFormatError, match="failed to decode record"):
            proc.process_matches(io.StringIO())


def test_non_object_element_raises(tmp_path):
    with StreamingGzipProcessor(_gz(tmp_path, "[1, 2]")) as proc:
        with pytest.raises(StreamFormatError):
            proc.process_matches(io.StringIO())


def test_not_gzip_raises(tmp_path):
    path = tmp_path / "plain.gz"
    path.write_text("[]" * 10)
    with pytest.raises(StreamFormatError, match="gzip reader"):
        StreamingGzipProcessor(path)


def test_missing_file_raises(tmp_path):
    with pytest.raises(OSError, match="failed to open gzip file"):
        StreamingGzipProcessor(tmp_path / "missing.gz")