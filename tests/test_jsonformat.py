import json

import pytest

from mrfparse.jsonformat import (
    format_json_to_file,
    formatted_filename,
    main,
    parse_json_file,
)


def test_parse_json_file_round_trip(tmp_path):
    data = {"a": [1, 2, {"b": None}], "c": "text"}
    path = tmp_path / "in.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    assert parse_json_file(path) == data


def test_parse_json_file_invalid_json(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError) as info:
        parse_json_file(path)
    assert "bad.json" in str(info.value)


def test_parse_json_file_rejects_nan(tmp_path):
    path = tmp_path / "nan.json"
    path.write_text("[NaN]", encoding="utf-8")
    with pytest.raises(ValueError):
        parse_json_file(path)


def test_parse_json_file_missing(tmp_path):
    with pytest.raises(OSError) as info:
        parse_json_file(tmp_path / "missing.json")
    assert "error reading file" in str(info.value)


@pytest.mark.parametrize(
    "given, expected",
    [
        ("dir/data.json", "data_formatted.json"),
        ("archive.tar.gz", "archive.tar_formatted.json"),
        ("noext", "noext_formatted.json"),
    ],
)
def test_formatted_filename(given, expected):
    assert formatted_filename(given) == expected


def test_format_json_to_file_sorts_and_escapes(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    source = tmp_path / "sample.json"
    source.write_text('{"b": 1, "a": "<x>"}', encoding="utf-8")
    output = format_json_to_file(source)
    assert output == "sample_formatted.json"
    text = (tmp_path / output).read_text(encoding="utf-8")
    assert text == '{\n  "a": "\\u003cx\\u003e",\n  "b": 1\n}'


def test_format_json_to_file_preserves_data(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    data = {"z": [1, 2.5, "é"], "m": {"k": True, "n": None}}
    source = tmp_path / "data.json"
    source.write_text(json.dumps(data), encoding="utf-8")
    output = format_json_to_file(source)
    assert json.loads((tmp_path / output).read_text(encoding="utf-8")) == data


def test_main_without_arguments(capsys):
    assert main([]) == 1
    assert "Usage" in capsys.readouterr().err


def test_main_reports_errors(tmp_path, capsys):
    assert main([str(tmp_path / "nope.json")]) == 1
    assert "Error:" in capsys.readouterr().err


def test_main_success(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "x.json").write_text("[1, 2]", encoding="utf-8")
    assert main(["x.json"]) == 0
    assert json.loads((tmp_path / "x_formatted.json").read_text()) == [1, 2]