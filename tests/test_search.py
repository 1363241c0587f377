import csv
import io
import json

from mrfparse.search import TARGET_CODES, ProgressReader, find_matching_objects, main


def _sample():
    return {
        "reporting_entity": "Example Plan",
        "in_network": [
            {
                "billing_code": "99283",
                "nested": {"billing_code": "99291", "other": [1, 2]},
            },
            {"billing_code": "12345", "items": [{"billing_code": "99285"}]},
            {"billing_code": 99284},
        ],
    }


def test_find_matching_objects_document_order():
    data = _sample()
    matches = find_matching_objects(data)
    assert [m["billing_code"] for m in matches] == ["99283", "99291", "99285"]
    assert matches[0] is data["in_network"][0]
    assert all(m["billing_code"] in TARGET_CODES for m in matches)


def test_find_matching_objects_ignores_non_string_codes():
    assert find_matching_objects([{"billing_code": 99283}, {"billing_code": None}]) == []


def test_find_matching_objects_scalars():
    assert find_matching_objects("99283") == []
    assert find_matching_objects(None) == []


def test_find_matching_objects_top_level_match():
    data = {"billing_code": "99284"}
    assert find_matching_objects(data) == [data]


def test_progress_reader_reports_percentages():
    payload = b"abcdefghij"
    seen = []
    reader = ProgressReader(io.BytesIO(payload), len(payload), seen.append)
    chunks = []
    while chunk := reader.read(4):
        chunks.append(chunk)
    assert b"".join(chunks) == payload
    assert reader.bytes_read == len(payload)
    assert seen == sorted(seen)
    assert seen[-1] == 100.0


def test_progress_reader_feeds_json_load():
    payload = json.dumps({"k": [1, 2]}).encode()
    reader = ProgressReader(io.BytesIO(payload), len(payload))
    assert json.load(reader) == {"k": [1, 2]}
    assert reader.bytes_read == len(payload)


def test_main_filters_and_exports(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    data = {
        "in_network": [
            {
                "billing_code": "99283",
                "negotiated_rates": [
                    {
                        "negotiated_prices": [{"negotiated_rate": 10, "service_code": ["11"]}],
                        "provider_references": [1],
                    }
                ],
            },
            {"billing_code": "12345"},
        ]
    }
    (tmp_path / "billing_code_matches.json").write_text(json.dumps(data), encoding="utf-8")

    assert main([]) == 0

    written = json.loads((tmp_path / "billing_code_matches.json").read_text(encoding="utf-8"))
    assert [r["billing_code"] for r in written] == ["99283"]
    with open(tmp_path / "extracted.csv", newline="", encoding="utf-8") as handle:
        rows = list(csv.reader(handle))
    assert len(rows) == 2
    assert rows[1][0] == "99283"


def test_main_no_matches_leaves_file(tmp_path):
    source = tmp_path / "input.json"
    original = json.dumps([{"billing_code": "00000"}])
    source.write_text(original, encoding="utf-8")
    csv_path = tmp_path / "out.csv"
    assert main([str(source), "--csv", str(csv_path)]) == 0
    assert source.read_text(encoding="utf-8") == original
    assert not csv_path.exists()