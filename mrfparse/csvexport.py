"""Flatten matched billing-code records from a JSON Lines file into a CSV table."""

from __future__ import annotations

import csv
import json
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

__all__ = [
    "NegotiatedPrice",
    "Tin",
    "ProviderGroup",
    "NegotiatedRate",
    "BillingRecord",
    "handle_null_values",
    "load_records",
    "extract_to_csv",
]

MAX_PROVIDER_REFS = 50
MAX_SERVICE_CODES = 100

_BASE_COLUMNS = (
    "billing_code",
    "billing_code_type",
    "billing_code_type_version",
    "name",
    "negotiated_rates_count",
    "negotiation_arrangement",
    "negotiated_prices_count",
    "billing_class",
    "expiration_date",
    "negotiated_rate",
    "negotiated_type",
    "provider_references_count",
    "provider_groups_count",
    "total_npis_count",
    "total_tins_count",
)
_GROUP_COLUMNS = ("first_group_npi_count", "first_group_tin_type", "first_group_tin_value")
_WHITESPACE = " \t\n\r"


def _as_object(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what}: expected object, got {type(data).__name__}")
    return data


def _get_str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected string, got {type(value).__name__}")
    return value


def _get_float(obj: dict[str, Any], key: str) -> float:
    value = obj.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r}: expected number, got {type(value).__name__}")
    return float(value)


def _get_list(obj: dict[str, Any], key: str) -> list[Any]:
    value = obj.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r}: expected array, got {type(value).__name__}")
    return value


def _str_item(value: Any, key: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected string items, got {type(value).__name__}")
    return value


def _float_item(value: Any, key: str) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r}: expected number items, got {type(value).__name__}")
    return float(value)


def _plain_float(number: float) -> str:
    """Shortest decimal form of a float without exponent notation."""
    text = format(Decimal(repr(float(number))).normalize(), "f")
    return "0" if text in ("-0", "0") else text


def handle_null_values(value: str) -> str:
    """Replace empty or null-like strings with "N/A"."""
    if value in ("", "<nil>", "null"):
        return "N/A"
    return value


@dataclass
class NegotiatedPrice:
    billing_class: str = ""
    expiration_date: str = ""
    negotiated_rate: float = 0.0
    negotiated_type: str = ""
    service_code: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> NegotiatedPrice:
        obj = _as_object(data, "negotiated price")
        return cls(
            billing_class=_get_str(obj, "billing_class"),
            expiration_date=_get_str(obj, "expiration_date"),
            negotiated_rate=_get_float(obj, "negotiated_rate"),
            negotiated_type=_get_str(obj, "negotiated_type"),
            service_code=[_str_item(v, "service_code") for v in _get_list(obj, "service_code")],
        )


@dataclass
class Tin:
    type: str = ""
    value: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> Tin:
        obj = _as_object(data, "tin")
        return cls(type=_get_str(obj, "type"), value=_get_str(obj, "value"))


@dataclass
class ProviderGroup:
    npi: list[float] = field(default_factory=list)
    tin: Tin = field(default_factory=Tin)

    @classmethod
    def from_dict(cls, data: Any) -> ProviderGroup:
        obj = _as_object(data, "provider group")
        return cls(
            npi=[_float_item(v, "npi") for v in _get_list(obj, "npi")],
            tin=Tin.from_dict(obj.get("tin")),
        )


@dataclass
class NegotiatedRate:
    negotiated_prices: list[NegotiatedPrice] = field(default_factory=list)
    provider_references: list[float] = field(default_factory=list)
    provider_groups: list[ProviderGroup] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> NegotiatedRate:
        obj = _as_object(data, "negotiated rate")
        return cls(
            negotiated_prices=[
                NegotiatedPrice.from_dict(p) for p in _get_list(obj, "negotiated_prices")
            ],
            provider_references=[
                _float_item(v, "provider_references")
                for v in _get_list(obj, "provider_references")
            ],
            provider_groups=[
                ProviderGroup.from_dict(g) for g in _get_list(obj, "provider_groups")
            ],
        )


@dataclass
class BillingRecord:
    billing_code: str = ""
    billing_code_type: str = ""
    billing_code_type_version: str = ""
    description: str = ""
    name: str = ""
    negotiated_rates: list[NegotiatedRate] = field(default_factory=list)
    negotiation_arrangement: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> BillingRecord:
        obj = _as_object(data, "record")
        return cls(
            billing_code=_get_str(obj, "billing_code"),
            billing_code_type=_get_str(obj, "billing_code_type"),
            billing_code_type_version=_get_str(obj, "billing_code_type_version"),
            description=_get_str(obj, "description"),
            name=_get_str(obj, "name"),
            negotiated_rates=[
                NegotiatedRate.from_dict(r) for r in _get_list(obj, "negotiated_rates")
            ],
            negotiation_arrangement=_get_str(obj, "negotiation_arrangement"),
        )


def load_records(path: str | os.PathLike[str] = "matches.jsonl") -> list[BillingRecord]:
    """Decode every record in a stream of JSON values, skipping ones of the wrong shape.

    A syntax error ends the stream; what was read before it is kept.
    """
    with open(path, "rb") as handle:
        text = handle.read().decode("utf-8", errors="replace")
    decoder = json.JSONDecoder()
    records: list[BillingRecord] = []
    pos = 0
    while True:
        while pos < len(text) and text[pos] in _WHITESPACE:
            pos += 1
        if pos >= len(text):
            break
        try:
            value, pos = decoder.raw_decode(text, pos)
        except ValueError as exc:
            print(f"Warning: could not decode a record: {exc}. Skipping object.")
            break
        try:
            records.append(BillingRecord.from_dict(value))
        except ValueError as exc:
            print(f"Warning: could not decode a record: {exc}. Skipping object.")
    return records


def extract_to_csv(
    input_path: str | os.PathLike[str] = "matches.jsonl",
    output_path: str | os.PathLike[str] = "matches.csv",
) -> int:
    """Write one CSV row per negotiated price; return the number of rows written."""
    print("Starting optimized CSV extraction from .jsonl file")
    source_name = os.path.basename(os.fspath(input_path))
    output_name = os.path.basename(os.fspath(output_path))
    try:
        records = load_records(input_path)
    except FileNotFoundError:
        print(f"{source_name} not found, skipping CSV extraction.")
        return 0
    print(f"Loaded {len(records)} records from {source_name}")

    if not records:
        print("No records to process")
        return 0

    rates = [rate for record in records for rate in record.negotiated_rates]
    max_service_codes = max(
        (len(price.service_code) for rate in rates for price in rate.negotiated_prices),
        default=0,
    )
    max_provider_refs = max((len(rate.provider_references) for rate in rates), default=0)
    max_provider_groups = max((len(rate.provider_groups) for rate in rates), default=0)

    if max_service_codes > MAX_SERVICE_CODES:
        print(
            f"Limiting service codes to {MAX_SERVICE_CODES} columns "
            f"(found {max_service_codes} max)"
        )
        max_service_codes = MAX_SERVICE_CODES
    if max_provider_refs > MAX_PROVIDER_REFS:
        print(
            f"Limiting provider references to {MAX_PROVIDER_REFS} columns "
            f"(found {max_provider_refs} max)"
        )
        max_provider_refs = MAX_PROVIDER_REFS

    print(f"Maximum service codes per record: {max_service_codes}")
    print(f"Maximum provider references per record: {max_provider_refs}")
    print(f"Maximum provider groups per record: {max_provider_groups}")

    columns = list(_BASE_COLUMNS)
    columns += [f"service_code_{i}" for i in range(1, max_service_codes + 1)]
    columns += [f"provider_reference_{i}" for i in range(1, max_provider_refs + 1)]
    columns += _GROUP_COLUMNS

    row_count = 0
    with open(output_path, "w", newline="", encoding="utf-8") as csv_file:
        writer = csv.writer(csv_file, lineterminator="\n")
        writer.writerow(columns)
        for index, record in enumerate(records, start=1):
            for rate in record.negotiated_rates:
                refs = [_plain_float(ref) for ref in rate.provider_references[:max_provider_refs]]
                refs += [""] * (max_provider_refs - len(refs))
                total_npis = sum(len(group.npi) for group in rate.provider_groups)
                if rate.provider_groups:
                    first = rate.provider_groups[0]
                    group_cells = [
                        str(len(first.npi)),
                        handle_null_values(first.tin.type),
                        handle_null_values(first.tin.value),
                    ]
                else:
                    group_cells = ["0", "", ""]
                for price in rate.negotiated_prices:
                    codes = [
                        handle_null_values(code)
                        for code in price.service_code[:max_service_codes]
                    ]
                    codes += [""] * (max_service_codes - len(codes))
                    writer.writerow(
                        [
                            handle_null_values(record.billing_code),
                            handle_null_values(record.billing_code_type),
                            record.billing_code_type_version,
                            record.name,
                            str(len(record.negotiated_rates)),
                            record.negotiation_arrangement,
                            str(len(rate.negotiated_prices)),
                            price.billing_class,
                            price.expiration_date,
                            f"{price.negotiated_rate:.2f}",
                            price.negotiated_type,
                            str(len(rate.provider_references)),
                            str(len(rate.provider_groups)),
                            str(total_npis),
                            str(len(rate.provider_groups)),
                            *codes,
                            *refs,
                            *group_cells,
                        ]
                    )
                    row_count += 1
            if index % 10 == 0:
                print(f"Processed {index}/{len(records)} records")

    print(f"Extracted {row_count} rows to {output_name}")
    print(
        "CSV now has a manageable number of columns with proper provider/group "
        "counting validation"
    )
    return row_count