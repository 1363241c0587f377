"""Flatten billing-code records from a JSON array into a CSV table."""

from __future__ import annotations

import csv
import json
import math
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

_BASE_COLUMNS = (
    "billing_code",
    "billing_code_type",
    "billing_code_type_version",
    "description",
    "name",
    "negotiated_rates_count",
    "negotiation_arrangement",
    "negotiated_prices_count",
    "billing_class",
    "expiration_date",
    "negotiated_rate",
    "negotiated_type",
)


def _as_object(data: Any, what: str) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{what}: expected object, got {type(data).__name__}")
    return data


def _get_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected string, got {type(value).__name__}")
    return value


def _get_number(data: dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field {key!r}: expected number, got {type(value).__name__}")
    return float(value)


def _get_list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {key!r}: expected array, got {type(value).__name__}")
    return value


def _string_item(value: Any, key: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r}: expected string items, got {type(value).__name__}")
    return value


def _int_item(value: Any, key: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r}: expected integer items, got {value!r}")
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
            negotiated_rate=_get_number(obj, "negotiated_rate"),
            negotiated_type=_get_str(obj, "negotiated_type"),
            service_code=[_string_item(v, "service_code") for v in _get_list(obj, "service_code")],
        )


@dataclass
class NegotiatedRate:
    negotiated_prices: list[NegotiatedPrice] = field(default_factory=list)
    provider_references: list[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> NegotiatedRate:
        obj = _as_object(data, "negotiated rate")
        return cls(
            negotiated_prices=[
                NegotiatedPrice.from_dict(p) for p in _get_list(obj, "negotiated_prices")
            ],
            provider_references=[
                _int_item(v, "provider_references") for v in _get_list(obj, "provider_references")
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


def _format_float(number: float) -> str:
    """Shortest form, switching to exponent notation outside 1e-4 <= |x| < 1e6."""
    if math.isnan(number):
        return "NaN"
    if math.isinf(number):
        return "+Inf" if number > 0 else "-Inf"
    sign, digit_tuple, exponent = Decimal(repr(number)).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    prefix = "-" if sign else ""
    point = len(digits) + exponent
    exp10 = point - 1
    if exp10 < -4 or exp10 >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exp10 < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(exp10):02d}"
    if point <= 0:
        return f"{prefix}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return prefix + digits + "0" * (point - len(digits))
    return f"{prefix}{digits[:point]}.{digits[point:]}"


def _format_value(value: Any) -> str:
    """Default textual form of a decoded JSON value."""
    if value is None:
        return "<nil>"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return _format_float(float(value))
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        inner = " ".join(f"{k}:{_format_value(v)}" for k, v in sorted(value.items()))
        return f"map[{inner}]"
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_format_value(v) for v in value) + "]"
    return str(value)


def flatten_object(obj: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten nested objects into dot-separated keys; arrays become '|'-joined strings."""
    flattened: dict[str, Any] = {}
    for key, value in obj.items():
        new_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            flattened.update(flatten_object(value, new_key))
        elif isinstance(value, list):
            flattened[new_key] = "|".join(_format_value(item) for item in value)
        else:
            flattened[new_key] = value
    return flattened


def extract_value(obj: dict[str, Any], path: str) -> str:
    """Render the value stored under a flattened key, or '' when absent."""
    if path not in obj:
        return ""
    value = obj[path]
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return f"{float(value):.2f}"
    return _format_value(value)


def discover_fields(records: list[dict[str, Any]]) -> list[str]:
    """Sorted union of all flattened keys across the records."""
    fields: set[str] = set()
    for record in records:
        fields.update(flatten_object(record))
    return sorted(fields)


def handle_null_values(value: str) -> str:
    return "N/A" if value in ("", "<nil>", "null") else value


def extract_to_csv(
    input_path: str | os.PathLike[str] = "billing_code_matches.json",
    output_path: str | os.PathLike[str] = "extracted.csv",
) -> int:
    """Write one CSV row per negotiated price; return the number of rows written."""
    print("Starting CSV extraction")
    with open(input_path, "rb") as handle:
        raw = json.load(handle)
    if raw is None:
        raw = []
    if not isinstance(raw, list):
        raise ValueError(f"{os.fspath(input_path)}: expected a JSON array of records")
    records = [BillingRecord.from_dict(item) for item in raw]
    source_name = os.path.basename(os.fspath(input_path))
    print(f"Loaded {len(records)} records from {source_name}")

    if not records:
        print("No records to process")
        return 0

    max_service_codes = max(
        (
            len(price.service_code)
            for record in records
            for rate in record.negotiated_rates
            for price in rate.negotiated_prices
        ),
        default=0,
    )
    max_provider_refs = max(
        (
            len(rate.provider_references)
            for record in records
            for rate in record.negotiated_rates
            if rate.negotiated_prices
        ),
        default=0,
    )
    print(f"Maximum service codes per record: {max_service_codes}")
    print(f"Maximum provider references per record: {max_provider_refs}")

    columns = list(_BASE_COLUMNS)
    columns += [f"service_code_{i}" for i in range(1, max_service_codes + 1)]
    columns += [f"provider_reference_{i}" for i in range(1, max_provider_refs + 1)]

    row_count = 0
    with open(output_path, "w", newline="", encoding="utf-8") as csv_file:
        writer = csv.writer(csv_file, lineterminator="\n")
        writer.writerow(columns)
        for index, record in enumerate(records, start=1):
            for rate in record.negotiated_rates:
                refs = [handle_null_values(str(ref)) for ref in rate.provider_references]
                refs += [""] * (max_provider_refs - len(refs))
                for price in rate.negotiated_prices:
                    codes = [handle_null_values(code) for code in price.service_code]
                    codes += [""] * (max_service_codes - len(codes))
                    row = [
                        handle_null_values(record.billing_code),
                        handle_null_values(record.billing_code_type),
                        record.billing_code_type_version,
                        record.description,
                        record.name,
                        str(len(record.negotiated_rates)),
                        record.negotiation_arrangement,
                        str(len(rate.negotiated_prices)),
                        price.billing_class,
                        price.expiration_date,
                        f"{price.negotiated_rate:.2f}",
                        price.negotiated_type,
                        *codes,
                        *refs,
                    ]
                    writer.writerow(row)
                    row_count += 1
            if index % 10 == 0:
                print(f"Processed {index}/{len(records)} records")

    print(f"Extracted {row_count} rows to {os.path.basename(os.fspath(output_path))}")
    return row_count