from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping

import jsonschema
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError


SCHEMA_DIR = Path(__file__).resolve().parent / "schemas"
SUMMARY_SCHEMA = "integrated_alert_summary_v1.schema.json"


def load_schema(schema_path: str | Path | None = None) -> dict[str, Any]:
    path = Path(schema_path) if schema_path is not None else SCHEMA_DIR / SUMMARY_SCHEMA
    return json.loads(path.read_text(encoding="utf-8"))


def validate_summary(
    summary: Mapping[str, Any],
    *,
    schema_path: str | Path | None = None,
) -> None:
    """Validate a summary object against the summary v1 schema.

    Raises:
      jsonschema.exceptions.ValidationError if invalid.
    """

    schema = load_schema(schema_path)
    validator = Draft202012Validator(schema, format_checker=jsonschema.FormatChecker())
    validator.validate(dict(summary))

    _validate_years(dict(summary))
    _validate_datasets(dict(summary))


def _validate_years(summary: Mapping[str, Any]) -> None:
    params = summary.get("parameters", {})
    if params.get("end_year", 0) < params.get("start_year", 0):
        raise ValidationError(
            f"end_year {params.get('end_year')} is before start_year {params.get('start_year')}"
        )


def _validate_datasets(summary: Mapping[str, Any]) -> None:
    ids = [d.get("dataset_id") for d in summary.get("datasets", []) if isinstance(d, Mapping)]
    if sorted(ids) != ["hansen", "radd"]:
        raise ValidationError(f"Expected exactly one hansen and one radd dataset, got {ids}")


def validate_summary_file(path: str | Path, *, schema_path: str | Path | None = None) -> dict[str, Any]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    validate_summary(data, schema_path=schema_path)
    return data
