"""Input file validation utilities for sbomgraph."""
import json
from pathlib import Path
from typing import Any


class ValidationError(Exception):
    """Validation error."""


def _load_json_file(file_path: Path) -> Any:
    if not file_path.exists():
        raise ValidationError(f"File does not exist: {file_path}")

    if not file_path.is_file():
        raise ValidationError(f"Not a file: {file_path}")

    if file_path.stat().st_size == 0:
        raise ValidationError(f"File is empty: {file_path}")

    try:
        with open(file_path, encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in {file_path}: {e}")


def validate_listing_file(file_path: Path) -> bool:
    """
    Validate the output of `pnpm list --json --recursive`.

    Expected: a JSON array of project entries, each with a 'path' field.

    Returns:
        True if valid

    Raises:
        ValidationError if invalid
    """
    data = _load_json_file(file_path)

    if not isinstance(data, list):
        raise ValidationError(
            f"Listing must be a JSON array of projects: {file_path}",
        )

    missing_path = [
        index for index, entry in enumerate(data)
        if not isinstance(entry, dict) or 'path' not in entry
    ]
    if missing_path:
        raise ValidationError(
            f"Listing entries without 'path' in {file_path}: {missing_path}",
        )

    return True


def validate_result_file(file_path: Path) -> bool:
    """
    Validate an analysis result file written by `sbomgraph analyze`.

    Expected: JSON object with 'projects', 'packages' and 'dependency_graph'.

    Returns:
        True if valid

    Raises:
        ValidationError if invalid
    """
    data = _load_json_file(file_path)

    if not isinstance(data, dict):
        raise ValidationError(f"Result must be a JSON object: {file_path}")

    required_fields = ['projects', 'packages', 'dependency_graph']
    missing_fields = [field for field in required_fields if field not in data]
    if missing_fields:
        raise ValidationError(
            f"Missing required fields in {file_path}: {missing_fields}",
        )

    return True
