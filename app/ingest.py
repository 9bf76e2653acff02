"""Catalog parsing utilities.
Turns an uploaded CSV or JSON file into an ordered list of flat records.
"""
import json
from typing import Dict, List


class CatalogParseError(Exception):
    """Base class for catalog upload errors shown to the operator."""


class InvalidFormat(CatalogParseError):
    pass


class InsufficientRows(CatalogParseError):
    pass


class UnsupportedType(CatalogParseError):
    pass


class ReadError(CatalogParseError):
    pass


def _unquote(cell: str) -> str:
    """Trim and strip one layer of surrounding double quotes."""
    cell = cell.strip()
    if cell.startswith('"'):
        cell = cell[1:]
    if cell.endswith('"'):
        cell = cell[:-1]
    return cell


def parse_json_catalog(text: str) -> List[dict]:
    try:
        data = json.loads(text)
    except ValueError as e:
        raise InvalidFormat("Invalid JSON file") from e
    records = data if isinstance(data, list) else [data]
    if not all(isinstance(r, dict) for r in records):
        raise InvalidFormat("JSON catalog entries must be objects")
    return records


def parse_comma_csv(text: str) -> List[Dict[str, str]]:
    """Parse comma-delimited CSV. Quoted commas are not supported."""
    lines = [ln for ln in text.split("\n") if ln.strip()]
    if len(lines) < 2:
        raise InsufficientRows("CSV needs at least a header row and one data row")

    headers = [_unquote(h) for h in lines[0].split(",")]
    rows: List[Dict[str, str]] = []
    for line in lines[1:]:
        values = [_unquote(v) for v in line.split(",")]
        rows.append({h: (values[i] if i < len(values) else "") for i, h in enumerate(headers)})
    return rows


def parse_catalog(content: bytes, filename: str) -> List[dict]:
    """Dispatch on the file suffix; raises CatalogParseError subclasses."""
    if filename.endswith(".json"):
        parser = parse_json_catalog
    elif filename.endswith(".csv"):
        parser = parse_comma_csv
    else:
        raise UnsupportedType("Unsupported file type. Please upload CSV or JSON.")

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ReadError("File read error") from e
    return parser(text)
