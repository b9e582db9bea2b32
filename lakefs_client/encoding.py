"""Path and parameter encoding.

Turns caller-supplied values into wire-safe strings: path placeholders are
substituted with fully percent-escaped values, and query/header/cookie values
are rendered according to each parameter's declared collection format.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Mapping
from urllib.parse import quote

from lakefs_client.errors import MissingParameter
from lakefs_client.models import CollectionFormat

# Matches {name} placeholders in path templates
_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")

_DELIMITERS = {
    CollectionFormat.CSV: ",",
    CollectionFormat.SSV: " ",
    CollectionFormat.TSV: "\t",
    CollectionFormat.PIPES: "|",
}


def path_placeholders(template: str) -> list[str]:
    """Placeholder names referenced by a path template, in order."""
    return _PLACEHOLDER.findall(template)


def escape_path_value(value: Any) -> str:
    """Percent-escape a value for use as a single path segment.

    Every reserved character is escaped, including '/', so a value can never
    introduce an extra segment. Spaces become %20, not '+'.
    """
    return quote(parameter_to_string(value), safe="")


def render_path(template: str, values: Mapping[str, Any], operation_id: str) -> str:
    """Substitute {name} placeholders in a path template.

    Args:
        template: Path with placeholders, e.g. /repositories/{repository}.
        values: Placeholder name -> value.
        operation_id: Used to name the operation in MissingParameter.

    Returns:
        The concrete, escaped path.

    Raises:
        MissingParameter: If a referenced placeholder has no non-None value.
    """
    for name in path_placeholders(template):
        if values.get(name) is None:
            raise MissingParameter(name, operation_id)

    return _PLACEHOLDER.sub(lambda m: escape_path_value(values[m.group(1)]), template)


def parameter_to_string(value: Any) -> str:
    """Render a single parameter value as a string.

    None renders as an empty string; callers that must omit absent values
    check for None before calling this.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return parameter_to_string(value.value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(parameter_to_string(v) for v in value)
    return str(value)


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def parameter_to_pairs(
    name: str,
    value: Any,
    collection_format: CollectionFormat = CollectionFormat.CSV,
) -> list[tuple[str, str]]:
    """Expand one query parameter into (name, value) pairs.

    None, and empty collections, produce no pairs at all. Scalars produce a
    single pair. Collections follow collection_format: MULTI repeats the
    name once per value, the others join the values with their delimiter.
    """
    if value is None:
        return []

    if not _is_collection(value):
        return [(name, parameter_to_string(value))]

    items = [v for v in value if v is not None]
    if not items:
        return []

    if collection_format == CollectionFormat.MULTI:
        return [(name, parameter_to_string(item)) for item in items]

    delimiter = _DELIMITERS[collection_format]
    return [(name, delimiter.join(parameter_to_string(item) for item in items))]


def encode_pairs(
    params: Iterable[tuple[str, Any, CollectionFormat]],
) -> list[tuple[str, str]]:
    """Expand a sequence of (name, value, format) triples into query pairs."""
    pairs: list[tuple[str, str]] = []
    for name, value, collection_format in params:
        pairs.extend(parameter_to_pairs(name, value, collection_format))
    return pairs


def join_collection(
    value: Any,
    collection_format: CollectionFormat = CollectionFormat.CSV,
) -> str | None:
    """Render a header, cookie or form value as one string.

    Collections are joined with the format's delimiter. MULTI has no
    single-string form; it joins with commas, which is how repeated header
    fields combine. None and empty collections give None.
    """
    if value is None:
        return None
    if not _is_collection(value):
        return parameter_to_string(value)

    items = [v for v in value if v is not None]
    if not items:
        return None
    delimiter = _DELIMITERS.get(collection_format, ",")
    return delimiter.join(parameter_to_string(item) for item in items)


def encode_scalar_map(
    params: Mapping[str, Any],
    collection_formats: Mapping[str, CollectionFormat] | None = None,
) -> dict[str, str]:
    """Render header or cookie parameters, dropping None values.

    Headers and cookies carry a single string per name, so collections are
    joined per collection_formats (default csv).
    """
    formats = collection_formats or {}
    rendered: dict[str, str] = {}
    for name, value in params.items():
        text = join_collection(value, formats.get(name, CollectionFormat.CSV))
        if text is not None:
            rendered[name] = text
    return rendered


def encode_form_fields(
    params: Mapping[str, Any],
    collection_formats: Mapping[str, CollectionFormat] | None = None,
) -> dict[str, str | list[str]]:
    """Render form fields, dropping None values.

    MULTI collections become a list, which the form encoders send as one
    field per value. Other collections are joined like headers.
    """
    formats = collection_formats or {}
    fields: dict[str, str | list[str]] = {}
    for name, value in params.items():
        collection_format = formats.get(name, CollectionFormat.CSV)
        if collection_format == CollectionFormat.MULTI and _is_collection(value):
            items = [parameter_to_string(v) for v in value if v is not None]
            if items:
                fields[name] = items
            continue
        text = join_collection(value, collection_format)
        if text is not None:
            fields[name] = text
    return fields
