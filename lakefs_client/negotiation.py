"""Content negotiation.

Chooses the Accept and Content-Type headers from an operation's declared
media types. Selection is deterministic and never looks at a body.
"""

from __future__ import annotations

import re
from typing import Sequence

DEFAULT_CONTENT_TYPE = "application/json"

# application/json, or any structured-syntax +json type, with optional params
_JSON_MIME = re.compile(
    r"^(application/json|[^;/ \t]+/[^;/ \t]+[+]json)[ \t]*(;.*)?$", re.IGNORECASE
)


def is_json_mime(media_type: str | None) -> bool:
    """True for application/json and vendor +json media types.

    "*/*" also counts: a server that accepts anything accepts JSON.
    """
    if not media_type:
        return False
    return media_type.strip() == "*/*" or bool(_JSON_MIME.match(media_type.strip()))


def _essence(media_type: str) -> str:
    """Lowercased type/subtype without parameters."""
    return media_type.split(";", 1)[0].strip().lower()


def media_type_matches(candidate: str, preference: str) -> bool:
    """Whether a declared media type satisfies a (possibly wildcard) preference."""
    cand = _essence(candidate)
    pref = _essence(preference)
    if pref == "*/*" or cand == pref:
        return True
    if pref.endswith("/*"):
        return cand.split("/", 1)[0] == pref[:-2]
    return False


def select_accept(
    candidates: Sequence[str],
    preferences: Sequence[str] = (),
) -> str | None:
    """Pick exactly one Accept value, or None to omit the header.

    Preferences are tried in order; the first candidate compatible with a
    preference wins. Without a usable preference the first JSON candidate is
    chosen, and failing that the first candidate.
    """
    if not candidates:
        return None

    for preference in preferences:
        for candidate in candidates:
            if media_type_matches(candidate, preference):
                return candidate

    for candidate in candidates:
        if is_json_mime(candidate):
            return candidate

    return candidates[0]


def select_content_type(candidates: Sequence[str]) -> str:
    """Pick exactly one Content-Type, defaulting to JSON."""
    if not candidates:
        return DEFAULT_CONTENT_TYPE

    for candidate in candidates:
        if is_json_mime(candidate):
            return DEFAULT_CONTENT_TYPE if candidate.strip() == "*/*" else candidate

    return candidates[0]
