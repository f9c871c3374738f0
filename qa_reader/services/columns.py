"""
CSV header normalization.

Turns arbitrary CSV headers into safe, unique SQL identifiers.
"""

import re
from typing import Dict, List, Sequence

_INVALID_RUN = re.compile(r'[^a-z0-9_]+')
_VALID_START = re.compile(r'^[a-z_]')

# Postgres truncates longer identifiers, which would merge distinct headers
MAX_IDENTIFIER_LENGTH = 63


def base_name(header: str, index: int) -> str:
    """
    Normalize one header without regard to collisions.

    Args:
        header: Raw header text (may be empty)
        index: Zero-based position of the header

    Returns:
        str: lowercase ``[a-z0-9_]`` identifier of at most
        ``MAX_IDENTIFIER_LENGTH`` characters, or ``col_{index + 1}``
    """
    raw = _INVALID_RUN.sub('_', (header or '').lower()).strip('_')
    raw = raw[:MAX_IDENTIFIER_LENGTH].rstrip('_')
    if not raw or not _VALID_START.match(raw):
        return f"col_{index + 1}"
    return raw


def _with_suffix(name: str, suffix: int) -> str:
    tag = f"_{suffix}"
    return name[:MAX_IDENTIFIER_LENGTH - len(tag)] + tag


def normalize_headers(headers: Sequence[str]) -> List[str]:
    """
    Normalize a header row into pairwise distinct identifiers.

    Collisions get the smallest unused numeric suffix starting at 2, so
    ``["ID", "id", "3rd Col"]`` becomes ``["id", "id_2", "col_3"]``. A long
    name is cut short so that name plus suffix still fits the identifier
    limit.
    """
    seen: Dict[str, int] = {}
    out: List[str] = []
    for idx, header in enumerate(headers):
        name = base_name(header, idx)
        if name not in seen:
            seen[name] = 1
            out.append(name)
            continue
        suffix = seen[name] + 1
        candidate = _with_suffix(name, suffix)
        while candidate in seen:
            suffix += 1
            candidate = _with_suffix(name, suffix)
        seen[name] = suffix
        seen[candidate] = 1
        out.append(candidate)
    return out
