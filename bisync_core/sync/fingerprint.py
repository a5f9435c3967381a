from __future__ import annotations

import json
from collections.abc import Mapping
from hashlib import sha256


def canonical_section(section: Mapping[str, str] | None) -> str:
    """Serialize a section with sorted field names.

    The serialization is total and deterministic, so two sections compare
    equal exactly when their canonical forms do. Absent sections serialize
    to the empty string.
    """

    if section is None:
        return ""
    return json.dumps(dict(section), sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def section_fingerprint(section: Mapping[str, str] | None) -> str:
    canonical = canonical_section(section)
    if not canonical:
        return ""
    return sha256(canonical.encode("utf-8")).hexdigest()


def sections_equal(
    left: Mapping[str, str] | None,
    right: Mapping[str, str] | None,
) -> bool:
    return canonical_section(left) == canonical_section(right)
