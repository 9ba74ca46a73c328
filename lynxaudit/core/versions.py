"""Loose version helpers shared by version listing, matching and remediation.

These compare dotted numeric components only. They are not a full
PEP 440 / SemVer implementation: a leading ``v`` is ignored and any
component without a leading integer counts as 0.
"""
import re
from functools import cmp_to_key

_LEADING_INT = re.compile(r'^(\d+)')


def _component(part: str) -> int:
    match = _LEADING_INT.match(part)
    return int(match.group(1)) if match else 0


def version_parts(version: str) -> list[int]:
    """Split ``v1.2.3-rc1`` into ``[1, 2, 3]``."""
    cleaned = version.strip()
    if cleaned[:1] in ('v', 'V'):
        cleaned = cleaned[1:]
    return [_component(p) for p in cleaned.split('.')] if cleaned else [0]


def compare_versions(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is lower than, equal to or greater than ``b``."""
    a_parts = version_parts(a)
    b_parts = version_parts(b)
    for i in range(max(len(a_parts), len(b_parts))):
        a_num = a_parts[i] if i < len(a_parts) else 0
        b_num = b_parts[i] if i < len(b_parts) else 0
        if a_num != b_num:
            return -1 if a_num < b_num else 1
    return 0


def sort_versions_desc(versions: list[str]) -> list[str]:
    """Newest first. Ties keep their input order."""
    return sorted(versions, key=cmp_to_key(lambda a, b: compare_versions(b, a)))


def major_version(version: str) -> int | None:
    """Leading numeric component, or None when the version has none."""
    cleaned = version.strip()
    if cleaned[:1] in ('v', 'V'):
        cleaned = cleaned[1:]
    match = _LEADING_INT.match(cleaned)
    return int(match.group(1)) if match else None
