from __future__ import annotations

import re
from dataclasses import dataclass


_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
SUFFIX_SEPARATOR = "@"


@dataclass(frozen=True)
class SyntheticId:
    source: str
    subtype: str
    origin_id: str
    suffix: str | None = None

    def __str__(self) -> str:
        return assign(self.source, self.origin_id, self.subtype, self.suffix)


def assign(source: str, origin_id: object, subtype: str, suffix: object | None = None) -> str:
    # Deterministic id: identical inputs always produce the identical string.
    for label, value in (("source", source), ("subtype", subtype)):
        if not _NAME_PATTERN.match(value):
            raise ValueError(f"invalid {label} name: {value!r}")
    identifier = f"{source}-{subtype}-{origin_id}"
    if suffix is not None:
        identifier = f"{identifier}{SUFFIX_SEPARATOR}{suffix}"
    return identifier


def parse(identifier: str) -> SyntheticId | None:
    # Origin ids may contain hyphens (UUIDs); source and subtype never do.
    if not identifier:
        return None
    head, _, suffix = identifier.partition(SUFFIX_SEPARATOR)
    parts = head.split("-", 2)
    if len(parts) != 3:
        return None
    source, subtype, origin_id = parts
    if not _NAME_PATTERN.match(source) or not _NAME_PATTERN.match(subtype) or not origin_id:
        return None
    if SUFFIX_SEPARATOR in identifier and not suffix:
        return None
    return SyntheticId(source=source, subtype=subtype, origin_id=origin_id, suffix=suffix or None)
