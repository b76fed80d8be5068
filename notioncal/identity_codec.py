"""Key-value block carried in an event description.

The calendar assigns its own ids, so the originating task id travels inside
the event description together with a mirrored copy of a few task fields::

    Priority: High
    Deadline: 2024-05-03T00:00:00.000Z
    Category: Projects
    Archived: false
    Id: 5c6b0e1e-...

Values are text, a boolean or absent (``true``/``false``/``null`` on the
wire). Keys and values must not contain newlines.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Union

IdentityValue = Union[str, bool, None]

IDENTITY_KEYS = ("Priority", "Deadline", "Category", "Archived", "Id")
DELIMITER = ": "

_LITERALS: dict[str, IdentityValue] = {"true": True, "false": False, "null": None}


def stringify_value(value: IdentityValue) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return str(value)


def parse_value(text: str) -> IdentityValue:
    if text in _LITERALS:
        return _LITERALS[text]
    return text


def encode_properties(mapping: Mapping[str, IdentityValue]) -> str:
    lines: list[str] = []
    for key, value in mapping.items():
        value_text = stringify_value(value)
        if "\n" in key or "\n" in value_text:
            raise ValueError(f"Newline not allowed in identity property {key!r}.")
        lines.append(f"{key}{DELIMITER}{value_text}\n")
    return "".join(lines)


def decode_properties(text: str | None) -> dict[str, IdentityValue]:
    properties: dict[str, IdentityValue] = {}
    for raw_line in (text or "").split("\n"):
        line = raw_line.rstrip("\r")
        if not line:
            continue
        key, delimiter, value_text = line.partition(DELIMITER)
        if not delimiter or not key:
            continue
        properties[key.casefold()] = parse_value(value_text)
    return properties


@dataclass(frozen=True)
class IdentityBlock:
    task_id: str | None = None
    priority: IdentityValue = None
    deadline: IdentityValue = None
    category: IdentityValue = None
    archived: IdentityValue = None
    extra: dict[str, IdentityValue] = field(default_factory=dict)

    @property
    def is_linked(self) -> bool:
        return self.task_id is not None


def read_identity(description: str | None) -> IdentityBlock:
    properties = decode_properties(description)
    known = {key.casefold() for key in IDENTITY_KEYS}
    raw_id = properties.get("id")
    task_id = raw_id if isinstance(raw_id, str) and raw_id else None
    return IdentityBlock(
        task_id=task_id,
        priority=properties.get("priority"),
        deadline=properties.get("deadline"),
        category=properties.get("category"),
        archived=properties.get("archived"),
        extra={key: value for key, value in properties.items() if key not in known},
    )


def identity_task_id(description: str | None) -> str | None:
    return read_identity(description).task_id
