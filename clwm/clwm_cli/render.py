"""Text rendering of records for the command line."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Any

import yaml

from ..clwm_lib.model import Attribute, AttributeType, DataType, Noun, NounType
from ..clwm_lib.schema import value_to_json


def format_ms(ms: int | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="seconds")


def render_document(record: Any) -> str:
    """Render a record (with any populated tree) as a YAML document."""
    return yaml.safe_dump(
        record.to_dict(),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
    )


def render_line(record: Any) -> str:
    """Render a record as one tab-separated line."""
    if isinstance(record, NounType):
        return f"{record.id}\t{record.type_name}"
    if isinstance(record, Noun):
        return f"{record.id}\t{record.name}\t{record.noun_type}"
    if isinstance(record, DataType):
        system = "\tsystem" if record.system_defined else ""
        return f"{record.name}\tv{record.version}{system}"
    if isinstance(record, AttributeType):
        multiple = "multiple" if record.multiple_allowed else "single"
        return f"{record.id}\t{record.attribute_name}\t{record.data_type}\t{multiple}"
    if isinstance(record, Attribute):
        if record.parent_noun_id is not None:
            parent = f"noun:{record.parent_noun_id}"
        else:
            parent = f"attribute:{record.parent_attribute_id}"
        return (
            f"{record.id}\ttype:{record.attribute_type_id}\t{parent}"
            f"\tv{record.data_type_version}\t{value_to_json(record.data)}"
        )
    raise TypeError(f"Cannot render {type(record).__name__}")


def render_history(rows: list[Any]) -> str:
    """Render history rows oldest first, one block per change set."""
    blocks = []
    for row in rows:
        lines = [f"change set {row.change_set_id} at {format_ms(row.change_date)}"]
        for f in dataclasses.fields(row):
            if not f.name.startswith("diff_"):
                continue
            patch = getattr(row, f.name)
            if patch:
                lines.append(f"{f.name[len('diff_'):]}:")
                lines.extend(f"  {line}" for line in patch.split("\n"))
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)
