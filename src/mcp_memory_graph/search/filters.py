"""
Date filters and result ordering for memory_find.

Date bounds accept ISO-8601 dates ("2025-01-01", "2025-01-01T10:00:00Z")
or relative offsets counted back from now: "12h", "7d", "3m", "1y".
Bounds are normalized to UTC ISO strings, the format memories are stored
with, so the graph compares them as plain strings.
"""

import re
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

from ..errors import InvalidArgument

OrderBy = Literal["relevance", "created", "modified", "accessed"]

# Stored properties to order by, first present wins. Materialization
# stamps lastAccessed, so "accessed" prefers the access time before this read.
ORDER_FIELDS: dict[str, tuple[str, ...]] = {
    "created": ("createdAt",),
    "modified": ("modifiedAt",),
    "accessed": ("previousAccess", "lastAccessed"),
}

_RELATIVE = re.compile(r"^(\d+)([hdmy])$")

# (field, stored property, comparison)
_BOUNDS = (
    ("created_after", "createdAt", ">="),
    ("created_before", "createdAt", "<="),
    ("modified_since", "modifiedAt", ">="),
    ("accessed_since", "lastAccessed", ">="),
)


def parse_date_bound(value: str, now: datetime | None = None) -> str:
    """
    Parse an absolute or relative date into a UTC ISO-8601 string.

    Naive ISO dates are read as UTC. Months and years are calendar
    offsets, so "1m" on March 31st lands on the last day of February.

    Raises:
        InvalidArgument: The value is neither format
    """
    text = value.strip().lower()
    now = now or datetime.now(timezone.utc)

    match = _RELATIVE.match(text)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        if unit == "h":
            moment = now - timedelta(hours=amount)
        elif unit == "d":
            moment = now - timedelta(days=amount)
        elif unit == "m":
            moment = now - relativedelta(months=amount)
        else:
            moment = now - relativedelta(years=amount)
        return moment.astimezone(timezone.utc).isoformat()

    try:
        moment = dateutil_parser.isoparse(value.strip())
    except (ValueError, OverflowError) as e:
        raise InvalidArgument(
            f"Invalid date {value!r}: use ISO-8601 (2025-01-01) or a relative offset (12h, 7d, 3m, 1y)"
        ) from e
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


@dataclass(frozen=True)
class DateFilter:
    """Normalized date bounds; every bound that is set must hold."""

    created_after: str | None = None
    created_before: str | None = None
    modified_since: str | None = None
    accessed_since: str | None = None

    @classmethod
    def parse(
        cls,
        created_after: str | None = None,
        created_before: str | None = None,
        modified_since: str | None = None,
        accessed_since: str | None = None,
    ) -> "DateFilter | None":
        """Build a filter from raw bounds, or None when no bound is given."""
        raw = {
            "created_after": created_after,
            "created_before": created_before,
            "modified_since": modified_since,
            "accessed_since": accessed_since,
        }
        if not any(raw.values()):
            return None
        now = datetime.now(timezone.utc)
        parsed = {}
        for name, value in raw.items():
            if not value:
                continue
            try:
                parsed[name] = parse_date_bound(value, now)
            except InvalidArgument as e:
                raise InvalidArgument(f"Invalid {name}: {e}") from e
        date_filter = cls(**parsed)
        if (
            date_filter.created_after
            and date_filter.created_before
            and date_filter.created_after >= date_filter.created_before
        ):
            raise InvalidArgument("created_after must be earlier than created_before")
        return date_filter

    def clause(self, var: str = "m") -> str:
        """Cypher conditions joined with AND, each prefixed with AND."""
        return "".join(
            f" AND {var}.{prop} {op} ${name}" for name, prop, op in _BOUNDS if getattr(self, name) is not None
        )

    def params(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def order_key_values(rows: list[dict[str, Any]], order_by: OrderBy) -> dict[str, str]:
    """Map memory id to the stored value results are ordered by."""
    props = ORDER_FIELDS.get(order_by)
    if not props:
        return {}
    values = {}
    for row in rows:
        if row.get("id"):
            values[row["id"]] = next((row[p] for p in props if row.get(p)), "")
    return values


def apply_order(items: list, order_by: OrderBy, values: dict[str, str]) -> list:
    """
    Reorder items by date, newest first, ties broken by id.

    "relevance" keeps the incoming order.
    """
    if order_by == "relevance":
        return items
    by_id = sorted(items, key=lambda item: item.id)
    return sorted(by_id, key=lambda item: values.get(item.id, ""), reverse=True)
