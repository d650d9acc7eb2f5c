"""
Order lifecycle status.

Upstream systems own the status vocabulary and add to it freely (custom
WooCommerce statuses, WMS status texts). LogiFlow acts on a small closed set
of "still being fulfilled" statuses; every other value is carried through
untouched.
"""

from dataclasses import dataclass
from enum import Enum


class ActiveStatus(str, Enum):
    """Statuses of orders that are still being fulfilled."""

    PROCESSING = "processing"
    PARTIALLY_SHIPPED = "partially-shipped"


# Store-specific slugs that mean the same thing as an ActiveStatus.
STATUS_ALIASES = {
    "delvis-levert": ActiveStatus.PARTIALLY_SHIPPED,
}


@dataclass(frozen=True)
class OrderStatus:
    """
    A raw upstream status plus, when it is one we act on, its ActiveStatus.

    ``OrderStatus.parse("processing").active is ActiveStatus.PROCESSING``;
    ``OrderStatus.parse("wc-awaiting-pickup").active is None``.
    """

    raw: str
    active: ActiveStatus | None = None

    @classmethod
    def parse(cls, value: str | None) -> "OrderStatus":
        raw = (value or "").strip()
        key = raw.lower()
        if key in STATUS_ALIASES:
            return cls(raw=raw, active=STATUS_ALIASES[key])
        try:
            return cls(raw=raw, active=ActiveStatus(key))
        except ValueError:
            return cls(raw=raw)

    @property
    def is_active(self) -> bool:
        return self.active is not None

    def __str__(self) -> str:
        return self.raw


def stored_values(statuses: list[str]) -> list[str]:
    """Expand a status filter so an active status also matches its aliases."""
    values: list[str] = []
    for status in statuses:
        parsed = OrderStatus.parse(status)
        candidates = [parsed.raw]
        if parsed.active is not None:
            candidates.append(parsed.active.value)
            candidates.extend(alias for alias, target in STATUS_ALIASES.items() if target is parsed.active)
        values.extend(value for value in candidates if value and value not in values)
    return values


# Stored status values the retention sweep never deletes.
RETENTION_KEEP_STATUSES: tuple[str, ...] = tuple(stored_values([s.value for s in ActiveStatus]))
