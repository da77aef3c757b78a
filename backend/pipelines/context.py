from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

_CONTEXT_FIELDS = ("sport", "event", "market")


@dataclass(slots=True)
class SharedTicketContext:
    """Ticket-wide facts set by the first leg that resolves each of them."""

    _values: dict[str, str] = field(default_factory=dict)

    def claim(self, name: str, value: str | None) -> bool:
        """Store ``value`` unless the field is already set. Returns True on write."""

        if name not in _CONTEXT_FIELDS:
            raise KeyError(f"Unknown ticket context field '{name}'")
        if not value or name in self._values:
            return False
        self._values[name] = value
        logger.debug("Ticket context {}={!r}", name, value)
        return True

    @property
    def sport(self) -> str | None:
        return self._values.get("sport")

    @property
    def event(self) -> str | None:
        return self._values.get("event")

    @property
    def market(self) -> str | None:
        return self._values.get("market")

    def as_dict(self) -> dict[str, str | None]:
        return {name: self._values.get(name) for name in _CONTEXT_FIELDS}

    def reset(self) -> None:
        self._values.clear()
