"""
Biller directory: the single source of truth for biller configuration.

Lookups only ever return active billers. An unknown concrete id is always
"not found"; the only substitution is the fallback rule for an empty id or
one of the explicitly listed placeholder ids, which resolves to the first
active biller of the fallback provider. Chat-driven flows use it before
they know which biller a bill belongs to.
"""

import logging
from typing import Any, Iterable, Optional

from billpay.config import Settings
from billpay.directory.default_billers import default_billers
from billpay.models.biller import BillerRecord
from billpay.models.enums import Provider

logger = logging.getLogger("billpay.directory")

DEFAULT_FALLBACK_IDS = ("default-paymentus-biller",)


class BillerDirectory:
    """In-memory biller registry, insertion-ordered."""

    def __init__(
        self,
        billers: Iterable[BillerRecord] = (),
        fallback_ids: Iterable[str] = DEFAULT_FALLBACK_IDS,
        fallback_provider: Provider = Provider.PAYMENTUS,
    ):
        self._billers: dict[str, BillerRecord] = {}
        self._fallback_ids = frozenset(fallback_ids)
        self._fallback_provider = fallback_provider
        for biller in billers:
            self.add(biller)

    @classmethod
    def with_defaults(cls, settings: Settings) -> "BillerDirectory":
        return cls(default_billers(settings), fallback_ids=settings.fallback_biller_ids)

    def is_fallback_id(self, biller_id: Optional[str]) -> bool:
        return not biller_id or biller_id in self._fallback_ids

    def lookup(self, biller_id: Optional[str]) -> Optional[BillerRecord]:
        """Return the active biller for ``biller_id``, or None."""
        biller = self._billers.get(biller_id) if biller_id else None
        if biller is not None and biller.is_active:
            return biller

        if self.is_fallback_id(biller_id):
            for candidate in self._billers.values():
                if candidate.is_active and candidate.provider == self._fallback_provider:
                    logger.info(
                        "Resolved placeholder biller id %r to %s",
                        biller_id,
                        candidate.biller_id,
                    )
                    return candidate

        return None

    def search(self, query: str) -> list[BillerRecord]:
        """Active billers whose name or id contains ``query``, case-insensitively."""
        needle = query.lower()
        return [
            b
            for b in self._billers.values()
            if b.is_active and (needle in b.name.lower() or needle in b.biller_id.lower())
        ]

    def add(self, biller: BillerRecord) -> None:
        """Insert a biller, replacing any existing record with the same id."""
        self._billers[biller.biller_id] = biller

    def update(self, biller_id: str, updates: dict[str, Any]) -> bool:
        existing = self._billers.get(biller_id)
        if existing is None:
            return False
        self._billers[biller_id] = existing.merged(updates)
        return True

    def remove(self, biller_id: str) -> bool:
        return self._billers.pop(biller_id, None) is not None

    def deactivate(self, biller_id: str) -> bool:
        """Soft delete: the record stays but no lookup or listing returns it."""
        return self.update(biller_id, {"is_active": False})

    def __len__(self) -> int:
        return len(self._billers)

    def list_active(self) -> list[BillerRecord]:
        """All active billers in insertion order."""
        return [b for b in self._billers.values() if b.is_active]
