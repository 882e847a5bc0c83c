"""ReceiptTracker: provider message id -> pending XEP-0184 receipt."""

from __future__ import annotations

import threading

from loguru import logger

from smsxmpp.core.constants import DEFAULT_RECEIPT_CAPACITY
from smsxmpp.stanzas import ChatMessage


class ReceiptTracker:
    """Bounded map; when full the whole table is cleared before inserting.

    Clearing drops receipts still pending under burst load; delivery notices for
    dropped ids are then ignored.
    """

    def __init__(self, capacity: int = DEFAULT_RECEIPT_CAPACITY) -> None:
        self._capacity = capacity
        self._pending: dict[str, ChatMessage] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def capacity(self) -> int:
        return self._capacity

    def register(self, provider_message_id: str, receipt: ChatMessage) -> None:
        with self._lock:
            if len(self._pending) >= self._capacity:
                logger.info("Clearing {} pending receipts", len(self._pending))
                self._pending.clear()
            self._pending[provider_message_id] = receipt
        logger.debug("Waiting to send receipt for provider id {}", provider_message_id)

    def resolve(self, provider_message_id: str) -> ChatMessage | None:
        """Remove and return the receipt for provider_message_id, or None."""
        with self._lock:
            return self._pending.pop(provider_message_id, None)
