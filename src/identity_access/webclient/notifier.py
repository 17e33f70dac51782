from __future__ import annotations

from abc import ABC, abstractmethod

from identity_access.configs.logging_config import get_logger
from identity_access.errors import NotificationError

log = get_logger(__name__)


class Notifier(ABC):
    """Out-of-band channel able to deliver a short text to a principal."""

    @abstractmethod
    async def send(self, external_id: str, text: str) -> None:
        """Deliver ``text`` or raise ``NotificationError``."""


class DisabledNotifier(Notifier):
    """Used when no bot token is configured; every delivery fails."""

    async def send(self, external_id: str, text: str) -> None:
        log.warning("notify.disabled external_id=%s", external_id)
        raise NotificationError("notification channel not configured")
