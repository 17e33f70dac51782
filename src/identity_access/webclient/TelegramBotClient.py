from __future__ import annotations

import httpx

from identity_access.configs.logging_config import get_logger
from identity_access.errors import NotificationError
from identity_access.webclient.notifier import Notifier

log = get_logger(__name__)


class TelegramNotifier(Notifier):
    """
    Sends messages through the Telegram Bot API ``sendMessage`` method.

    The external id of a principal is its Telegram chat id. No retry is done
    here; callers decide what a failed delivery means.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        api_url: str = "https://api.telegram.org",
        client: httpx.AsyncClient = None,
        timeout: float = 10.0,
    ):
        self._url = f"{api_url.rstrip('/')}/bot{bot_token}/sendMessage"
        self.session = client or httpx.AsyncClient(timeout=timeout)

    async def send(self, external_id: str, text: str) -> None:
        try:
            resp = await self.session.post(self._url, json={"chat_id": external_id, "text": text})
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning("notify.telegram.failed external_id=%s error=%s", external_id, e)
            raise NotificationError(str(e)) from e

        if not payload.get("ok", False):
            description = payload.get("description", "unknown error")
            log.warning(
                "notify.telegram.rejected external_id=%s description=%s", external_id, description
            )
            raise NotificationError(description)
        log.info("notify.telegram.sent external_id=%s", external_id)

    async def aclose(self) -> None:
        await self.session.aclose()
