import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum

from aiohttp import ClientError, ClientSession, ClientTimeout


class NotificationStatus(Enum):
    Sent = "sent"
    Skipped = "skipped"
    Failed = "failed"


class Notifier(ABC):
    @abstractmethod
    async def notify(self, text: str) -> NotificationStatus:
        pass


class DiscordWebhookNotifier(Notifier):
    """
    Posts {"content": text} to a discord webhook.
    Discord answers a delivered message with 204 No Content, anything else
    is a failed delivery.
    """
    webhook_url: str | None
    retry_attempts: int
    retry_delay: float
    timeout: float

    def __init__(
        self,
        webhook_url: str | None,
        retry_attempts: int = 1,
        retry_delay: float = 1,
        timeout: float = 10,
    ) -> None:
        self.webhook_url = webhook_url
        self.retry_attempts = max(retry_attempts, 1)
        self.retry_delay = retry_delay
        self.timeout = timeout

    async def notify(self, text: str) -> NotificationStatus:
        if not self.webhook_url:
            logging.warning(
                "Cannot find discord webhook url, notification skipped.")
            return NotificationStatus.Skipped

        discord_text = f"🐥 {text}"
        json_request = {"content": discord_text}
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        logging.debug(f"Sending to Discord: {discord_text}")

        for i in range(self.retry_attempts):
            try:
                async with ClientSession(
                    timeout=ClientTimeout(total=self.timeout)
                ) as session:
                    async with session.post(
                        self.webhook_url,
                        json=json_request,
                        headers=headers,
                    ) as response:
                        if response.status == 204:
                            logging.info("Discord notification sent.")
                            return NotificationStatus.Sent
                        resp = await response.text()
                        logging.error(
                            f"Attempt No. {i+1} to post webhook failed. "
                            f"status: {response.status} response: {resp}"
                        )
            except (ClientError, asyncio.TimeoutError) as excp:
                logging.error(
                    f"Attempt No. {i+1} to post webhook failed. "
                    f"error: {str(excp)}"
                )
            if i + 1 < self.retry_attempts:
                await asyncio.sleep(self.retry_delay)

        return NotificationStatus.Failed
