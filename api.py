"""
api.py — Discord webhook notifications for stream_watcher
"""

import asyncio
import logging
import re
from typing import Optional, Tuple

import aiohttp
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

# Setup logging
logger = logging.getLogger("stream_watcher")

WEBHOOK_RE = re.compile(r"discord\.com/api/webhooks/(\d+)/([\w-]+)")
DISCORD_API_BASE = "https://discord.com/api/webhooks"
SEND_ATTEMPTS = 3
SEND_TIMEOUT = 15  # seconds


class NullNotifier:
    """Notifier used when no webhook is configured."""

    async def send(self, message: str) -> bool:
        logger.debug("Discord webhook URL not set, skipping webhook notification.")
        return False


def parse_webhook_url(url: str) -> Optional[Tuple[str, str]]:
    """Extract the webhook id and token from a Discord webhook URL.

    Args:
        url: The configured webhook URL

    Returns:
        (id, token) if the URL has the expected shape, None otherwise
    """
    match = WEBHOOK_RE.search(url or "")
    if not match:
        return None
    return match.group(1), match.group(2)


class DiscordNotifier:
    """Best-effort Discord webhook client.

    Messages are prefixed with the channel name and, if configured, a user
    mention. Transient HTTP errors are retried a few times; any remaining
    failure is logged and swallowed so notifications never affect the
    supervisor.
    """

    def __init__(
        self,
        webhook_url: str,
        channel: str,
        mention_target_id: Optional[str] = None,
        api_base: str = DISCORD_API_BASE,
        retry_wait=None,
    ):
        self.webhook_url = webhook_url
        self.channel = channel
        self.mention_target_id = mention_target_id
        self.api_base = api_base.rstrip("/")
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    def format_message(self, message: str) -> str:
        mention = f"<@{self.mention_target_id}>\n" if self.mention_target_id else ""
        return f"{mention}[{self.channel}] {message}"

    async def _post(self, endpoint: str, payload: dict) -> bool:
        timeout = aiohttp.ClientTimeout(total=SEND_TIMEOUT)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(endpoint, json=payload) as response:
                if response.status >= 500:
                    # server-side errors are worth another attempt
                    response.raise_for_status()
                if not 200 <= response.status < 300:
                    logger.warning(
                        f"Failed to send Discord notification for {self.channel}: {response.status} {await response.text()}"
                    )
                    return False
                logger.debug(f"Discord notification sent for {self.channel}")
                return True

    async def send(self, message: str) -> bool:
        """Post ``message`` to the webhook.

        Returns:
            True if the webhook accepted the message, False otherwise
        """
        parsed = parse_webhook_url(self.webhook_url)
        if not parsed:
            logger.warning("Invalid Discord Webhook URL format")
            return False

        webhook_id, token = parsed
        endpoint = f"{self.api_base}/{webhook_id}/{token}"
        payload = {"content": self.format_message(message)}

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(SEND_ATTEMPTS),
                wait=self.retry_wait,
                retry=retry_if_exception_type(
                    (aiohttp.ClientError, asyncio.TimeoutError)
                ),
                reraise=True,
            ):
                with attempt:
                    sent = await self._post(endpoint, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError, RetryError) as e:
            logger.warning(f"Failed to send Discord notification: {e}")
            return False
        except Exception as e:
            logger.error(f"Error sending Discord notification for {self.channel}: {e}")
            return False
        return sent


def build_notifier(settings):
    """Choose the notifier for a Settings object."""
    if settings.discord_webhook_url:
        return DiscordNotifier(
            settings.discord_webhook_url,
            settings.channel,
            settings.discord_mention_target_id,
        )
    return NullNotifier()
