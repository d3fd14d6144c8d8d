# push_client.py
"""Expo push API client.

https://docs.expo.dev/push-notifications/sending-notifications/
"""
import asyncio
import logging
import re

import aiohttp

from config import EXPO_PUSH_API_URL

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100
DEVICE_NOT_REGISTERED = "DeviceNotRegistered"
CHANNEL_ID = "remindersNotificationChannel"

_BARE_TOKEN = re.compile(r"^[a-zA-Z0-9_-]+$")


class PushTransportError(Exception):
    """The whole batch could not be delivered to the push gateway."""


def chunked(items, size=MAX_BATCH_SIZE):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def is_valid_push_token(token):
    # Expo tokens, or raw FCM/APNs tokens
    return (
        token.startswith("ExponentPushToken[")
        or token.startswith("ExpoPushToken[")
        or bool(_BARE_TOKEN.match(token))
    )


def build_push_message(to, title, body, data=None):
    return {
        "to": to,
        "title": title,
        "body": body,
        "data": data or {},
        "sound": "default",
        "priority": "high",
        "channelId": CHANNEL_ID,
    }


def error_kind(ticket):
    details = ticket.get("details") or {}
    return details.get("error")


def is_invalid_token_error(ticket):
    return ticket.get("status") == "error" and error_kind(ticket) == DEVICE_NOT_REGISTERED


def ticket_error_message(ticket):
    if ticket.get("status") == "ok":
        return None
    kind = error_kind(ticket)
    if kind:
        return f"{kind}: {ticket.get('message') or 'Unknown error'}"
    return ticket.get("message") or "Unknown error"


class ExpoPushClient:
    def __init__(self, url=EXPO_PUSH_API_URL, access_token=None, timeout=30.0):
        self.url = url
        self.access_token = access_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self):
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def send(self, messages):
        """Send one batch; returns one ticket per message, in order."""
        if not messages:
            return []
        if len(messages) > MAX_BATCH_SIZE:
            raise ValueError(f"At most {MAX_BATCH_SIZE} messages per request")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.url, headers=self._headers(), json=messages) as resp:
                    if resp.status >= 400:
                        text = await resp.text()
                        logger.error(f"Expo Push API error: {resp.status} {text}")
                        raise PushTransportError(f"API returned {resp.status}: {text}")
                    payload = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise PushTransportError(f"Push request timed out after {self.timeout.total}s")
        except aiohttp.ClientError as e:
            raise PushTransportError(f"Push request failed: {e}") from e
        except ValueError as e:
            raise PushTransportError(f"Push API returned invalid JSON: {e}") from e

        tickets = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(tickets, list) or len(tickets) != len(messages):
            logger.error(f"Unexpected Expo Push API response format: {payload}")
            raise PushTransportError("Unexpected API response format")
        return tickets
