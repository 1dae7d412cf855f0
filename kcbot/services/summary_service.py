"""
kcbot.services.summary_service — Chat summaries via a chat-completion model
============================================================================

``/summary`` sends the most recent chat messages to an OpenAI-compatible
``/chat/completions`` endpoint and relays the answer back to the chat.
The endpoint URL and model come from ``config.yaml``; the bearer token
comes from ``SUMMARY_API_TOKEN``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any

import httpx

from kcbot.errors import UpstreamError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are Khmercoders assistant. Your main task is to provide brief 50 - 100 words, \
easy-to-read summaries of chat history.

---
Format

When you respond, use these HTML tags for formatting:
- Use <b>text</b> for bold formatting
- Use <i>text</i> for italic formatting
- Use <code>text</code> for inline code
- Use <pre>text</pre> for code blocks
- Use <tg-spoiler>spoiler</tg-spoiler> for spoilers

Escape special characters:
- replace < with &lt;
- replace > with &gt;
- replace & with &amp;
- replace " with &quot;
---

---
Your Restrictions:

Summaries Only: Your primary purpose is to summarize chat conversations. \
Make sure summaries are short and concise for quick reading.

"Who are you?" Exception: If someone asks "Who are you?", you can briefly \
state that you are the Khmercoders Assistant.

No Other Topics: Do not answer any other questions or engage in conversations \
outside of summarizing chats or stating your identity. Politely decline if asked \
to do anything else.
---
"""


def _format_stamp(value: datetime | str) -> str:
    """``Mar 5, 14:07`` style stamp."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return f"{value.strftime('%b')} {value.day}, {value.strftime('%H:%M')}"


def build_conversation(messages: Sequence[dict[str, Any]]) -> str:
    """Oldest-first transcript from newest-first *messages*."""
    return "\n".join(
        f"[{_format_stamp(m['message_date'])}] {m['sender_name']}: {m['message_text']}"
        for m in reversed(messages)
    )


class SummaryClient:
    """Calls a chat-completion endpoint and returns the first choice's text."""

    def __init__(
        self,
        url: str,
        token: str | None,
        model: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.token = token
        self.model = model
        self.timeout = timeout
        self._transport = transport

    def build_payload(
        self, messages: Sequence[dict[str, Any]], user_prompt: str = ""
    ) -> dict[str, Any]:
        chat = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Summarize the following {len(messages)} Telegram messages:\n\n"
                    f"{build_conversation(messages)}"
                ),
            },
        ]
        if user_prompt:
            chat.append({"role": "user", "content": user_prompt})
        return {"model": self.model, "messages": chat}

    async def summarize(
        self, messages: Sequence[dict[str, Any]], user_prompt: str = ""
    ) -> str:
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        payload = self.build_payload(messages, user_prompt)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise UpstreamError("summary", f"request failed: {exc}") from exc

        if resp.status_code != 200:
            logger.warning("Summary endpoint returned %d", resp.status_code)
            raise UpstreamError("summary", f"HTTP {resp.status_code}")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise UpstreamError("summary", "unexpected response shape") from exc

        return (content or "").strip() or "No summary generated"
