"""
LLM Completion Client
OpenAI-compatible chat completions (NEAR AI cloud by default).

Model output is free text; `extract_json` turns it into a tagged result so
every caller handles the malformed case explicitly:

    Parsed(value)    - JSON recovered from the text
    Malformed(raw)   - nothing parseable; caller applies its fallback
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

import httpx

from config.settings import LLMConfig
from infrastructure.api_metrics import APICallTimer, APIMetricsTracker
from infrastructure.errors import ConfigurationError, LLMError

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE = re.compile(r"```\s*([\s\S]*?)\s*```")
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class Parsed:
    value: Any


@dataclass(frozen=True)
class Malformed:
    raw_text: str
    reason: str = ""


ParseResult = Union[Parsed, Malformed]


def extract_json(text: str, allow_bare_object: bool = False) -> ParseResult:
    """
    Recover JSON from model output.

    Order: ```json fence, then any ``` fence, then the whole text.
    With allow_bare_object, an unfenced reply that does not start with "{"
    is searched for the outermost {...} span.
    """
    text = (text or "").strip()
    candidate = text

    if "```json" in text:
        match = _JSON_FENCE.search(text)
        if match:
            candidate = match.group(1).strip()
    elif "```" in text:
        match = _ANY_FENCE.search(text)
        if match:
            candidate = match.group(1).strip()

    if allow_bare_object and candidate == text and not candidate.startswith("{"):
        match = _BARE_OBJECT.search(text)
        if match:
            candidate = match.group(0)

    try:
        return Parsed(json.loads(candidate))
    except (json.JSONDecodeError, TypeError) as e:
        return Malformed(raw_text=text, reason=str(e))


class LLMClient:
    """
    Usage:
        llm = LLMClient(load_llm_config())
        text = await llm.complete("Return a JSON array of tasks", temperature=0.7)
        result = extract_json(text)
    """

    def __init__(
        self,
        config: LLMConfig,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[APIMetricsTracker] = None,
    ):
        self.config = config
        self.client = client or httpx.AsyncClient(timeout=config.timeout)
        self.metrics = metrics

    async def aclose(self):
        await self.client.aclose()

    async def complete(self, prompt: str, temperature: float = 0.7, max_tokens: Optional[int] = None) -> str:
        """
        Single non-streaming completion; returns the message text.

        Raises:
            ConfigurationError: no API key configured
            LLMError: transport failure, non-200 response or unexpected body
        """
        if not self.config.api_key:
            raise ConfigurationError("NEAR_AI_API_KEY is not configured")

        url = f"{self.config.endpoint.rstrip('/')}/chat/completions"

        with APICallTimer(self.metrics, "near_ai", "chat/completions") as timer:
            try:
                resp = await self.client.post(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.config.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "model": self.config.model,
                        "messages": [{"role": "user", "content": prompt}],
                        "temperature": temperature,
                        "max_tokens": max_tokens or self.config.max_tokens,
                        "stream": False,
                    },
                )
            except httpx.HTTPError as e:
                raise LLMError(f"LLM request failed: {e}") from e

            timer.status_code = resp.status_code
            if resp.status_code != 200:
                if resp.status_code == 429:
                    timer.status = "rate_limited"
                raise LLMError(f"LLM error: {resp.status_code} {resp.text[:200]}", status_code=resp.status_code)

            try:
                data = resp.json()
                content = data["choices"][0]["message"]["content"]
            except (ValueError, KeyError, IndexError, TypeError) as e:
                raise LLMError(f"Unexpected LLM response: {e}") from e

        return (content or "").strip()
