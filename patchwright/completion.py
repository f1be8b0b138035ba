"""
PATCHWRIGHT Completion Client — One Request, One Answer

Talks to an OpenAI-compatible (or Azure OpenAI) chat-completions endpoint
over plain HTTP. Enforces JSON mode, returns the parsed JSON value, and
turns every way the call can go wrong into a typed CompletionError.

Single attempt. Retry policy belongs to the caller.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx
import litellm
from loguru import logger
from pydantic import BaseModel

from patchwright.config_loader import DEFAULT_MODEL, ProviderConfig


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class CompletionError(Exception):
    """Base class for anything that stops us getting a usable JSON answer."""


class TransportError(CompletionError):
    """Non-2xx status, timeout, or connection failure."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class EmptyResponseError(CompletionError):
    """2xx status but no message content."""


class MalformedJSONError(CompletionError):
    """Content that is not JSON, or JSON missing the fields we need."""


# ---------------------------------------------------------------------------
# Provider variants
# ---------------------------------------------------------------------------

_AZURE_HOST = re.compile(r"(^|\.)openai\.azure\.com$", re.IGNORECASE)


@dataclass(frozen=True)
class StandardProvider:
    """OpenAI and OpenAI-compatible endpoints: bearer auth."""
    api_key: str = field(repr=False)
    kind: str = "standard"

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def params(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True)
class AzureProvider:
    """Azure OpenAI: key in a plain header, optional api-version query param."""
    api_key: str = field(repr=False)
    api_version: str | None = None
    kind: str = "azure"

    def headers(self) -> dict[str, str]:
        return {"api-key": self.api_key}

    def params(self) -> dict[str, str]:
        return {"api-version": self.api_version} if self.api_version else {}


Provider = StandardProvider | AzureProvider


def is_azure_url(base_url: str) -> bool:
    host = urlsplit(base_url).hostname or ""
    return bool(_AZURE_HOST.search(host))


def resolve_provider(base_url: str, api_key: str, api_version: str | None = None) -> Provider:
    """Pick the auth/URL scheme once from the base URL host."""
    if is_azure_url(base_url):
        return AzureProvider(api_key=api_key, api_version=api_version or None)
    if api_version:
        logger.debug("[LLM] api-version ignored for non-Azure endpoint")
    return StandardProvider(api_key=api_key)


# ---------------------------------------------------------------------------
# Usage Tracking
# ---------------------------------------------------------------------------

@dataclass
class UsageRecord:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    call_count: int = 0

    def record(self, model: str, usage: dict[str, Any] | None) -> float:
        """Add one call's usage block. Returns the estimated cost of that call."""
        self.call_count += 1
        if not usage:
            return 0.0

        prompt = int(usage.get("prompt_tokens") or 0)
        completion = int(usage.get("completion_tokens") or 0)
        self.prompt_tokens += prompt
        self.completion_tokens += completion
        self.total_tokens += int(usage.get("total_tokens") or prompt + completion)

        try:
            prompt_cost, completion_cost = litellm.cost_per_token(
                model=model, prompt_tokens=prompt, completion_tokens=completion
            )
        except Exception as e:
            # Unknown deployment names (Azure) have no price entry.
            logger.debug(f"[LLM] No pricing for {model}: {e}")
            return 0.0

        cost = prompt_cost + completion_cost
        self.estimated_cost += cost
        return cost

    def summary(self) -> dict:
        return {
            "total_tokens": self.total_tokens,
            "estimated_cost": round(self.estimated_cost, 4),
            "call_count": self.call_count,
        }


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class CompletionResponse(BaseModel):
    payload: Any
    model: str
    tokens_used: int = 0
    cost: float = 0.0
    latency_ms: int = 0


def _strip_code_fences(content: str) -> str:
    """Drop a wrapping ```json fence if the model ignored JSON mode."""
    if not content.startswith("```"):
        return content
    lines = content.split("\n")
    lines = [l for l in lines if not l.strip().startswith("```")]
    return "\n".join(lines).strip()


class CompletionClient:
    """
    Chat-completions client for a single prompt.

    `complete(prompt)` performs exactly one POST and returns the parsed
    JSON payload, or raises TransportError / EmptyResponseError /
    MalformedJSONError.
    """

    def __init__(self, config: ProviderConfig, transport: httpx.BaseTransport | None = None):
        if not config.api_key:
            raise ValueError("ProviderConfig.api_key is required")
        self.config = config
        self.model = config.model or DEFAULT_MODEL
        self.provider = resolve_provider(config.base_url, config.api_key, config.api_version)
        self.url = f"{config.base_url.rstrip('/')}/chat/completions"
        self.usage = UsageRecord()
        self._transport = transport

    def build_request(self, prompt: str, max_tokens: int) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "response_format": {"type": "json_object"},
            "max_tokens": max_tokens,
        }

    def complete(self, prompt: str, max_tokens: int = 4096) -> CompletionResponse:
        """Send the prompt and return the parsed JSON answer."""
        headers = {"Content-Type": "application/json", **self.provider.headers()}
        start = time.monotonic()

        logger.debug(f"[LLM] POST {self.url} ({self.provider.kind}, model={self.model})")

        try:
            with httpx.Client(timeout=self.config.timeout_seconds, transport=self._transport) as client:
                res = client.post(
                    self.url,
                    params=self.provider.params(),
                    headers=headers,
                    json=self.build_request(prompt, max_tokens),
                )
        except httpx.TimeoutException as e:
            raise TransportError(f"LLM API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"LLM API request failed: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)

        if not res.is_success:
            raise TransportError(
                f"LLM API error {res.status_code}: {res.text}",
                status_code=res.status_code,
                body=res.text,
            )

        try:
            data = res.json()
        except ValueError as e:
            raise MalformedJSONError(f"LLM API returned a non-JSON body: {e}") from e

        raw = _message_content(data)
        if not raw:
            raise EmptyResponseError("Empty LLM response")

        try:
            payload = json.loads(_strip_code_fences(raw))
        except json.JSONDecodeError as e:
            logger.debug(f"[LLM] Raw response: {raw[:500]}")
            raise MalformedJSONError(f"LLM response is not valid JSON: {e}") from e

        usage = data.get("usage") if isinstance(data, dict) else None
        if not isinstance(usage, dict):
            usage = None
        cost = self.usage.record(self.model, usage)

        logger.debug(
            f"[LLM] complete — "
            f"{self.usage.total_tokens} tokens, "
            f"${self.usage.estimated_cost:.4f}, "
            f"{elapsed_ms}ms"
        )

        return CompletionResponse(
            payload=payload,
            model=self.model,
            tokens_used=int((usage or {}).get("total_tokens") or 0),
            cost=cost,
            latency_ms=elapsed_ms,
        )


def _message_content(data: Any) -> str:
    """choices[0].message.content, stripped, or '' if any link is missing."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content.strip() if isinstance(content, str) else ""
