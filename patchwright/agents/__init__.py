"""
PATCHWRIGHT Agent Roster

Each agent is:
  - A prompt builder (pure: snapshot in, string out)
  - One completion call, retried only on transient transport failures
  - A strict output schema applied to the untrusted answer

Agents are stateless between runs.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Annotated, Generic, TypeVar

from loguru import logger
from pydantic import AfterValidator, BaseModel, ValidationError
from tenacity import RetryCallState, retry, retry_if_exception, stop_after_attempt, wait_random_exponential

from patchwright.completion import CompletionClient, CompletionResponse, TransportError
from patchwright.config_loader import LimitsConfig

SnapshotT = TypeVar("SnapshotT", bound=BaseModel)
ResultT = TypeVar("ResultT", bound=BaseModel)

# Statuses worth another attempt. Everything else is the request's fault.
RETRYABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})


def _utf8_text(value: str) -> str:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError("string contains a lone surrogate and cannot be encoded as UTF-8") from None
    return value


# JSON escapes like "\ud800" decode to lone surrogates. Anything that ends up
# in an outcome record must be writable.
Text = Annotated[str, AfterValidator(_utf8_text)]


def is_transient(exc: BaseException) -> bool:
    """Timeouts, dropped connections and server-side hiccups. Never bad JSON."""
    if not isinstance(exc, TransportError):
        return False
    return exc.status_code is None or exc.status_code in RETRYABLE_STATUSES


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    logger.warning(f"[LLM] Attempt {state.attempt_number} failed ({exc}), retrying...")


class BaseAgent(ABC, Generic[SnapshotT, ResultT]):
    """
    Base class for PATCHWRIGHT agents.

    Subclasses define:
      - role: str — used in log tags
      - build_prompt() — renders the snapshot
      - parse_response() — validates the payload into a result model
      - max_tokens() — generation cap for this agent
    """

    role: str = "unknown"

    def __init__(self, client: CompletionClient, limits: LimitsConfig | None = None):
        self.client = client
        self.limits = limits or LimitsConfig()

    def run(self, snapshot: SnapshotT) -> ResultT:
        """Execute the agent: build prompt → call model → parse."""
        prompt = self.build_prompt(snapshot)
        logger.debug(f"[{self.role.upper()}] Prompt is {len(prompt)} chars")
        response = self._complete(prompt)
        return self.parse_response(response)

    def _complete(self, prompt: str) -> CompletionResponse:
        call = retry(
            stop=stop_after_attempt(max(1, self.limits.max_attempts)),
            wait=wait_random_exponential(
                multiplier=self.limits.retry_min_wait,
                max=self.limits.retry_max_wait,
            ),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            reraise=True,
        )(self.client.complete)
        return call(prompt, max_tokens=self.max_tokens())

    @abstractmethod
    def build_prompt(self, snapshot: SnapshotT) -> str:
        ...

    @abstractmethod
    def parse_response(self, response: CompletionResponse) -> ResultT:
        ...

    @abstractmethod
    def max_tokens(self) -> int:
        ...


def describe_validation_error(error: ValidationError) -> str:
    """First validation problem, in one line, for the outcome record."""
    first = error.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "<root>"
    return f"LLM response has an unexpected shape: {loc}: {first.get('msg', 'invalid')}"
