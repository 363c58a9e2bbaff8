from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:3000"
NAME_CHECK_PATH = "/api/v1/check"


def is_retryable_status(status: int) -> bool:
    return status == 429 or 500 <= status <= 599


class AgentError(RuntimeError):
    """Base error for remote agent calls.

    `http_status` and `body` are set when the failure came from an HTTP
    response; `retryable` tells whether repeating the request may help.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        http_status: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.http_status = http_status
        self.body = body


class AgentRetryableError(AgentError):
    """Timeout, connection failure, HTTP 5xx or 429."""

    retryable = True


class AgentTerminalError(AgentError):
    """HTTP 4xx other than 429; retrying will not change the answer."""


class AgentResponseError(AgentTerminalError):
    """The agent answered 200 but the body is not a valid response."""


class NameCheckResult(BaseModel):
    available: bool
    suggestions: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


class NameCheckClient:
    """
    Client for the name-availability agent.

    Notes
    - JSON over HTTP: POST {name, state} to `/api/v1/check`.
    - Timeouts, connection errors, 5xx and 429 are retried with exponential
      backoff, honouring a numeric `Retry-After` header. At most
      `max_attempts` requests are made.
    - Other 4xx and malformed bodies are terminal and raised immediately.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff: float = 1.0,
        max_backoff: float = 8.0,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._base_url = base_url.rstrip("/")
        self._max_attempts = max_attempts
        self._backoff = backoff
        self._max_backoff = max_backoff
        self._sleep = sleep
        headers = {"Content-Type": "application/json", "User-Agent": "formation-wizard/0.1"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._owns_client = client is None
        self._headers = headers
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "NameCheckClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def check_name_availability(self, name: str, state: str) -> NameCheckResult:
        """Ask the agent whether `name` can be registered in `state`."""
        data = self._request(NAME_CHECK_PATH, {"name": name, "state": state})
        try:
            return NameCheckResult.model_validate(data)
        except ValidationError as ve:
            raise AgentResponseError(f"Malformed name check response: {ve}") from ve

    # --------------- Internal ---------------
    def _request(self, path: str, json_body: Dict[str, Any]) -> Any:
        backoff = self._backoff
        last_exc: Optional[AgentError] = None
        last_cause: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            delay = backoff
            last_cause = None
            try:
                resp = self._client.post(f"{self._base_url}{path}", json=json_body, headers=self._headers)
            except httpx.TimeoutException as exc:
                last_exc = AgentRetryableError(f"Request to {path} timed out")
                last_cause = exc
            except httpx.TransportError as exc:
                last_exc = AgentRetryableError(f"Connection to agent failed: {exc}")
                last_cause = exc
            else:
                if resp.status_code == 200:
                    try:
                        return resp.json()
                    except ValueError as exc:
                        raise AgentResponseError(
                            "Agent returned a non-JSON body", http_status=200, body=resp.text[:200]
                        ) from exc

                if is_retryable_status(resp.status_code):
                    last_exc = AgentRetryableError(
                        f"HTTP {resp.status_code} from agent",
                        http_status=resp.status_code,
                        body=resp.text[:200],
                    )
                    retry_after = _retry_after_seconds(resp)
                    if retry_after is not None:
                        delay = retry_after
                else:
                    raise AgentTerminalError(
                        f"HTTP {resp.status_code} from agent: {resp.text[:200]}",
                        http_status=resp.status_code,
                        body=resp.text[:200],
                    )

            if attempt == self._max_attempts:
                break
            logger.info(
                "Retrying %s after %s (attempt %d/%d)", path, last_exc, attempt, self._max_attempts
            )
            self._sleep(min(delay, self._max_backoff))
            backoff = min(backoff * 2, self._max_backoff)

        assert last_exc is not None
        logger.warning("Giving up on %s after %d attempts: %s", path, self._max_attempts, last_exc)
        raise last_exc from last_cause


def _retry_after_seconds(resp: httpx.Response) -> Optional[float]:
    raw = resp.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


__all__ = [
    "NameCheckClient",
    "NameCheckResult",
    "AgentError",
    "AgentRetryableError",
    "AgentTerminalError",
    "AgentResponseError",
    "is_retryable_status",
]
