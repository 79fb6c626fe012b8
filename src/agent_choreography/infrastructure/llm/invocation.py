"""Timed, retried invocation of LangChain runnables.

Every call into the generative backend goes through :func:`invoke_chain`.
It runs the chain on a worker thread, abandons the thread when the timeout
elapses or the request is cancelled, retries transient failures (timeouts,
rate limits, connection errors) with linear backoff, and translates
everything else into the domain exception taxonomy so callers only ever
have to catch ``BackendFailure``.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from typing import TYPE_CHECKING, Any

from langchain_core.exceptions import OutputParserException
from pydantic import ValidationError

from agent_choreography.domain.exceptions import (
    BackendFailure,
    ParseFailure,
    WorkflowCancelled,
)

if TYPE_CHECKING:
    from agent_choreography.infrastructure.performance import PerformanceTracker

logger = logging.getLogger(__name__)

_TRANSIENT_KINDS = frozenset({"timeout", "rate_limit", "connection"})

# How often an in-flight call checks its cancel event.
CANCEL_POLL_SECONDS = 0.05


def classify_exception(exc: BaseException) -> str:
    """Map a provider exception onto a failure kind.

    Provider SDKs raise their own classes (``anthropic.RateLimitError``,
    ``openai.APITimeoutError``...), so classification is by name and by the
    HTTP status code they carry.
    """
    if isinstance(exc, (concurrent.futures.TimeoutError, TimeoutError)):
        return "timeout"
    name = type(exc).__name__.lower()
    status = getattr(exc, "status_code", None)
    if "ratelimit" in name or status == 429:
        return "rate_limit"
    if "timeout" in name:
        return "timeout"
    if "connection" in name or isinstance(exc, ConnectionError):
        return "connection"
    return "error"


def failure_metadata(exc: BaseException) -> dict[str, Any]:
    """Metadata attached to every fallback value produced after *exc*."""
    if isinstance(exc, BackendFailure):
        return {
            "llm_error": True,
            "error_type": exc.details.get("error_type", type(exc).__name__),
            "failure_kind": exc.kind,
            "error": str(exc),
        }
    return {
        "llm_error": True,
        "error_type": type(exc).__name__,
        "failure_kind": classify_exception(exc),
        "error": str(exc),
    }


def _invoke_once(
    chain: Any,
    inputs: dict[str, Any],
    timeout: float | None,
    cancel_event: threading.Event | None,
    label: str,
) -> Any:
    if timeout is None and cancel_event is None:
        return chain.invoke(inputs)
    deadline = None if timeout is None else time.monotonic() + timeout
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    try:
        future = pool.submit(chain.invoke, inputs)
        while True:
            wait_for = CANCEL_POLL_SECONDS if cancel_event is not None else None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise concurrent.futures.TimeoutError()
                wait_for = remaining if wait_for is None else min(wait_for, remaining)
            done, _ = concurrent.futures.wait([future], timeout=wait_for)
            if done:
                return future.result()
            if cancel_event is not None and cancel_event.is_set():
                raise WorkflowCancelled(f"{label} cancelled while in flight")
    finally:
        # Do not block on a call that has timed out or been cancelled.
        pool.shutdown(wait=False, cancel_futures=True)


def invoke_chain(
    chain: Any,
    inputs: dict[str, Any],
    *,
    timeout: float | None = None,
    retries: int = 0,
    retry_backoff: float = 0.0,
    operation: str = "",
    structured: bool = True,
    cancel_event: threading.Event | None = None,
    tracker: PerformanceTracker | None = None,
) -> Any:
    """Invoke *chain* with *inputs*, enforcing timeout and retry policy.

    Parameters
    ----------
    chain:
        Any LangChain runnable.
    inputs:
        Prompt variables.
    timeout:
        Seconds per attempt.  ``None`` disables the timeout.
    retries:
        Extra attempts after a transient failure.
    retry_backoff:
        Wait ``retry_backoff * attempt`` seconds between attempts.
    operation:
        Label used in logs, in latency metrics and in the raised exception.
    structured:
        When ``True`` a ``None`` result is a parse failure.
    cancel_event:
        Checked before each attempt, while a call is in flight and during
        the backoff wait.  Once set, raise ``WorkflowCancelled``.
    tracker:
        Receives the wall-clock duration of the whole call, retries
        included, whether it succeeds or not.

    Raises
    ------
    ParseFailure
        The output did not match the expected schema.
    BackendFailure
        Any other failure, after retries are exhausted.
    WorkflowCancelled
        The surrounding request was cancelled.
    """
    if tracker is None:
        return _invoke_with_retries(
            chain, inputs, timeout, retries, retry_backoff, operation, structured, cancel_event
        )
    with tracker.track(operation or "backend call"):
        return _invoke_with_retries(
            chain, inputs, timeout, retries, retry_backoff, operation, structured, cancel_event
        )


def _invoke_with_retries(
    chain: Any,
    inputs: dict[str, Any],
    timeout: float | None,
    retries: int,
    retry_backoff: float,
    operation: str,
    structured: bool,
    cancel_event: threading.Event | None,
) -> Any:
    attempts = retries + 1
    label = operation or "backend call"
    last_failure: BackendFailure | None = None

    for attempt in range(1, attempts + 1):
        if cancel_event is not None and cancel_event.is_set():
            raise WorkflowCancelled(f"{label} cancelled before attempt {attempt}")

        try:
            result = _invoke_once(chain, inputs, timeout, cancel_event, label)
        except WorkflowCancelled:
            raise
        except (ValidationError, OutputParserException) as exc:
            raise ParseFailure(
                f"{label}: unparsable output: {exc}",
                operation=operation,
                details={"error_type": type(exc).__name__},
            ) from exc
        except Exception as exc:
            kind = classify_exception(exc)
            message = (
                f"{label} timed out after {timeout}s"
                if kind == "timeout" and not str(exc)
                else f"{label} failed: {exc}"
            )
            failure = BackendFailure(
                message,
                kind=kind,
                operation=operation,
                details={"error_type": type(exc).__name__, "attempt": attempt},
            )
            if kind not in _TRANSIENT_KINDS:
                raise failure from exc
            last_failure = failure
        else:
            if structured and result is None:
                raise ParseFailure(f"{label}: empty structured output", operation=operation)
            return result

        if attempt < attempts:
            logger.info(
                "%s: %s on attempt %d/%d, retrying",
                label, last_failure.kind, attempt, attempts,
            )
            delay = retry_backoff * attempt
            if delay > 0:
                if cancel_event is None:
                    time.sleep(delay)
                elif cancel_event.wait(delay):
                    raise WorkflowCancelled(f"{label} cancelled during retry backoff")

    assert last_failure is not None
    raise last_failure
