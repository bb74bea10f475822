"""Assistive (external, non-deterministic) category classification.

Public API:
    - :class:`AssistGateway` with :meth:`~AssistGateway.classify` and
      :meth:`~AssistGateway.try_classify`
    - :class:`CommandBackend` and :class:`OpenAIBackend`
    - :func:`parse_assist_output`

The gateway is only ever invoked on explicit user request. It holds no
database session, never retries and never persists anything; every failure
surfaces as an :class:`~pfledger.errors.AssistUnavailableError` so callers can
degrade to "no suggestion". No side effects occur at import time.
"""

from __future__ import annotations

import json
import os
import shlex
import subprocess
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Protocol

from openai import APITimeoutError, OpenAI, OpenAIError
from pydantic import ValidationError

from .errors import (
    AssistCancelledError,
    AssistFormatError,
    AssistInvocationError,
    AssistTimeoutError,
    AssistUnavailableError,
)
from .logging_setup import get_logger
from .models import AssistDecision, Suggestion
from .prompting import build_classification_prompt

# ---- Tunables ----------------------------------------------------------------

DEFAULT_TIMEOUT_SEC: float = 20.0
DEFAULT_COMMAND: str = "codex exec"
DEFAULT_MODEL: str = "gpt-5"
_POLL_SEC: float = 0.05
_PREVIEW_CHARS: int = 200
# Only the tail of the output is searched for a salvageable object.
MAX_SALVAGE_CHARS: int = 16 * 1024

_logger = get_logger("pfledger.assist")


# ---- Output parsing ----------------------------------------------------------

_DECODER = json.JSONDecoder()


def extract_last_object(text: str) -> str | None:
    """Return the last balanced top-level ``{...}`` substring that is valid JSON.

    Stray braces in surrounding commentary are skipped; objects nested inside
    a larger object are not considered separately. Only the last
    ``MAX_SALVAGE_CHARS`` characters are searched.
    """

    text = text[-MAX_SALVAGE_CHARS:]
    found: str | None = None
    pos = text.find("{")
    while pos != -1:
        try:
            _obj, end = _DECODER.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find("{", pos + 1)
            continue
        found = text[pos:end]
        pos = text.find("{", end)
    return found


def _preview(raw: str) -> str:
    s = " ".join(raw.split())
    return s if len(s) <= _PREVIEW_CHARS else s[:_PREVIEW_CHARS] + "…"


def parse_assist_output(raw: str) -> AssistDecision:
    """Parse classifier output into a validated decision.

    The whole (stripped) output is tried first; when that fails, only the last
    balanced object in the output is parsed. Raises ``AssistFormatError`` when
    neither yields a valid ``{category, reason, confidence}`` object.
    """

    try:
        return AssistDecision.model_validate_json(raw.strip())
    except ValidationError:
        pass

    candidate = extract_last_object(raw)
    if candidate is not None:
        try:
            return AssistDecision.model_validate_json(candidate)
        except ValidationError as e:
            raise AssistFormatError(
                f"classifier output held no valid suggestion: {_preview(raw)}", raw_output=raw
            ) from e
    raise AssistFormatError(f"classifier output was not JSON: {_preview(raw)}", raw_output=raw)


# ---- Backends ----------------------------------------------------------------


class AssistBackend(Protocol):
    """One-shot external classifier: a text prompt in, program output out.

    ``stop`` is set by the gateway on timeout or caller cancellation; backends
    should abandon the call promptly once it is set.
    """

    def complete(self, prompt: str, *, timeout: float, stop: threading.Event) -> str: ...


def _kill(proc: subprocess.Popen[str]) -> None:
    proc.kill()
    try:
        proc.communicate(timeout=1.0)
    except subprocess.TimeoutExpired:  # pragma: no cover - process ignores SIGKILL
        pass


class CommandBackend:
    """Run an external command with the prompt as its final argument.

    stdout and stderr are captured together, as the command's JSON answer may
    be surrounded by progress chatter.
    """

    def __init__(self, command: Sequence[str] | None = None) -> None:
        self.command: list[str] = list(command or shlex.split(DEFAULT_COMMAND))
        if not self.command:
            raise ValueError("CommandBackend requires a non-empty command")

    def complete(self, prompt: str, *, timeout: float, stop: threading.Event) -> str:
        argv = [*self.command, prompt]
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as e:
            raise AssistInvocationError(f"could not start {argv[0]!r}: {e}") from e

        deadline = time.monotonic() + timeout
        while True:
            try:
                out, _ = proc.communicate(timeout=_POLL_SEC)
                break
            except subprocess.TimeoutExpired:
                if stop.is_set():
                    _kill(proc)
                    raise AssistCancelledError(f"{argv[0]!r} was stopped") from None
                if time.monotonic() >= deadline:
                    _kill(proc)
                    raise AssistTimeoutError(
                        f"{argv[0]!r} did not finish within {timeout:.1f}s"
                    ) from None

        if proc.returncode != 0:
            raise AssistInvocationError(
                f"{argv[0]!r} exited with status {proc.returncode}: {_preview(out or '')}"
            )
        return out or ""


class OpenAIBackend:
    """Classify through the OpenAI Responses API (``OPENAI_API_KEY`` from env)."""

    def __init__(self, model: str | None = None) -> None:
        self.model = model or DEFAULT_MODEL

    def complete(self, prompt: str, *, timeout: float, stop: threading.Event) -> str:
        # No SDK-level retries; the gateway contract is a single attempt.
        try:
            with OpenAI(timeout=timeout, max_retries=0) as client:
                resp = client.responses.create(model=self.model, input=prompt)
        except APITimeoutError as e:
            raise AssistTimeoutError(f"OpenAI request timed out after {timeout:.1f}s") from e
        except OpenAIError as e:
            raise AssistInvocationError(f"OpenAI request failed: {e}") from e
        text = getattr(resp, "output_text", None)
        if not isinstance(text, str) or not text:
            raise AssistFormatError("Unexpected Responses API shape; no text output")
        return text


# ---- Gateway -----------------------------------------------------------------


def _timeout_from_env() -> float:
    raw = os.getenv("PFLEDGER_ASSIST_TIMEOUT")
    try:
        value = float(raw) if raw else DEFAULT_TIMEOUT_SEC
    except ValueError:
        value = DEFAULT_TIMEOUT_SEC
    return value if value > 0 else DEFAULT_TIMEOUT_SEC


def backend_from_env() -> AssistBackend:
    """Build the backend named by ``PFLEDGER_ASSIST_BACKEND`` (default ``command``)."""

    kind = (os.getenv("PFLEDGER_ASSIST_BACKEND") or "command").strip().lower()
    if kind == "command":
        command = os.getenv("PFLEDGER_ASSIST_COMMAND") or DEFAULT_COMMAND
        return CommandBackend(shlex.split(command))
    if kind == "openai":
        return OpenAIBackend(model=os.getenv("PFLEDGER_ASSIST_MODEL") or None)
    raise ValueError(f"Unknown PFLEDGER_ASSIST_BACKEND: {kind!r} (expected 'command' or 'openai')")


class AssistGateway:
    """Bounded, isolated access to an assistive classifier backend."""

    def __init__(self, backend: AssistBackend, *, timeout: float = DEFAULT_TIMEOUT_SEC) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.backend = backend
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> AssistGateway:
        return cls(backend_from_env(), timeout=_timeout_from_env())

    def _call_backend(self, prompt: str, cancel: threading.Event | None) -> str:
        """Run the backend in a worker thread and wait for it under the deadline.

        On timeout or cancellation the backend's ``stop`` event is set and the
        caller is released immediately; the worker is not joined.
        """

        stop = threading.Event()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pfledger-assist")
        future = executor.submit(self.backend.complete, prompt, timeout=self.timeout, stop=stop)
        deadline = time.monotonic() + self.timeout
        try:
            while True:
                if cancel is not None and cancel.is_set():
                    stop.set()
                    raise AssistCancelledError("assistive classification cancelled by caller")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    stop.set()
                    raise AssistTimeoutError(
                        f"assistive classification exceeded {self.timeout:.1f}s"
                    )
                done, _ = wait([future], timeout=min(_POLL_SEC, remaining))
                if done:
                    return future.result()
        except BaseException:
            # Covers KeyboardInterrupt in the caller as well.
            stop.set()
            raise
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def classify(
        self,
        merchant_raw: str,
        details: str,
        amount_cents: int,
        known_categories: Iterable[str],
        *,
        cancel: threading.Event | None = None,
    ) -> Suggestion:
        """Ask the external classifier for a category suggestion.

        Raises
        ------
        AssistUnavailableError
            On timeout, cancellation, invocation failure or unparseable output.
        """

        prompt = build_classification_prompt(merchant_raw, details, amount_cents, known_categories)
        t0 = time.perf_counter()
        try:
            raw = self._call_backend(prompt, cancel)
        except AssistUnavailableError:
            raise
        except Exception as e:  # noqa: BLE001 - any backend failure is "unavailable"
            raise AssistInvocationError(f"assistive backend failed: {e}") from e

        decision = parse_assist_output(raw)
        _logger.info(
            "assist:suggested category=%r confidence=%s elapsed=%.2fs",
            decision.category,
            decision.confidence,
            time.perf_counter() - t0,
        )
        return decision.to_suggestion()

    def try_classify(
        self,
        merchant_raw: str,
        details: str,
        amount_cents: int,
        known_categories: Iterable[str],
        *,
        cancel: threading.Event | None = None,
        on_unavailable: Callable[[AssistUnavailableError], Any] | None = None,
    ) -> Suggestion | None:
        """Like :meth:`classify`, but degrade to ``None`` when unavailable."""

        try:
            return self.classify(
                merchant_raw, details, amount_cents, known_categories, cancel=cancel
            )
        except AssistUnavailableError as e:
            _logger.warning("assist:unavailable kind=%s error=%s", type(e).__name__, e)
            if on_unavailable is not None:
                on_unavailable(e)
            return None


__all__ = [
    "DEFAULT_TIMEOUT_SEC",
    "AssistBackend",
    "AssistGateway",
    "CommandBackend",
    "OpenAIBackend",
    "backend_from_env",
    "extract_last_object",
    "parse_assist_output",
]
