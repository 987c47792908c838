"""
Execution bridge between the host and the in-page runtime.

This is the only place that turns data into executable script text. Payloads
are JSON-encoded, escaped into a single-quoted JS string literal, parsed back
with ``JSON.parse`` inside the page, and every call is wrapped so it always
evaluates to a JSON string.
"""

import asyncio
import json
import logging
from typing import Any, Optional

from .errors import BridgeTimeout, InvalidArguments
from .page import PageProvider
from .page_runtime import AGENT_RUNTIME_JS, RUNTIME_FUNCTIONS, RUNTIME_NAMESPACE, readiness_probe_script
from .retry import SYSTEM_CLOCK, Clock, RetryPolicy


logger = logging.getLogger(__name__)


# Order matters: backslashes first so later escapes are not doubled
_SCRIPT_ESCAPES = (
    ("\\", "\\\\"),
    ("'", "\\'"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def escape_for_script(text: str) -> str:
    """Escape text for embedding inside a single-quoted JS string literal.

    Args:
        text: Raw text (usually a JSON document)

    Returns:
        Text safe to place between single quotes in evaluated script
    """
    for raw, escaped in _SCRIPT_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def build_call_script(name: str, args: list[Any]) -> str:
    """Build the script that invokes one runtime function.

    Args:
        name: Runtime function name (must be in the runtime namespace)
        args: Positional arguments, JSON-serializable

    Returns:
        Script that evaluates to a JSON string

    Raises:
        InvalidArguments: If the name is not a runtime function or the
            arguments cannot be serialized
    """
    if name not in RUNTIME_FUNCTIONS:
        raise InvalidArguments(f"not a runtime function: {name}")
    try:
        payload = json.dumps(args, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise InvalidArguments(f"arguments not serializable: {e}") from e

    return (
        "(async () => {"
        " try {"
        f" const __args = JSON.parse('{escape_for_script(payload)}');"
        f" const __rt = window.{RUNTIME_NAMESPACE};"
        f" const __fn = __rt && __rt.{name};"
        " if (typeof __fn !== 'function') return JSON.stringify({ok: false, error: 'runtime not ready'});"
        " const __r = await __fn.apply(__rt, __args);"
        " return JSON.stringify(__r === undefined ? {ok: false} : __r);"
        " } catch (e) {"
        " return JSON.stringify({ok: false, error: String((e && e.message) || e)});"
        " }"
        " })()"
    )


def parse_result(raw: Any) -> dict[str, Any]:
    """Defensively decode a runtime answer.

    Anything that is not a JSON object (or already a dict) becomes a failure
    result; this never raises.
    """
    data = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (ValueError, TypeError):
            return {"ok": False, "error": "malformed result"}
    if not isinstance(data, dict):
        return {"ok": False, "error": "malformed result" if data is not None else "no result"}
    data = dict(data)
    data["ok"] = data.get("ok") is True
    return data


class ExecutionBridge:
    """Serializes calls into the page runtime and decodes the answers."""

    def __init__(
        self,
        page: PageProvider,
        timeout_ms: int = 10000,
        poll_interval_ms: int = 100,
        clock: Clock = SYSTEM_CLOCK,
        inject_runtime: bool = True,
    ):
        """Initialize the bridge.

        Args:
            page: Page provider to evaluate scripts in
            timeout_ms: Bound on a single evaluation
            poll_interval_ms: Interval of the readiness probe
            clock: Time source for readiness polling
            inject_runtime: Inject the runtime source when it is missing
        """
        self.page = page
        self.timeout_ms = timeout_ms
        self.poll_interval_ms = poll_interval_ms
        self.clock = clock
        self.inject_runtime = inject_runtime
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    def invalidate(self) -> None:
        """Forget readiness, e.g. after the page navigated."""
        self._ready = False

    async def evaluate(self, script: str, timeout_ms: Optional[int] = None) -> Any:
        """Evaluate a script with a bounded wait.

        Raises:
            BridgeTimeout: If the page does not answer in time
        """
        timeout = (timeout_ms if timeout_ms is not None else self.timeout_ms) / 1000.0
        try:
            return await asyncio.wait_for(self.page.evaluate_script(script), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise BridgeTimeout(f"script did not respond within {timeout:.1f}s") from e

    async def call_checked(
        self,
        name: str,
        *args: Any,
        timeout_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        """Call a runtime function.

        Returns:
            Decoded result (``ok`` is always a bool)

        Raises:
            BridgeTimeout: If the evaluation timed out
            InvalidArguments: If the call cannot be built
        """
        script = build_call_script(name, list(args))
        try:
            raw = await self.evaluate(script, timeout_ms)
        except BridgeTimeout:
            raise
        except Exception as e:
            # Evaluation errors (navigation races, closed pages) are failures, not crashes
            logger.warning(f"Runtime call {name} failed: {type(e).__name__}: {e}")
            return {"ok": False, "error": f"{type(e).__name__}: {e}"}

        result = parse_result(raw)
        if result.get("error") == "runtime not ready":
            self._ready = False
        return result

    async def call(
        self,
        name: str,
        *args: Any,
        timeout_ms: Optional[int] = None,
    ) -> dict[str, Any]:
        """Call a runtime function; every failure resolves to ``ok: False``."""
        try:
            return await self.call_checked(name, *args, timeout_ms=timeout_ms)
        except BridgeTimeout as e:
            logger.warning(f"Runtime call {name} timed out")
            return {"ok": False, "error": e.message, "timeout": True}
        except InvalidArguments as e:
            return {"ok": False, "error": e.message}

    async def _probe(self) -> bool:
        try:
            return await self.evaluate(readiness_probe_script(), timeout_ms=self.poll_interval_ms * 10) is True
        except Exception as e:
            logger.debug(f"Readiness probe failed: {e}")
            return False

    async def ensure_runtime_ready(self, timeout_ms: int = 5000) -> bool:
        """Wait until every runtime function exists in the page.

        Injects the runtime once when the first probe finds it missing.

        Args:
            timeout_ms: Total time to wait

        Returns:
            True when the runtime is ready
        """
        if self._ready:
            return True

        if not await self._probe() and self.inject_runtime:
            try:
                await self.evaluate(AGENT_RUNTIME_JS)
            except Exception as e:
                logger.debug(f"Runtime injection failed: {e}")

        policy = RetryPolicy(interval_ms=self.poll_interval_ms, timeout_ms=timeout_ms)
        ready, _ = await policy.poll(self._probe, lambda ok: ok is True, clock=self.clock)
        if not ready:
            logger.warning(f"Page runtime not ready after {timeout_ms}ms")
        self._ready = ready
        return ready
