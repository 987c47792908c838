"""
Page agent for Web Agent.

Per-tab coordinator between callers and the execution bridge: element
discovery with bounded polling, throttled mutations, wait strategies,
snapshots, consent, and sequential plan execution with policy checks and
auditing.
"""

import asyncio
import base64
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from .approver import Approver, AutoApprover, ConsentResult
from .audit_log import AuditLog
from .bridge import ExecutionBridge
from .config import AgentConfig
from .errors import (
    AgentError,
    AuditPersistError,
    BridgeTimeout,
    ExecutionFailed,
    InvalidArguments,
    LocatorNotFound,
    PolicyDenied,
)
from .page import PageProvider
from .retry import SYSTEM_CLOCK, Clock, RetryPolicy, Throttle
from .safety import PermissionPolicy, PolicyDecision
from .types import (
    ActionResult,
    ActionType,
    BoundingBox,
    ElementSummary,
    Locator,
    PageAction,
    WaitPredicate,
)
from .utils import host_from_url, normalize_url, redact_arguments, stringify_parameters


logger = logging.getLogger(__name__)


SCROLL_DIRECTIONS = ("up", "down", "left", "right")
READ_MODES = ("selection", "page", "selector")

# Extra time granted to a bridge call beyond the in-page wait it performs
WAIT_BRIDGE_GRACE_MS = 1000


class PageAgent:
    """Coordinates agent actions against one tab.

    Callers must not run two operations concurrently on the same agent;
    ``perform`` and the tool registry hold ``serialized()`` for the duration
    of each action.

    Usage:
        agent = PageAgent(page, config, audit_log=AuditLog(path))
        elements = await agent.request_elements(Locator(role="button"))
        results = await agent.execute([PageAction(ActionType.CLICK, locator=...)])
    """

    def __init__(
        self,
        page: PageProvider,
        config: Optional[AgentConfig] = None,
        policy: Optional[PermissionPolicy] = None,
        audit_log: Optional[AuditLog] = None,
        approver: Optional[Approver] = None,
        bridge: Optional[ExecutionBridge] = None,
        clock: Clock = SYSTEM_CLOCK,
    ):
        """Initialize the page agent.

        Args:
            page: The tab to drive
            config: Timeouts and limits (defaults to AgentConfig())
            policy: Permission policy (defaults to the configured sensitive domains)
            audit_log: Audit trail (defaults to the profile's log file)
            approver: Consent handler (defaults to denying every prompt)
            bridge: Execution bridge (defaults to one over ``page``)
            clock: Time source for polling, throttling and delays
        """
        self.config = config or AgentConfig()
        self.page = page
        self.clock = clock
        self.bridge = bridge or ExecutionBridge(
            page,
            timeout_ms=self.config.bridge_timeout_ms,
            poll_interval_ms=self.config.poll_interval_ms,
            clock=clock,
        )
        self.policy = policy or PermissionPolicy(self.config.sensitive_domains)
        self.audit_log = audit_log if audit_log is not None else AuditLog(self.config.audit_log_path)
        self.approver = approver or AutoApprover(approve=self.config.auto_approve)
        self.throttle = Throttle(self.config.min_action_interval_ms, clock)
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def serialized(self) -> AsyncIterator[None]:
        """Hold the per-tab lock for one action."""
        async with self._lock:
            yield

    # ------------------------------------------------------------------
    # Policy and audit
    # ------------------------------------------------------------------

    def current_host(self) -> Optional[str]:
        """Host of the page currently loaded in the tab."""
        try:
            return host_from_url(self.page.url)
        except Exception:
            return None

    def check_policy(self, action: str) -> PolicyDecision:
        """Evaluate an action against the current origin."""
        return self.policy.evaluate(action, self.current_host())

    def record(
        self,
        action: str,
        arguments: dict[str, Any],
        decision: PolicyDecision,
        requested_consent: bool = False,
        user_consented: Optional[bool] = None,
        outcome_success: Optional[bool] = None,
        outcome_message: Optional[str] = None,
    ) -> None:
        """Append one audit entry with redacted parameters.

        Raises:
            AuditPersistError: If the entry could not be written
        """
        self.audit_log.append(
            host=self.current_host(),
            action=action,
            parameters=stringify_parameters(redact_arguments(arguments)) or None,
            policy_allowed=decision.allowed,
            policy_reason=decision.reason,
            requested_consent=requested_consent,
            user_consented=user_consented,
            outcome_success=outcome_success,
            outcome_message=outcome_message,
        )

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    async def ensure_ready(self) -> None:
        """Wait for the page runtime.

        Raises:
            BridgeTimeout: If the runtime never became ready
        """
        if self.bridge.is_ready:
            return
        if not await self.bridge.ensure_runtime_ready(self.config.runtime_ready_timeout_ms):
            raise BridgeTimeout("page runtime not ready")

    async def navigate(self, url: str, new_tab: bool = False) -> str:
        """Load a URL in this tab.

        Args:
            url: Target URL (https:// is assumed when the scheme is missing)
            new_tab: Unsupported; only one tab is driven

        Returns:
            The normalized URL

        Raises:
            InvalidArguments: For an empty/hostless URL or a new-tab request
        """
        if new_tab:
            raise InvalidArguments("new tabs are not supported")
        if not url or not url.strip():
            raise InvalidArguments("invalid url")
        url = normalize_url(url)
        if url.startswith(("http://", "https://")) and not host_from_url(url):
            raise InvalidArguments("invalid url")

        await self.page.navigate(url)
        self.bridge.invalidate()
        logger.info(f"Navigated to {url}")
        return url

    async def request_elements(
        self,
        locator: Optional[Locator] = None,
        timeout_ms: Optional[int] = None,
    ) -> list[ElementSummary]:
        """Find elements, polling until something matches or time runs out.

        At the deadline one final attempt is made and its result returned,
        possibly empty. A zero budget makes exactly one attempt.

        Args:
            locator: What to find; empty or None enumerates interactive elements
            timeout_ms: Total polling budget (defaults to config)

        Returns:
            Element summaries in document order
        """
        locator = locator or Locator()
        await self.ensure_ready()
        budget_ms = timeout_ms if timeout_ms is not None else self.config.element_timeout_ms
        policy = RetryPolicy(interval_ms=self.config.poll_interval_ms, timeout_ms=budget_ms)

        async def attempt() -> list[ElementSummary]:
            result = await self.bridge.call("findElements", locator.to_dict())
            if not result["ok"]:
                return []
            items = result.get("elements")
            if not isinstance(items, list):
                return []
            return [ElementSummary.from_runtime(i) for i in items if isinstance(i, dict)]

        found, elements = await policy.poll(
            attempt, lambda els: len(els) > 0, clock=self.clock, final_attempt=budget_ms > 0
        )
        if not found:
            logger.debug(f"No elements for {locator.describe() or 'any'}")
        return elements or []

    def _raise_for(self, result: dict[str, Any], locator: Optional[Locator], action: str) -> None:
        if result["ok"]:
            return
        error = str(result.get("error") or "failed")
        if result.get("timeout"):
            raise BridgeTimeout(error)
        if error == "not found":
            target = locator.describe() if locator else "target"
            raise LocatorNotFound(f"no visible element matches {target}")
        raise ExecutionFailed(f"{action} failed: {error}")

    async def _mutate(self, name: str, locator: Optional[Locator], *args: Any) -> dict[str, Any]:
        """Throttled runtime call for state-changing operations."""
        await self.ensure_ready()
        await self.throttle.wait()
        result = await self.bridge.call(name, locator.to_dict() if locator else None, *args)
        self._raise_for(result, locator, name)
        return result

    async def click(self, locator: Optional[Locator]) -> bool:
        """Click the first visible element matching the locator.

        Raises:
            InvalidArguments: For an empty locator
            LocatorNotFound: If nothing visible matches
        """
        if locator is None or locator.is_empty():
            raise InvalidArguments("missing locator")
        await self._mutate("click", locator)
        return True

    async def resolve_text_input(self, locator: Optional[Locator]) -> Locator:
        """Pick an input when the caller gave no semantic locator.

        Prefers a visible textbox, then any visible input element. No ``nth`` is
        set, so the runtime acts on the first visible match.

        Raises:
            LocatorNotFound: If the page has no input at all
        """
        if locator is not None and locator.is_semantic():
            return locator
        near = locator.near if locator is not None else None
        for role in ("textbox", "input"):
            candidate = Locator(role=role, near=near)
            if any(e.is_visible for e in await self.request_elements(candidate)):
                return candidate
        raise LocatorNotFound("no input found")

    async def type_text(self, locator: Optional[Locator], text: str, submit: bool = False) -> Locator:
        """Type into a field, replacing its value.

        Returns:
            The locator actually used

        Raises:
            LocatorNotFound: If no input could be found
            ExecutionFailed: If the runtime refused (e.g. a sensitive field)
        """
        if text is None:
            raise InvalidArguments("missing text")
        resolved = await self.resolve_text_input(locator)
        await self._mutate("typeText", resolved, text, bool(submit))
        return resolved

    async def select(self, locator: Optional[Locator], value: str) -> str:
        """Choose an option of a select element by value or label.

        Returns:
            The option value that was selected
        """
        if locator is None or locator.is_empty() or value is None:
            raise InvalidArguments("missing locator or value")
        result = await self._mutate("select", locator, value)
        return str(result.get("value", value))

    async def scroll(
        self,
        locator: Optional[Locator] = None,
        direction: Optional[str] = None,
        amount_px: Optional[int] = None,
    ) -> bool:
        """Scroll an element, or the window when no locator is given."""
        direction = (direction or "down").lower()
        if direction not in SCROLL_DIRECTIONS:
            raise InvalidArguments(f"invalid direction: {direction}")
        if amount_px is not None and amount_px < 0:
            raise InvalidArguments("amountPx must be positive")
        if locator is not None and locator.is_empty():
            locator = None
        await self._mutate("scroll", locator, direction, amount_px)
        return True

    def _remaining_ms(self, deadline: float) -> int:
        return max(0, int((deadline - self.clock.monotonic()) * 1000))

    async def _runtime_wait(self, predicate: dict[str, Any], deadline: float) -> bool:
        remaining = self._remaining_ms(deadline)
        if remaining <= 0:
            return False
        ready = await self.bridge.ensure_runtime_ready(min(self.config.runtime_ready_timeout_ms, remaining))
        remaining = self._remaining_ms(deadline)
        if not ready or remaining <= 0:
            return False
        result = await self.bridge.call(
            "waitFor", predicate, remaining, timeout_ms=remaining + WAIT_BRIDGE_GRACE_MS
        )
        return result["ok"]

    async def wait_for(self, predicate: Optional[WaitPredicate] = None, timeout_ms: Optional[int] = None) -> bool:
        """Wait for a condition.

        Precedence: explicit delay, document ready state, selector
        visibility, network idle, then a bounded stabilization sleep. Each
        branch works against what is left of the total budget.

        Args:
            predicate: What to wait for
            timeout_ms: Total budget (defaults to config)

        Returns:
            True if the condition was met

        Raises:
            InvalidArguments: For a ready state other than "complete"
        """
        predicate = predicate or WaitPredicate()
        if predicate.ready_state is not None and predicate.ready_state != "complete":
            raise InvalidArguments(f"unsupported readyState: {predicate.ready_state}")
        total_ms = timeout_ms if timeout_ms is not None else self.config.wait_timeout_ms
        total_ms = max(total_ms, 0)
        deadline = self.clock.monotonic() + total_ms / 1000.0

        if predicate.delay_ms is not None:
            await self.clock.sleep(min(max(predicate.delay_ms, 0), total_ms) / 1000.0)
            return True
        if predicate.ready_state == "complete":
            return await self._runtime_wait({"readyState": "complete"}, deadline)
        if predicate.selector:
            return await self._runtime_wait({"selector": predicate.selector}, deadline)
        if predicate.network_idle:
            return await self._runtime_wait({"networkIdle": True}, deadline)

        await self.clock.sleep(min(self.config.stabilization_ms, total_ms) / 1000.0)
        return True

    async def extract(self, read_mode: Optional[str] = None, selector: Optional[str] = None) -> str:
        """Read text from the page.

        Args:
            read_mode: "selection", "page" or "selector" (inferred from
                ``selector`` when omitted)
            selector: CSS selector for "selector" mode

        Returns:
            Extracted text, empty when nothing could be read
        """
        mode = (read_mode or ("selector" if selector else "selection")).lower()
        if mode not in READ_MODES:
            raise InvalidArguments(f"invalid readMode: {mode}")
        await self.ensure_ready()
        result = await self.bridge.call("extract", mode, selector)
        if not result["ok"]:
            return ""
        text = result.get("text")
        return text if isinstance(text, str) else ""

    async def take_snapshot_base64(
        self,
        locator: Optional[Locator] = None,
        crop_to_element: bool = False,
    ) -> Optional[str]:
        """Capture the viewport, or just one element, as base64 PNG.

        When cropping, the element rectangle is measured first; a failure at
        either step yields None rather than a wrong image.
        """
        rect: Optional[BoundingBox] = None
        if crop_to_element:
            if locator is None or locator.is_empty():
                return None
            if not await self.bridge.ensure_runtime_ready(self.config.runtime_ready_timeout_ms):
                return None
            result = await self.bridge.call("rect", locator.to_dict())
            rect = BoundingBox.from_dict(result.get("rect")) if result["ok"] else None
            if rect is None or rect.is_empty():
                return None

        try:
            image = await self.page.capture_image(rect)
        except Exception as e:
            logger.warning(f"Capture failed: {type(e).__name__}: {e}")
            return None
        if not image:
            return None
        return base64.b64encode(image).decode("ascii")

    async def ask_user(
        self,
        prompt: str,
        choices: Optional[list[str]] = None,
        default_index: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> ConsentResult:
        """Ask the user for consent; unanswered prompts resolve to denied."""
        timeout = timeout_ms if timeout_ms is not None else self.config.consent_timeout_ms
        return await self.approver.request_consent(
            prompt, choices=choices, default_index=default_index, timeout_ms=timeout
        )

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    async def _run_step(self, step: PageAction) -> tuple[bool, Optional[str], Optional[dict[str, Any]], Optional[bool]]:
        """Dispatch one action.

        Returns:
            Tuple of (success, message, data, user_consented)
        """
        kind = step.type
        locator = step.locator

        if kind == ActionType.NAVIGATE:
            url = await self.navigate(step.url or "", new_tab=step.new_tab)
            return True, None, {"url": url}, None

        if kind == ActionType.FIND_ELEMENTS:
            elements = await self.request_elements(locator, step.timeout_ms)
            return True, None, {"count": len(elements), "elements": [e.to_dict() for e in elements]}, None

        if kind == ActionType.CLICK:
            await self.click(locator)
            return True, None, None, None

        if kind == ActionType.TYPE_TEXT:
            used = await self.type_text(locator, step.text, step.submit)
            return True, None, {"locator": used.echo()}, None

        if kind == ActionType.SELECT:
            value = await self.select(locator, step.value)
            return True, None, {"value": value}, None

        if kind == ActionType.SCROLL:
            await self.scroll(locator, step.direction, step.amount_px)
            return True, None, None, None

        if kind == ActionType.WAIT_FOR:
            ok = await self.wait_for(step.wait, step.timeout_ms)
            return ok, None if ok else "wait timed out", None, None

        if kind == ActionType.EXTRACT:
            text = await self.extract(step.read_mode, step.selector)
            return bool(text), None if text else "nothing extracted", {"text": text}, None

        if kind == ActionType.SNAPSHOT:
            image = await self.take_snapshot_base64(locator, step.crop_to_element)
            if image is None:
                return False, "snapshot failed", None, None
            return True, None, {"image_base64": image}, None

        if kind == ActionType.ASK_USER:
            consent = await self.ask_user(step.text or "", step.choices, step.default_index, step.timeout_ms)
            error = consent.error()
            message = error.message if error else None
            return consent.consent, message, consent.to_dict(), consent.consent

        if kind == ActionType.SWITCH_TAB:
            return False, "not implemented", None, None

        raise InvalidArguments(f"unsupported action: {kind}")

    @staticmethod
    def _step_arguments(step: PageAction) -> dict[str, Any]:
        args: dict[str, Any] = {
            "locator": step.locator.sanitized().describe() if step.locator else None,
            "url": step.url,
            "text": step.text,
            "direction": step.direction,
            "amountPx": step.amount_px,
            "value": step.value,
            "timeoutMs": step.timeout_ms,
            "selector": step.selector,
            "readMode": step.read_mode,
        }
        return {k: v for k, v in args.items() if v is not None}

    async def perform(self, step: PageAction) -> ActionResult:
        """Run one action under policy, with exactly one audit entry."""
        async with self.serialized():
            action = step.type.value
            arguments = self._step_arguments(step)
            decision = self.check_policy(action)

            if not decision.allowed:
                denial = PolicyDenied(decision.reason)
                result = ActionResult(
                    step.id, False, denial.message,
                    data={"error": denial.code, "reason": denial.reason, "requiresConsent": True},
                )
                consented = None
            else:
                consented = None
                try:
                    success, message, data, consented = await self._run_step(step)
                    result = ActionResult(step.id, success, message, data)
                except AgentError as e:
                    result = ActionResult(step.id, False, e.message, data={"error": e.code})
                except Exception as e:
                    logger.exception(f"Unexpected error running {action}")
                    result = ActionResult(step.id, False, f"{type(e).__name__}: {e}", data={"error": "InternalError"})

            try:
                self.record(
                    action,
                    arguments,
                    decision,
                    requested_consent=step.type == ActionType.ASK_USER,
                    user_consented=consented,
                    outcome_success=result.success,
                    outcome_message=result.message,
                )
            except AuditPersistError as e:
                return ActionResult(step.id, False, e.message, data={"error": e.code})
            return result

    async def execute(self, plan: list[PageAction]) -> list[ActionResult]:
        """Run a plan strictly in order, one result per step.

        Failures do not stop the plan; later steps still run.
        """
        results = []
        for step in plan:
            results.append(await self.perform(step))
        return results
