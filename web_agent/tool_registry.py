"""
Tool registry for Web Agent.

Single entry point for planners: ``execute_tool(call) -> ToolObservation``.
Validates the tool name against the closed set, decodes and sanitizes the
arguments, applies the permission policy, runs the handler against the page
agent and records exactly one audit entry per evaluated call. Nothing raised
inside a handler escapes; every path ends in an observation.
"""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from .agent import PageAgent
from .errors import AgentError, AuditPersistError, InvalidArguments, PolicyDenied, UnknownTool
from .tool_schemas import (
    AskUserRequest,
    ExtractRequest,
    FindElementsRequest,
    LocatedArgs,
    NavigateRequest,
    ObserveRequest,
    ScrollRequest,
    SelectRequest,
    SnapshotRequest,
    ToolArgs,
    ToolCall,
    ToolName,
    ToolObservation,
    TypeTextRequest,
    WaitForRequest,
    parse_arguments,
)
from .types import ElementSummary, Locator, WaitPredicate
from .utils import truncate_text


logger = logging.getLogger(__name__)


OBSERVATION_TEXT_CHARS = 120

INTERACTIVE_ROLES = ("button", "link", "textbox", "input", "select")

# Category name -> role queried for it
OBSERVE_ROLES = {
    "articles": "article",
    "textboxes": "textbox",
    "buttons": "button",
    "links": "link",
    "inputs": "input",
    "selects": "select",
}


@dataclass
class HandlerOutcome:
    """What a tool handler produced."""
    ok: bool
    data: Optional[dict[str, Any]] = None
    message: Optional[str] = None
    user_consented: Optional[bool] = None


def sample_elements(elements: list[ElementSummary], limit: int, with_id: bool = True) -> list[dict[str, Any]]:
    """Compact element listing for observations.

    Args:
        elements: Discovery result
        limit: Maximum number of items
        with_id: Include the runtime element id

    Returns:
        List of ``{i, id?, role, name, text, hint?}`` dicts
    """
    items = []
    for i, element in enumerate(elements[:limit]):
        item: dict[str, Any] = {"i": i}
        if with_id:
            item["id"] = element.id
        item["role"] = element.role or ""
        item["name"] = element.name or ""
        item["text"] = truncate_text(element.text or "", OBSERVATION_TEXT_CHARS, suffix="")
        if element.locator_hint:
            item["hint"] = element.locator_hint
        items.append(item)
    return items


class ToolRegistry:
    """Dispatches tool calls to a page agent.

    Usage:
        registry = ToolRegistry(agent)
        observation = await registry.execute_tool(
            ToolCall(name="click", arguments={"locator": {"text": "Next"}})
        )
    """

    def __init__(self, agent: PageAgent):
        """Initialize the registry.

        Args:
            agent: Page agent owning the tab, policy, audit log and approver
        """
        self.agent = agent
        self.sample_limit = agent.config.sample_limit

        self._handlers: dict[ToolName, Callable[[Any], Awaitable[HandlerOutcome]]] = {
            ToolName.NAVIGATE: self._navigate,
            ToolName.FIND_ELEMENTS: self._find_elements,
            ToolName.OBSERVE: self._observe,
            ToolName.CLICK: self._click,
            ToolName.TYPE_TEXT: self._type_text,
            ToolName.SCROLL: self._scroll,
            ToolName.SELECT: self._select,
            ToolName.WAIT_FOR: self._wait_for,
            ToolName.EXTRACT: self._extract,
            ToolName.SWITCH_TAB: self._switch_tab,
            ToolName.ASK_USER: self._ask_user,
            ToolName.SNAPSHOT: self._snapshot,
        }

    @staticmethod
    def tool_names() -> list[str]:
        """Wire names of every available tool."""
        return [tool.value for tool in ToolName]

    async def execute_tool(self, call: Union[ToolCall, dict[str, Any]]) -> ToolObservation:
        """Execute one tool call.

        Args:
            call: ToolCall or its wire dict

        Returns:
            ToolObservation; never raises
        """
        if not isinstance(call, ToolCall):
            try:
                call = ToolCall.model_validate(call)
            except Exception:
                name = call.get("name", "") if isinstance(call, dict) else ""
                return ToolObservation(name=str(name), ok=False, message="invalid arguments")

        tool = ToolName.parse(call.name)
        if tool is None:
            logger.info(f"Rejected unknown tool: {call.name}")
            error = UnknownTool(call.name)
            return ToolObservation(name=call.name, ok=False, data={"error": error.code}, message=error.message)

        async with self.agent.serialized():
            return await self._execute(tool, call.arguments)

    async def _execute(self, tool: ToolName, arguments: dict[str, Any]) -> ToolObservation:
        decision = self.agent.check_policy(tool.value)
        audit_args = self._audit_arguments(arguments)

        if not decision.allowed:
            denial = PolicyDenied(decision.reason)
            outcome = HandlerOutcome(
                ok=False,
                data={"error": denial.code, "reason": denial.reason, "requiresConsent": True},
                message=denial.message,
            )
        else:
            try:
                args = parse_arguments(tool, arguments)
                outcome = await self._handlers[tool](args)
            except AgentError as e:
                outcome = HandlerOutcome(ok=False, data={"error": e.code}, message=e.message)
            except Exception as e:
                logger.exception(f"Tool {tool.value} failed unexpectedly")
                outcome = HandlerOutcome(
                    ok=False,
                    data={"error": "InternalError"},
                    message=f"{type(e).__name__}: {e}",
                )

        try:
            self.agent.record(
                tool.value,
                audit_args,
                decision,
                requested_consent=tool == ToolName.ASK_USER,
                user_consented=outcome.user_consented,
                outcome_success=outcome.ok,
                outcome_message=outcome.message,
            )
        except AuditPersistError as e:
            return ToolObservation(name=tool.value, ok=False, data={"error": e.code}, message=e.message)

        return ToolObservation(name=tool.value, ok=outcome.ok, data=outcome.data, message=outcome.message)

    @staticmethod
    def _audit_arguments(arguments: dict[str, Any]) -> dict[str, Any]:
        """Arguments as recorded: raw selectors never appear."""
        recorded = {k: v for k, v in (arguments or {}).items() if k != "locator"}
        if arguments and arguments.get("locator") is not None:
            try:
                locator = LocatedArgs.model_validate({"locator": arguments["locator"]}).sanitized_locator()
            except ValidationError:
                recorded["locator"] = "<invalid>"
            else:
                if locator is not None:
                    recorded["locator"] = locator.describe()
        return recorded

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _navigate(self, args: NavigateRequest) -> HandlerOutcome:
        url = await self.agent.navigate(args.url, new_tab=args.new_tab)
        return HandlerOutcome(ok=True, data={"url": url})

    async def _find_elements(self, args: FindElementsRequest) -> HandlerOutcome:
        locator = args.sanitized_locator() or Locator()
        elements = await self.agent.request_elements(locator, args.timeout_ms)
        return HandlerOutcome(
            ok=True,
            data={
                "count": len(elements),
                "elements": sample_elements(elements, self.sample_limit),
                "locator": locator.echo(),
            },
        )

    async def _observe(self, args: ObserveRequest) -> HandlerOutcome:
        blocks = []
        locators: dict[str, Any] = {}

        for kind in args.kinds:
            if kind == "interactive":
                found: list[ElementSummary] = []
                for role in INTERACTIVE_ROLES:
                    found.extend(await self.agent.request_elements(Locator(role=role), timeout_ms=0))
                locators[kind] = [{"role": role} for role in INTERACTIVE_ROLES]
            else:
                locator = Locator(role=OBSERVE_ROLES[kind])
                found = await self.agent.request_elements(locator, timeout_ms=0)
                locators[kind] = locator.echo()
            blocks.append({
                "kind": kind,
                "count": len(found),
                "elements": sample_elements(found, args.limit, with_id=False),
            })

        return HandlerOutcome(ok=True, data={"blocks": blocks, "kinds": list(args.kinds), "locators": locators})

    async def _click(self, args: LocatedArgs) -> HandlerOutcome:
        await self.agent.click(args.sanitized_locator())
        return HandlerOutcome(ok=True)

    async def _type_text(self, args: TypeTextRequest) -> HandlerOutcome:
        used = await self.agent.type_text(args.sanitized_locator(), args.text, submit=args.submit)
        return HandlerOutcome(ok=True, data={"locator": used.echo()})

    async def _scroll(self, args: ScrollRequest) -> HandlerOutcome:
        await self.agent.scroll(args.sanitized_locator(), args.direction, args.amount_px)
        return HandlerOutcome(ok=True)

    async def _select(self, args: SelectRequest) -> HandlerOutcome:
        value = await self.agent.select(args.sanitized_locator(), args.value)
        return HandlerOutcome(ok=True, data={"value": value})

    async def _wait_for(self, args: WaitForRequest) -> HandlerOutcome:
        predicate = WaitPredicate(
            delay_ms=args.delay_ms,
            ready_state=args.ready_state,
            selector=args.selector,
            network_idle=args.network_idle,
        )
        ok = await self.agent.wait_for(predicate, args.timeout_ms)
        return HandlerOutcome(ok=ok, message=None if ok else "wait timed out")

    async def _extract(self, args: ExtractRequest) -> HandlerOutcome:
        text = await self.agent.extract(args.read_mode, args.selector)
        if not text:
            return HandlerOutcome(ok=False, data={"text": ""}, message="nothing extracted")
        return HandlerOutcome(ok=True, data={"text": text})

    async def _switch_tab(self, args: ToolArgs) -> HandlerOutcome:
        return HandlerOutcome(ok=False, message="not implemented")

    async def _ask_user(self, args: AskUserRequest) -> HandlerOutcome:
        result = await self.agent.ask_user(
            args.prompt,
            choices=args.choices,
            default_index=args.default,
            timeout_ms=args.timeout_ms,
        )
        error = result.error()
        message = error.message if error else None
        return HandlerOutcome(ok=result.consent, data=result.to_dict(), message=message, user_consented=result.consent)

    async def _snapshot(self, args: SnapshotRequest) -> HandlerOutcome:
        if args.crop_to_element and args.sanitized_locator() is None:
            raise InvalidArguments("cropToElement requires a locator")
        image = await self.agent.take_snapshot_base64(args.sanitized_locator(), args.crop_to_element)
        if image is None:
            return HandlerOutcome(ok=False, message="snapshot failed")
        return HandlerOutcome(ok=True, data={"image_base64": image, "mimeType": "image/png"})
