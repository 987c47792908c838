"""
Typed tool schemas for Web Agent.

Provides Pydantic models for tool calls, observations and every tool's
arguments. Argument names follow the camelCase wire format; locators may
arrive as objects or JSON strings and never keep raw selectors.
"""

import json
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidArguments
from .types import Locator


# =============================================================================
# Tool names
# =============================================================================

class ToolName(str, Enum):
    """The closed set of tools a planner may call."""
    NAVIGATE = "navigate"
    FIND_ELEMENTS = "findElements"
    OBSERVE = "observe"
    CLICK = "click"
    TYPE_TEXT = "typeText"
    SCROLL = "scroll"
    SELECT = "select"
    WAIT_FOR = "waitFor"
    EXTRACT = "extract"
    SWITCH_TAB = "switchTab"
    ASK_USER = "askUser"
    SNAPSHOT = "snapshot"

    @classmethod
    def parse(cls, name: str) -> Optional["ToolName"]:
        """Look up a tool by wire name, or None if it is not in the set."""
        try:
            return cls(name)
        except ValueError:
            return None


# =============================================================================
# Wire envelope
# =============================================================================

class ToolCall(BaseModel):
    """A structured request naming a tool and its arguments."""

    name: str = Field(description="Tool name")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")

    @field_validator("arguments", mode="before")
    @classmethod
    def default_arguments(cls, v: Any) -> Any:
        return {} if v is None else v


class ToolObservation(BaseModel):
    """Uniform result of a tool call."""

    name: str
    ok: bool
    data: Optional[dict[str, Any]] = None
    message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire shape, omitting absent fields."""
        return self.model_dump(exclude_none=True)


# =============================================================================
# Argument models
# =============================================================================

class ToolArgs(BaseModel):
    """Base for tool arguments: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LocatorArgs(BaseModel):
    """Wire shape of a locator."""

    model_config = ConfigDict(extra="ignore")

    role: Optional[str] = None
    name: Optional[str] = None
    text: Optional[str] = None
    css: Optional[str] = None
    xpath: Optional[str] = None
    near: Optional[str] = None
    nth: Optional[int] = Field(default=None, ge=0)

    @field_validator("role")
    @classmethod
    def normalize_role(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v else v

    def to_locator(self) -> Locator:
        """Build a sanitized Locator; raw selectors never survive."""
        return Locator(
            role=self.role or None,
            name=self.name or None,
            text=self.text or None,
            near=self.near or None,
            nth=self.nth,
        )


def _decode_locator(v: Any) -> Any:
    if v is None or isinstance(v, LocatorArgs):
        return v
    if isinstance(v, str):
        if not v.strip():
            return None
        try:
            v = json.loads(v)
        except ValueError as e:
            raise ValueError("locator is not valid JSON") from e
    if not isinstance(v, dict):
        raise ValueError("locator must be an object")
    return v


class LocatedArgs(ToolArgs):
    """Arguments that may carry a locator."""

    locator: Optional[LocatorArgs] = None

    @field_validator("locator", mode="before")
    @classmethod
    def decode_locator(cls, v: Any) -> Any:
        return _decode_locator(v)

    def sanitized_locator(self) -> Optional[Locator]:
        """The locator with css/xpath stripped, or None when absent or empty."""
        if self.locator is None:
            return None
        locator = self.locator.to_locator()
        return None if locator.is_empty() else locator


class NavigateRequest(ToolArgs):
    """Load a URL in the current tab."""

    url: str = Field(description="URL to navigate to")
    new_tab: bool = Field(default=False, alias="newTab")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("URL cannot be empty")
        return v


class FindElementsRequest(LocatedArgs):
    """Find elements matching a locator."""

    timeout_ms: Optional[int] = Field(default=None, ge=0, alias="timeoutMs")


ObserveKind = Literal["interactive", "articles", "textboxes", "buttons", "links", "inputs", "selects"]

DEFAULT_OBSERVE_KINDS = ("interactive", "articles", "textboxes")


class ObserveRequest(ToolArgs):
    """Sample several categories of elements at once."""

    kinds: list[ObserveKind] = Field(
        default_factory=lambda: list(DEFAULT_OBSERVE_KINDS),
        description="Element categories to sample",
    )
    limit: int = Field(default=12, ge=1, le=50, description="Sample size per category")

    @field_validator("kinds", mode="before")
    @classmethod
    def lowercase_kinds(cls, v: Any) -> Any:
        if v is None or v == []:
            return list(DEFAULT_OBSERVE_KINDS)
        if isinstance(v, list):
            return [k.lower() if isinstance(k, str) else k for k in v]
        return v

    @field_validator("kinds", mode="after")
    @classmethod
    def dedupe_kinds(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))


class ClickRequest(LocatedArgs):
    """Click the first visible match."""


class TypeTextRequest(LocatedArgs):
    """Replace a field's value."""

    text: str = Field(description="Text to type")
    submit: bool = Field(default=False, description="Submit the owning form afterwards")


class ScrollRequest(LocatedArgs):
    """Scroll an element or the window."""

    direction: Literal["up", "down", "left", "right"] = "down"
    amount_px: Optional[int] = Field(default=None, ge=0, alias="amountPx")

    @field_validator("direction", mode="before")
    @classmethod
    def lowercase_direction(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class SelectRequest(LocatedArgs):
    """Choose an option by value or label."""

    value: str = Field(description="Option value or visible label")


class WaitForRequest(ToolArgs):
    """Wait for a page condition."""

    delay_ms: Optional[int] = Field(default=None, ge=0, alias="delayMs")
    ready_state: Optional[Literal["complete"]] = Field(default=None, alias="readyState")
    selector: Optional[str] = None
    network_idle: bool = Field(default=False, alias="networkIdle")
    timeout_ms: Optional[int] = Field(default=None, ge=0, alias="timeoutMs")


class ExtractRequest(ToolArgs):
    """Read text from the page."""

    read_mode: Optional[Literal["selection", "page", "selector"]] = Field(default=None, alias="readMode")
    selector: Optional[str] = None


class SwitchTabRequest(ToolArgs):
    """Switch to another tab (unsupported)."""

    index: Optional[int] = None


class AskUserRequest(ToolArgs):
    """Ask the user a question."""

    prompt: str = ""
    choices: Optional[list[str]] = None
    default: Optional[int] = Field(default=None, ge=0)
    timeout_ms: Optional[int] = Field(default=None, ge=0, alias="timeoutMs")


class SnapshotRequest(LocatedArgs):
    """Capture the viewport or one element."""

    crop_to_element: bool = Field(default=False, alias="cropToElement")


# =============================================================================
# Schema Registry
# =============================================================================

TOOL_SCHEMAS: dict[ToolName, type[ToolArgs]] = {
    ToolName.NAVIGATE: NavigateRequest,
    ToolName.FIND_ELEMENTS: FindElementsRequest,
    ToolName.OBSERVE: ObserveRequest,
    ToolName.CLICK: ClickRequest,
    ToolName.TYPE_TEXT: TypeTextRequest,
    ToolName.SCROLL: ScrollRequest,
    ToolName.SELECT: SelectRequest,
    ToolName.WAIT_FOR: WaitForRequest,
    ToolName.EXTRACT: ExtractRequest,
    ToolName.SWITCH_TAB: SwitchTabRequest,
    ToolName.ASK_USER: AskUserRequest,
    ToolName.SNAPSHOT: SnapshotRequest,
}


def parse_arguments(tool: ToolName, arguments: dict[str, Any]) -> ToolArgs:
    """Validate a tool's arguments.

    Args:
        tool: Tool name
        arguments: Raw wire arguments

    Returns:
        Validated argument model

    Raises:
        InvalidArguments: If validation fails
    """
    schema = TOOL_SCHEMAS[tool]
    try:
        return schema.model_validate(arguments or {})
    except ValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        where = ".".join(str(p) for p in first.get("loc", ()))
        detail = first.get("msg", "invalid")
        raise InvalidArguments(f"invalid arguments: {where}: {detail}" if where else f"invalid arguments: {detail}") from e
