"""
Type definitions for Web Agent.

Plain dataclasses for locators, page actions and their results. These are
created per invocation and never persisted.
"""

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional


class ActionType(str, Enum):
    """The closed set of page actions a plan may contain."""
    NAVIGATE = "navigate"
    FIND_ELEMENTS = "findElements"
    CLICK = "click"
    TYPE_TEXT = "typeText"
    SCROLL = "scroll"
    SELECT = "select"
    WAIT_FOR = "waitFor"
    EXTRACT = "extract"
    SWITCH_TAB = "switchTab"
    ASK_USER = "askUser"
    SNAPSHOT = "snapshot"


@dataclass(frozen=True)
class Locator:
    """A semantic description of a DOM element.

    Resolution prefers a raw selector (trusted callers only), then a
    text/name substring match, then a role filter. ``near`` orders the
    candidates by proximity to an anchor text and ``nth`` picks one.

    Attributes:
        role: ARIA-ish role (button, link, textbox, input, select, article)
        name: Accessible name or name attribute substring
        text: Visible text substring
        css: Raw CSS selector (stripped for external callers)
        xpath: Raw XPath (stripped for external callers)
        near: Text of an anchor element the target should be close to
        nth: Index into the ordered candidate set
    """
    role: Optional[str] = None
    name: Optional[str] = None
    text: Optional[str] = None
    css: Optional[str] = None
    xpath: Optional[str] = None
    near: Optional[str] = None
    nth: Optional[int] = None

    def sanitized(self) -> "Locator":
        """Return a copy with raw selector fields removed."""
        if self.css is None and self.xpath is None:
            return self
        return replace(self, css=None, xpath=None)

    def is_semantic(self) -> bool:
        """True when the locator names a role, name, text or index."""
        return any(v is not None for v in (self.role, self.name, self.text, self.nth))

    def is_empty(self) -> bool:
        """True when no field is set at all."""
        return all(v is None for v in self.to_dict().values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to the runtime wire shape, omitting absent fields."""
        data = {
            "role": self.role,
            "name": self.name,
            "text": self.text,
            "css": self.css,
            "xpath": self.xpath,
            "near": self.near,
            "nth": self.nth,
        }
        return {k: v for k, v in data.items() if v is not None}

    def echo(self) -> dict[str, Any]:
        """The semantic fields a caller can send back to repeat a query."""
        data = self.to_dict()
        data.pop("css", None)
        data.pop("xpath", None)
        return data

    def describe(self) -> str:
        """Stable one-line rendering, e.g. ``role=textbox nth=0``."""
        return " ".join(f"{k}={v}" for k, v in self.to_dict().items())


@dataclass
class BoundingBox:
    """Viewport rectangle of an element in CSS pixels."""
    x: float
    y: float
    width: float
    height: float

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["BoundingBox"]:
        """Create from a runtime rect, or None when the shape is wrong."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                x=float(data["x"]),
                y=float(data["y"]),
                width=float(data["width"]),
                height=float(data["height"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


@dataclass
class ElementSummary:
    """Minimal element description returned by discovery.

    Attributes:
        id: Index of the element within the discovery result
        role: Resolved role
        name: Accessible name
        text: Visible text, bounded by the runtime
        is_visible: Non-zero box and not hidden by style
        bounding_box: Viewport rectangle
        locator_hint: The locator description that produced the match
    """
    id: str
    role: Optional[str] = None
    name: Optional[str] = None
    text: Optional[str] = None
    is_visible: bool = True
    bounding_box: Optional[BoundingBox] = None
    locator_hint: Optional[str] = None

    @classmethod
    def from_runtime(cls, data: dict[str, Any]) -> "ElementSummary":
        """Create from a ``findElements`` item."""
        return cls(
            id=str(data.get("id", "")),
            role=data.get("role") or None,
            name=data.get("name") or None,
            text=data.get("text") or None,
            is_visible=bool(data.get("isVisible", False)),
            bounding_box=BoundingBox.from_dict(data.get("boundingBox")),
            locator_hint=data.get("locatorHint") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "name": self.name,
            "text": self.text,
            "isVisible": self.is_visible,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "locatorHint": self.locator_hint,
        }


@dataclass
class WaitPredicate:
    """What ``waitFor`` should wait on. The first set field wins."""
    delay_ms: Optional[int] = None
    ready_state: Optional[str] = None  # only "complete"
    selector: Optional[str] = None
    network_idle: bool = False


@dataclass
class PageAction:
    """A single planned action for the page agent to execute."""
    type: ActionType
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    locator: Optional[Locator] = None
    url: Optional[str] = None
    new_tab: bool = False
    text: Optional[str] = None
    direction: Optional[str] = None
    amount_px: Optional[int] = None
    submit: bool = False
    value: Optional[str] = None
    timeout_ms: Optional[int] = None
    wait: Optional[WaitPredicate] = None
    read_mode: Optional[str] = None
    selector: Optional[str] = None
    choices: Optional[list[str]] = None
    default_index: Optional[int] = None
    crop_to_element: bool = False


@dataclass
class ActionResult:
    """The result of executing a single page action."""
    action_id: str
    success: bool
    message: Optional[str] = None
    data: Optional[dict[str, Any]] = None
