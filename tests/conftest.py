"""
Shared fixtures: a fake clock and an in-memory page that answers the
runtime calls the bridge generates.
"""

import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from web_agent.agent import PageAgent
from web_agent.approver import AutoApprover
from web_agent.audit_log import AuditLog
from web_agent.config import AgentConfig
from web_agent.page_runtime import AGENT_RUNTIME_JS, RUNTIME_NAMESPACE
from web_agent.types import BoundingBox
from web_agent.utils import SENSITIVE_FIELD_KEYWORDS


_CALL_NAME = re.compile(r"__rt && __rt\.(\w+);")
_CALL_ARGS = re.compile(r"JSON\.parse\('((?:[^'\\]|\\.)*)'\)")
_ESCAPE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)", re.DOTALL)
_SIMPLE_ESCAPES = {"n": "\n", "r": "\r", "t": "\t"}


def unescape_script_literal(text: str) -> str:
    """Reverse the bridge's string-literal escaping, the way a JS parser would."""
    def repl(m: re.Match) -> str:
        seq = m.group(1)
        if len(seq) == 5 and seq[0] == "u":
            return chr(int(seq[1:], 16))
        return _SIMPLE_ESCAPES.get(seq, seq)
    return _ESCAPE.sub(repl, text)


def decode_call(script: str) -> tuple[str, list[Any]]:
    """Extract the runtime function name and argument list from a call script."""
    name = _CALL_NAME.search(script).group(1)
    args = json.loads(unescape_script_literal(_CALL_ARGS.search(script).group(1)))
    return name, args


class FakeClock:
    """Deterministic clock: sleeping advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.sleeps.append(seconds)
            self.now += seconds
        await asyncio.sleep(0)

    @property
    def total_slept(self) -> float:
        return sum(self.sleeps)


@dataclass
class FakeElement:
    """A DOM element as the runtime would see it."""
    tag: str
    text: str = ""
    name: str = ""
    type: str = ""
    role: Optional[str] = None
    id: str = ""
    value: str = ""
    visible: bool = True
    selector: Optional[str] = None
    options: list[str] = field(default_factory=list)
    rect: tuple = (10, 20, 100, 30)
    clicks: int = 0
    submitted: bool = False

    TEXT_TYPES = ("", "text", "search", "email", "url", "tel", "number", "password")

    @property
    def resolved_role(self) -> str:
        if self.role:
            return self.role
        if self.tag == "a":
            return "link"
        if self.tag == "button":
            return "button"
        if self.tag == "textarea":
            return "textbox"
        if self.tag in ("select", "article"):
            return self.tag
        if self.tag == "input":
            if self.type in self.TEXT_TYPES:
                return "textbox"
            if self.type in ("submit", "button", "reset"):
                return "button"
            return "input"
        return self.tag

    def role_matches(self, role: str) -> bool:
        return self.resolved_role == role.lower() or (role.lower() == "input" and self.tag == "input")

    @property
    def is_sensitive(self) -> bool:
        fields = (self.name.lower(), self.id.lower())
        return self.type == "password" or any(k in f for k in SENSITIVE_FIELD_KEYWORDS for f in fields)

    def summary(self, idx: int, hint: str) -> dict[str, Any]:
        x, y, w, h = self.rect
        return {
            "id": str(idx),
            "role": self.resolved_role,
            "name": self.name or self.text,
            "text": "" if self.is_sensitive else self.text[:200],
            "isVisible": self.visible,
            "boundingBox": {"x": x, "y": y, "width": w, "height": h},
            "locatorHint": hint or None,
        }


class FakePage:
    """Page provider emulating the injected runtime in Python.

    Records every runtime call in ``calls`` as ``(name, args)``.
    """

    def __init__(self, url: str = "https://example.com/", elements: Optional[list[FakeElement]] = None):
        self._url = url
        self.elements = list(elements or [])
        self.runtime_installed = True
        self.injections = 0
        self.calls: list[tuple[str, list[Any]]] = []
        self.navigations: list[str] = []
        self.captures: list[Optional[BoundingBox]] = []
        self.image: Optional[bytes] = b"\x89PNG fake"
        self.hang = False
        self.ready_state = "complete"
        self.selection = ""
        self.page_text = ""
        self.raise_on_evaluate: Optional[Exception] = None
        # Number of findElements calls that answer empty before elements "appear"
        self.empty_finds = 0

    @property
    def url(self) -> str:
        return self._url

    async def navigate(self, url: str) -> None:
        self.navigations.append(url)
        self._url = url

    async def capture_image(self, rect: Optional[BoundingBox] = None) -> Optional[bytes]:
        self.captures.append(rect)
        return self.image

    async def evaluate_script(self, script: str) -> Any:
        if self.hang:
            await asyncio.Event().wait()
        if self.raise_on_evaluate is not None:
            raise self.raise_on_evaluate
        if script == AGENT_RUNTIME_JS:
            self.injections += 1
            self.runtime_installed = True
            return None
        if script.startswith(f"(() => !!(window.{RUNTIME_NAMESPACE}"):
            return self.runtime_installed
        if not self.runtime_installed:
            return json.dumps({"ok": False, "error": "runtime not ready"})

        name, args = decode_call(script)
        self.calls.append((name, args))
        return json.dumps(getattr(self, f"_rt_{name}")(*args))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    # -- runtime emulation ---------------------------------------------------

    def _find(self, locator: Optional[dict[str, Any]]) -> list[FakeElement]:
        locator = locator or {}
        if locator.get("css"):
            nodes = [e for e in self.elements if e.selector == locator["css"]]
        elif locator.get("xpath"):
            nodes = []
        else:
            nodes = list(self.elements)
            needle = (locator.get("text") or locator.get("name") or "").lower()
            if needle:
                nodes = [e for e in nodes if needle in e.text.lower() or needle in (e.name or e.text).lower()]
        if locator.get("role"):
            nodes = [e for e in nodes if e.role_matches(locator["role"])]
        nth = locator.get("nth")
        if isinstance(nth, int):
            return [nodes[nth]] if nth < len(nodes) else []
        return nodes

    def _first_visible(self, locator: Optional[dict[str, Any]]) -> Optional[FakeElement]:
        return next((e for e in self._find(locator) if e.visible), None)

    def _rt_ping(self) -> dict:
        return {"ok": True, "version": "1", "readyState": self.ready_state}

    def _rt_findElements(self, locator: Optional[dict]) -> dict:
        if self.empty_finds > 0:
            self.empty_finds -= 1
            return {"ok": True, "count": 0, "elements": []}
        hint = " ".join(f"{k}={v}" for k, v in (locator or {}).items())
        nodes = self._find(locator)
        return {"ok": True, "count": len(nodes), "elements": [e.summary(i, hint) for i, e in enumerate(nodes[:50])]}

    def _rt_click(self, locator: dict) -> dict:
        el = self._first_visible(locator)
        if el is None:
            return {"ok": False, "error": "not found"}
        el.clicks += 1
        return {"ok": True}

    def _rt_typeText(self, locator: dict, text: str, submit: bool) -> dict:
        el = self._first_visible(locator)
        if el is None:
            return {"ok": False, "error": "not found"}
        if el.tag not in ("input", "textarea"):
            return {"ok": False, "error": "not editable"}
        if el.is_sensitive:
            return {"ok": False, "error": "sensitive field"}
        el.value = text
        el.submitted = bool(submit)
        return {"ok": True}

    def _rt_select(self, locator: dict, value: str) -> dict:
        el = self._first_visible(locator)
        if el is None or el.tag != "select":
            return {"ok": False, "error": "not a select"}
        match = next((o for o in el.options if o == value or o.lower() == value.lower()), None)
        if match is None:
            return {"ok": False, "error": "no such option"}
        el.value = match
        return {"ok": True, "value": match}

    def _rt_scroll(self, locator: Optional[dict], direction: str, amount_px: Optional[int]) -> dict:
        if locator and not self._find(locator):
            return {"ok": False, "error": "not found"}
        return {"ok": True}

    def _rt_waitFor(self, predicate: dict, timeout_ms: int) -> dict:
        if predicate.get("readyState"):
            ok = self.ready_state == "complete"
        elif predicate.get("selector"):
            ok = any(e.selector == predicate["selector"] and e.visible for e in self.elements)
        elif predicate.get("networkIdle"):
            ok = True
        else:
            return {"ok": False, "error": "no predicate"}
        return {"ok": True} if ok else {"ok": False, "error": "timeout"}

    def _rt_extract(self, read_mode: str, selector: Optional[str]) -> dict:
        if read_mode == "selection":
            return {"ok": True, "text": self.selection}
        if read_mode == "page":
            return {"ok": True, "text": self.page_text}
        el = next((e for e in self.elements if e.selector == selector), None)
        if el is None:
            return {"ok": False, "error": "not found"}
        if el.is_sensitive:
            return {"ok": False, "error": "sensitive field"}
        return {"ok": True, "text": el.value or el.text}

    def _rt_rect(self, locator: dict) -> dict:
        el = self._first_visible(locator)
        if el is None:
            return {"ok": False, "error": "not found"}
        x, y, w, h = el.rect
        return {"ok": True, "rect": {"x": x, "y": y, "width": w, "height": h}}


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep every test's data directory inside tmp_path."""
    monkeypatch.setenv("WEB_AGENT_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("WEB_AGENT_SENSITIVE_DOMAINS", raising=False)
    monkeypatch.delenv("WEB_AGENT_MIN_ACTION_INTERVAL_MS", raising=False)
    monkeypatch.delenv("WEB_AGENT_PROFILE", raising=False)
    return tmp_path / "home"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return AgentConfig(audit_log_file=tmp_path / "audit.json", debug=False)


@pytest.fixture
def audit_log(config):
    return AuditLog(config.audit_log_path)


@pytest.fixture
def page():
    return FakePage(elements=[
        FakeElement("input", name="q", type="search", selector="#q"),
        FakeElement("button", text="Search", selector="#go"),
        FakeElement("a", text="About us", selector="a.about"),
    ])


@pytest.fixture
def make_agent(config, audit_log, clock):
    """Build a PageAgent over a page with the fake clock."""
    def _make(page, approver=None, **overrides):
        for key, value in overrides.items():
            setattr(config, key, value)
        return PageAgent(
            page,
            config,
            audit_log=audit_log,
            approver=approver or AutoApprover(approve=True),
            clock=clock,
        )
    return _make
