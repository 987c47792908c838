"""
Tests for tool argument schemas.
"""

import pytest

from web_agent.errors import InvalidArguments
from web_agent.tool_schemas import (
    TOOL_SCHEMAS,
    AskUserRequest,
    LocatedArgs,
    NavigateRequest,
    ObserveRequest,
    ScrollRequest,
    ToolCall,
    ToolName,
    WaitForRequest,
    parse_arguments,
)
from web_agent.types import Locator


class TestToolName:
    """Tests for the closed tool set."""

    def test_parse_known(self):
        assert ToolName.parse("typeText") is ToolName.TYPE_TEXT

    def test_parse_unknown(self):
        assert ToolName.parse("type_text") is None
        assert ToolName.parse("") is None

    def test_every_tool_has_schema(self):
        assert set(TOOL_SCHEMAS) == set(ToolName)


class TestLocatorDecoding:
    """Tests for locator arguments."""

    def test_object(self):
        args = LocatedArgs.model_validate({"locator": {"role": "Button", "nth": 1}})
        assert args.sanitized_locator() == Locator(role="button", nth=1)

    def test_json_string(self):
        args = LocatedArgs.model_validate({"locator": '{"text": "Next", "xpath": "//a"}'})
        assert args.sanitized_locator() == Locator(text="Next")

    def test_missing_and_blank(self):
        assert LocatedArgs.model_validate({}).sanitized_locator() is None
        assert LocatedArgs.model_validate({"locator": ""}).sanitized_locator() is None
        assert LocatedArgs.model_validate({"locator": {"css": "#x"}}).sanitized_locator() is None

    def test_negative_nth_rejected(self):
        with pytest.raises(InvalidArguments):
            parse_arguments(ToolName.CLICK, {"locator": {"nth": -1}})

    def test_non_object_rejected(self):
        with pytest.raises(InvalidArguments):
            parse_arguments(ToolName.CLICK, {"locator": "[1, 2]"})


class TestToolArguments:
    """Tests for per-tool argument models."""

    def test_navigate_aliases(self):
        args = parse_arguments(ToolName.NAVIGATE, {"url": " example.com ", "newTab": True})
        assert isinstance(args, NavigateRequest)
        assert args.url == "example.com"
        assert args.new_tab

    def test_navigate_requires_url(self):
        with pytest.raises(InvalidArguments, match="url"):
            parse_arguments(ToolName.NAVIGATE, {})

    def test_observe_defaults(self):
        args = parse_arguments(ToolName.OBSERVE, {})
        assert isinstance(args, ObserveRequest)
        assert args.kinds == ["interactive", "articles", "textboxes"]
        assert args.limit == 12

    def test_observe_empty_kinds_uses_defaults(self):
        assert parse_arguments(ToolName.OBSERVE, {"kinds": []}).kinds == ["interactive", "articles", "textboxes"]

    def test_observe_dedupes_kinds(self):
        assert parse_arguments(ToolName.OBSERVE, {"kinds": ["links", "LINKS"]}).kinds == ["links"]

    def test_scroll_direction(self):
        args = parse_arguments(ToolName.SCROLL, {"direction": "Left", "amountPx": 50})
        assert isinstance(args, ScrollRequest)
        assert args.direction == "left"
        assert args.amount_px == 50
        with pytest.raises(InvalidArguments):
            parse_arguments(ToolName.SCROLL, {"direction": "diagonal"})

    def test_wait_for_aliases(self):
        args = parse_arguments(ToolName.WAIT_FOR, {"delayMs": 10, "networkIdle": True, "timeoutMs": 99})
        assert isinstance(args, WaitForRequest)
        assert args.delay_ms == 10
        assert args.network_idle
        assert args.timeout_ms == 99

    def test_wait_for_ready_state_only_complete(self):
        assert parse_arguments(ToolName.WAIT_FOR, {"readyState": "complete"}).ready_state == "complete"
        with pytest.raises(InvalidArguments, match="readyState"):
            parse_arguments(ToolName.WAIT_FOR, {"readyState": "interactive"})

    def test_ask_user_default_index(self):
        args = parse_arguments(ToolName.ASK_USER, {"prompt": "Go?", "choices": ["a", "b"], "default": 1})
        assert isinstance(args, AskUserRequest)
        assert args.default == 1

    def test_snapshot_alias(self):
        args = parse_arguments(ToolName.SNAPSHOT, {"cropToElement": True, "locator": {"text": "Logo"}})
        assert args.crop_to_element

    def test_unknown_keys_ignored(self):
        args = parse_arguments(ToolName.CLICK, {"locator": {"text": "x"}, "force": True})
        assert args.sanitized_locator() == Locator(text="x")


class TestToolCall:
    """Tests for the wire envelope."""

    def test_arguments_default(self):
        assert ToolCall(name="observe").arguments == {}
        assert ToolCall.model_validate({"name": "observe", "arguments": None}).arguments == {}
