"""
Tests for the consent flow.
"""

import asyncio
from unittest.mock import MagicMock, patch

import pytest

from web_agent.approver import (
    AutoApprover,
    ConsentRequest,
    ConsentResult,
    ConsoleApprover,
    PendingConsentApprover,
    get_approver,
    resolve_choice,
)


class TestResolveChoice:
    """Tests for mapping a button index onto consent."""

    def test_confirm_allow(self):
        result = resolve_choice(ConsentRequest(prompt="Proceed?"), 0)
        assert result == ConsentResult(answer="allow", choice_index=0, consent=True)

    def test_confirm_cancel(self):
        result = resolve_choice(ConsentRequest(prompt="Proceed?"), 1)
        assert result.answer == "cancel"
        assert result.choice_index == 1
        assert not result.consent

    def test_dismissed_is_denied(self):
        result = resolve_choice(ConsentRequest(prompt="x"), None)
        assert not result.consent
        assert result.answer is None

    def test_multiple_choice_any_answer_consents(self):
        request = ConsentRequest(prompt="Pick", choices=["red", "green", "blue"])
        result = resolve_choice(request, 2)
        assert result.answer == "blue"
        assert result.choice_index == 2
        assert result.consent

    def test_multiple_choice_index_clamped(self):
        request = ConsentRequest(prompt="Pick", choices=["a", "b"])
        assert resolve_choice(request, 9).answer == "b"
        assert resolve_choice(request, -3).answer == "a"


class TestConsentResult:
    """Tests for the observation shape."""

    def test_to_dict(self):
        assert ConsentResult("allow", 0, True).to_dict() == {"answer": "allow", "consent": True, "choiceIndex": 0}

    def test_denied_timeout(self):
        data = ConsentResult.denied(timed_out=True).to_dict()
        assert data == {"answer": "", "consent": False, "timedOut": True}

    def test_error_codes(self):
        assert ConsentResult("allow", 0, True).error() is None
        assert ConsentResult.denied().error().code == "ConsentDenied"
        timed_out = ConsentResult.denied(timed_out=True).error()
        assert timed_out.code == "ConsentTimeout"
        assert timed_out.message == "consent timed out"

    def test_empty_prompt_display(self):
        assert ConsentRequest(prompt="").display_prompt == "Proceed?"


class TestAutoApprover:
    """Tests for unattended consent."""

    @pytest.mark.asyncio
    async def test_approves_confirm(self):
        result = await AutoApprover().request_consent("Submit order?")
        assert result.consent
        assert result.answer == "allow"

    @pytest.mark.asyncio
    async def test_uses_default_choice(self):
        result = await AutoApprover().request_consent("Size?", choices=["S", "M", "L"], default_index=1)
        assert result.answer == "M"

    @pytest.mark.asyncio
    async def test_deny_mode(self):
        result = await AutoApprover(approve=False).request_consent("Submit?")
        assert not result.consent
        assert not result.timed_out


class TestPendingConsentApprover:
    """Tests for UI-resolved consent."""

    @pytest.mark.asyncio
    async def test_resolve_pending_request(self):
        approver = PendingConsentApprover()
        task = asyncio.create_task(approver.request_consent("Continue?", choices=["yes", "no"]))
        await asyncio.sleep(0)

        pending = approver.pending()
        assert len(pending) == 1
        assert pending[0].prompt == "Continue?"
        assert approver.resolve(pending[0].id, 1)

        result = await task
        assert result.answer == "no"
        assert result.consent
        assert approver.pending() == []

    @pytest.mark.asyncio
    async def test_timeout_resolves_to_denied(self):
        approver = PendingConsentApprover()
        result = await approver.request_consent("Continue?", timeout_ms=20)
        assert not result.consent
        assert result.timed_out
        assert approver.pending() == []

    @pytest.mark.asyncio
    async def test_zero_timeout_denies_immediately(self):
        approver = PendingConsentApprover()
        result = await asyncio.wait_for(approver.request_consent("Continue?", timeout_ms=0), timeout=1)
        assert not result.consent
        assert result.timed_out
        assert approver.pending() == []

    @pytest.mark.asyncio
    async def test_missing_timeout_uses_default(self):
        approver = PendingConsentApprover()
        with patch("web_agent.approver.DEFAULT_CONSENT_TIMEOUT_MS", 20):
            result = await approver.request_consent("Continue?")
        assert result.timed_out

    def test_resolve_unknown_request(self):
        assert not PendingConsentApprover().resolve("missing", 0)


class TestConsoleApprover:
    """Tests for the Rich console prompts."""

    @pytest.mark.asyncio
    async def test_confirm_prompt(self):
        approver = ConsoleApprover()
        approver.console = MagicMock()
        with patch.object(approver.Confirm, "ask", return_value=False):
            result = await approver.request_consent("Delete?")
        assert result.answer == "cancel"
        assert not result.consent

    @pytest.mark.asyncio
    async def test_choice_prompt(self):
        approver = ConsoleApprover()
        approver.console = MagicMock()
        with patch.object(approver.Prompt, "ask", return_value="2"):
            result = await approver.request_consent("Which?", choices=["a", "b"])
        assert result.answer == "b"
        assert result.choice_index == 1


class TestGetApprover:
    """Tests for approver selection."""

    def test_modes(self):
        assert isinstance(get_approver("auto"), AutoApprover)
        assert get_approver("auto").approve
        assert not get_approver("deny").approve
        assert isinstance(get_approver("ui"), PendingConsentApprover)
        assert isinstance(get_approver("cli"), ConsoleApprover)

    def test_auto_approve_wins(self):
        approver = get_approver("cli", auto_approve=True)
        assert isinstance(approver, AutoApprover)
