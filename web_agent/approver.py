"""
Consent system for Web Agent.

Provides an async request/response interface for human-in-the-loop consent
that works from the CLI, unattended, or with any UI that resolves pending
requests. Every prompt can be bounded by a timeout that resolves to "denied".
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import AgentError, ConsentDenied, ConsentTimeout


logger = logging.getLogger(__name__)

# A prompt never waits longer than this unless the caller says otherwise
DEFAULT_CONSENT_TIMEOUT_MS = 60000


@dataclass
class ConsentRequest:
    """A question put to the user."""
    prompt: str
    choices: Optional[list[str]] = None
    default_index: Optional[int] = None
    timeout_ms: Optional[int] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def display_prompt(self) -> str:
        return self.prompt or "Proceed?"


@dataclass
class ConsentResult:
    """The user's answer.

    Attributes:
        answer: Chosen label ("allow"/"cancel" for confirm prompts)
        choice_index: Index of the chosen button
        consent: Whether the answer counts as consent
        timed_out: True when nobody answered in time
    """
    answer: Optional[str]
    choice_index: Optional[int]
    consent: bool
    timed_out: bool = False

    @classmethod
    def denied(cls, timed_out: bool = False) -> "ConsentResult":
        return cls(answer=None, choice_index=None, consent=False, timed_out=timed_out)

    def error(self) -> Optional[AgentError]:
        """The failure this answer amounts to, or None when consent was given."""
        if self.consent:
            return None
        return ConsentTimeout() if self.timed_out else ConsentDenied()

    def to_dict(self) -> dict[str, Any]:
        """Convert to the observation shape."""
        data: dict[str, Any] = {
            "answer": self.answer or "",
            "consent": self.consent,
        }
        if self.choice_index is not None:
            data["choiceIndex"] = self.choice_index
        if self.timed_out:
            data["timedOut"] = True
        return data


CONFIRM_LABELS = ("allow", "cancel")


def resolve_choice(request: ConsentRequest, index: Optional[int]) -> ConsentResult:
    """Map a button index onto a consent result.

    Multiple choice: any answered choice is consent, out-of-range indexes are
    clamped. Confirm/deny: index 0 is "allow", anything else "cancel". A
    ``None`` index means the prompt was dismissed.
    """
    if index is None:
        return ConsentResult.denied()

    if request.choices:
        safe_index = max(0, min(index, len(request.choices) - 1))
        return ConsentResult(
            answer=request.choices[safe_index],
            choice_index=safe_index,
            consent=True,
        )

    consent = index == 0
    return ConsentResult(
        answer=CONFIRM_LABELS[0] if consent else CONFIRM_LABELS[1],
        choice_index=0 if consent else 1,
        consent=consent,
    )


class Approver(ABC):
    """Abstract base class for consent handlers."""

    @abstractmethod
    async def prompt(self, request: ConsentRequest) -> Optional[int]:
        """Show the request and wait for an answer.

        Args:
            request: The consent request

        Returns:
            Index of the chosen button, or None if dismissed
        """

    def cancel(self, request: ConsentRequest) -> None:
        """Withdraw a request that timed out. Default is a no-op."""

    async def request_consent(
        self,
        prompt: str,
        choices: Optional[list[str]] = None,
        default_index: Optional[int] = None,
        timeout_ms: Optional[int] = None,
    ) -> ConsentResult:
        """Ask the user and resolve the answer, bounded by ``timeout_ms``.

        Args:
            prompt: Question text ("Proceed?" when empty)
            choices: Button labels for a multiple-choice prompt
            default_index: Preselected choice
            timeout_ms: Auto-deny after this long; None uses DEFAULT_CONSENT_TIMEOUT_MS,
                zero or less denies without prompting

        Returns:
            ConsentResult (denied with ``timed_out`` on timeout)
        """
        if timeout_ms is None:
            timeout_ms = DEFAULT_CONSENT_TIMEOUT_MS
        request = ConsentRequest(
            prompt=prompt,
            choices=list(choices) if choices else None,
            default_index=default_index,
            timeout_ms=timeout_ms,
        )
        if timeout_ms <= 0:
            logger.info(f"Consent request {request.id} denied: no time to answer")
            return ConsentResult.denied(timed_out=True)
        try:
            index = await asyncio.wait_for(self.prompt(request), timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            logger.info(f"Consent request {request.id} timed out after {timeout_ms}ms")
            self.cancel(request)
            return ConsentResult.denied(timed_out=True)
        return resolve_choice(request, index)


class ConsoleApprover(Approver):
    """CLI consent via Rich prompts.

    The blocking prompt runs in a worker thread so the event loop (and the
    timeout) keeps running.
    """

    def __init__(self):
        from rich.console import Console
        from rich.prompt import Confirm, Prompt

        self.console = Console()
        self.Prompt = Prompt
        self.Confirm = Confirm

    def _ask(self, request: ConsentRequest) -> Optional[int]:
        self.console.print()
        self.console.print(f"[bold yellow]Agent asks:[/bold yellow] {request.display_prompt}")

        if request.choices:
            for i, choice in enumerate(request.choices, start=1):
                self.console.print(f"  [cyan]{i}[/cyan]. {choice}")
            default = None
            if request.default_index is not None and 0 <= request.default_index < len(request.choices):
                default = str(request.default_index + 1)
            answer = self.Prompt.ask(
                "[yellow]Choose[/yellow]",
                choices=[str(i) for i in range(1, len(request.choices) + 1)],
                default=default,
            )
            return int(answer) - 1

        allowed = self.Confirm.ask("[yellow]Allow?[/yellow]", default=request.default_index == 0)
        return 0 if allowed else 1

    async def prompt(self, request: ConsentRequest) -> Optional[int]:
        return await asyncio.to_thread(self._ask, request)


class AutoApprover(Approver):
    """Answer every prompt without asking.

    Used when:
    - auto-approve mode is enabled (picks the default or first choice)
    - running unattended with ``approve=False`` (denies everything)
    - testing
    """

    def __init__(self, approve: bool = True):
        self.approve = approve

    async def prompt(self, request: ConsentRequest) -> Optional[int]:
        if not self.approve:
            return None
        if request.choices and request.default_index is not None:
            return request.default_index
        return 0


class PendingConsentApprover(Approver):
    """Consent resolved by an external UI.

    Requests wait as pending futures until a UI calls ``resolve``. Safe to
    resolve from another thread.

    Usage:
        approver = PendingConsentApprover()
        # UI side
        for request in approver.pending():
            approver.resolve(request.id, 0)
    """

    def __init__(self):
        self._pending: dict[str, tuple[ConsentRequest, asyncio.Future]] = {}

    def pending(self) -> list[ConsentRequest]:
        """Requests that are still waiting for an answer."""
        return [request for request, _ in self._pending.values()]

    async def prompt(self, request: ConsentRequest) -> Optional[int]:
        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = (request, future)
        try:
            return await future
        finally:
            self._pending.pop(request.id, None)

    def resolve(self, request_id: str, choice_index: Optional[int]) -> bool:
        """Answer a pending request.

        Args:
            request_id: ID of the pending request
            choice_index: Chosen button, or None to dismiss

        Returns:
            False if no such request is pending
        """
        entry = self._pending.get(request_id)
        if entry is None:
            return False
        _, future = entry

        def _set() -> None:
            if not future.done():
                future.set_result(choice_index)

        future.get_loop().call_soon_threadsafe(_set)
        return True

    def cancel(self, request: ConsentRequest) -> None:
        entry = self._pending.pop(request.id, None)
        if entry is not None and not entry[1].done():
            entry[1].cancel()


def get_approver(mode: str = "cli", auto_approve: bool = False) -> Approver:
    """Get the appropriate approver for the given mode.

    Args:
        mode: "cli", "ui", "auto" or "deny"
        auto_approve: If True, always return an approving AutoApprover

    Returns:
        Appropriate Approver instance
    """
    if auto_approve or mode == "auto":
        return AutoApprover(approve=True)

    if mode == "deny":
        return AutoApprover(approve=False)

    if mode == "ui":
        return PendingConsentApprover()

    # Default: CLI mode
    return ConsoleApprover()
