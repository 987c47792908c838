"""
Permission policy for Web Agent.

Decides whether an action may run on a given origin. The decision is a pure
function of the action kind, the origin host and the configured sensitive
domains.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .config import DEFAULT_SENSITIVE_DOMAINS
from .types import ActionType
from .utils import host_matches, normalize_host


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyDecision:
    """Allow/deny verdict for one action on one origin."""
    allowed: bool
    reason: Optional[str] = None


class PermissionPolicy:
    """Evaluates actions against origin sensitivity.

    Read-only and navigational actions are always allowed. Clicking,
    selecting and typing are denied on sensitive domains; the denial is the
    caller's cue to escalate through ``askUser``, which itself is always
    allowed.
    """

    # Actions that only observe or move around
    READ_ONLY_ACTIONS = frozenset({
        "navigate", "findElements", "observe", "scroll",
        "waitFor", "extract", "switchTab", "snapshot",
    })

    # Actions that change page or form state
    MUTATING_ACTIONS = frozenset({"click", "select", "typeText"})

    ESCALATION_ACTIONS = frozenset({"askUser"})

    CLICK_DENIED_REASON = "Confirmation required on sensitive domain"
    TYPE_DENIED_REASON = "Typing blocked on sensitive domain without consent"

    def __init__(self, sensitive_domains: Optional[Iterable[str]] = None):
        """Initialize the policy.

        Args:
            sensitive_domains: Hosts whose subdomains also count as sensitive
                (defaults to identity and banking providers)
        """
        domains = sensitive_domains if sensitive_domains is not None else DEFAULT_SENSITIVE_DOMAINS
        self.sensitive_domains = frozenset(
            d for d in (normalize_host(d) for d in domains) if d
        )

    def is_sensitive_host(self, host: Optional[str]) -> bool:
        """Check if a host is, or is under, a sensitive domain."""
        return host_matches(host, self.sensitive_domains)

    def evaluate(
        self,
        action: Union[str, ActionType],
        origin_host: Optional[str],
    ) -> PolicyDecision:
        """Evaluate one action against the current origin.

        Args:
            action: Action or tool name (e.g. "click", "observe")
            origin_host: Host of the page the action targets, if known

        Returns:
            PolicyDecision
        """
        name = action.value if isinstance(action, ActionType) else str(action)

        if name in self.READ_ONLY_ACTIONS or name in self.ESCALATION_ACTIONS:
            return PolicyDecision(allowed=True)

        if name in self.MUTATING_ACTIONS:
            if not self.is_sensitive_host(origin_host):
                return PolicyDecision(allowed=True)
            reason = self.TYPE_DENIED_REASON if name == "typeText" else self.CLICK_DENIED_REASON
            logger.info(f"Policy denied {name} on {origin_host}: {reason}")
            return PolicyDecision(allowed=False, reason=reason)

        # Fail closed for anything outside the known action set
        return PolicyDecision(allowed=False, reason=f"Unknown action: {name}")


def evaluate(
    action: Union[str, ActionType],
    origin_host: Optional[str],
) -> PolicyDecision:
    """Convenience function to evaluate with the default sensitive domains.

    Args:
        action: Action or tool name
        origin_host: Page host

    Returns:
        PolicyDecision
    """
    return PermissionPolicy().evaluate(action, origin_host)
