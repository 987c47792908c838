"""
Error taxonomy for Web Agent.

Raised inside the agent and turned into failed observations at the tool
boundary. Each error carries a stable ``code`` that is echoed to the planner.
"""

from typing import Optional


class AgentError(Exception):
    """Base class for all agent errors."""
    code = "AgentError"
    default_message = ""

    def __init__(self, message: str = ""):
        message = message or self.default_message or self.code
        super().__init__(message)
        self.message = message


class InvalidArguments(AgentError):
    """Malformed or missing tool arguments."""
    code = "InvalidArguments"


class UnknownTool(AgentError):
    """Tool name outside the closed set."""
    code = "UnknownTool"

    def __init__(self, name: str):
        super().__init__("unknown tool")
        self.name = name


class LocatorNotFound(AgentError):
    """No element (or no usable element) matched the locator."""
    code = "LocatorNotFound"


class PolicyDenied(AgentError):
    """The permission policy refused the action.

    Distinct from an execution failure: the caller may escalate through
    ``askUser`` and retry.
    """
    code = "PolicyDenied"

    def __init__(self, reason: Optional[str]):
        self.reason = reason or "denied by policy"
        super().__init__(f"policy denied: {self.reason}")


class ExecutionFailed(AgentError):
    """The runtime refused or could not perform the action."""
    code = "ExecutionFailed"


class BridgeTimeout(AgentError):
    """The page script did not answer, or the runtime never became ready."""
    code = "BridgeTimeout"


class ConsentTimeout(AgentError):
    """Nobody answered a consent prompt in time."""
    code = "ConsentTimeout"
    default_message = "consent timed out"


class ConsentDenied(AgentError):
    """The user declined a consent prompt."""
    code = "ConsentDenied"
    default_message = "consent denied"


class AuditPersistError(AgentError):
    """The audit log could not be written to disk."""
    code = "AuditPersistError"
