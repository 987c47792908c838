"""
Configuration management for Web Agent.

Provides configuration dataclass and environment variable loading.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()


def get_base_dir() -> Path:
    """Get the base directory for web agent data."""
    override = os.getenv("WEB_AGENT_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".web_agent"


def get_profiles_dir() -> Path:
    """Get the directory for per-profile data (audit logs)."""
    return get_base_dir() / "profiles"


def get_runs_dir() -> Path:
    """Get the directory for run logs."""
    return get_base_dir() / "runs"


AUDIT_LOG_FILENAME = "agent_audit_log.json"

DEFAULT_SENSITIVE_DOMAINS = (
    "accounts.google.com",
    "appleid.apple.com",
    "login.microsoftonline.com",
    "bankofamerica.com",
    "chase.com",
    "paypal.com",
)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_domains() -> tuple[str, ...]:
    extra = os.getenv("WEB_AGENT_SENSITIVE_DOMAINS", "")
    added = tuple(d.strip().lower() for d in extra.split(",") if d.strip())
    return DEFAULT_SENSITIVE_DOMAINS + added


@dataclass
class AgentConfig:
    """Configuration for the page agent and tool registry."""

    # Profile settings
    profile_name: str = field(
        default_factory=lambda: os.getenv("WEB_AGENT_PROFILE", "default")
    )

    # Browser settings (CLI only)
    headless: bool = False

    # Consent: approve every prompt without asking (testing / unattended runs)
    auto_approve: bool = False

    # Polling and deadlines (ms)
    poll_interval_ms: int = 150
    element_timeout_ms: int = 3000
    runtime_ready_timeout_ms: int = 5000
    bridge_timeout_ms: int = 10000
    wait_timeout_ms: int = 5000
    stabilization_ms: int = 800
    consent_timeout_ms: int = 60000

    # Minimum spacing between mutating actions (ms)
    min_action_interval_ms: int = field(
        default_factory=lambda: _env_int("WEB_AGENT_MIN_ACTION_INTERVAL_MS", 300)
    )

    # Observation sample size per element category
    sample_limit: int = 12

    # Hosts (and their subdomains) where mutating actions need consent
    sensitive_domains: tuple[str, ...] = field(default_factory=_env_domains)

    # Debug mode - enables verbose logging (off by default)
    debug: bool = field(
        default_factory=lambda: os.getenv("WEB_AGENT_DEBUG", "").lower() in ("1", "true", "yes")
    )

    # Explicit audit file location; defaults to the profile directory
    audit_log_file: Optional[Path] = None

    @property
    def profile_dir(self) -> Path:
        """Get the path to the profile directory."""
        return get_profiles_dir() / self.profile_name

    @property
    def audit_log_path(self) -> Path:
        """Get the path of the persisted audit log for this profile."""
        if self.audit_log_file is not None:
            return Path(self.audit_log_file)
        return self.profile_dir / AUDIT_LOG_FILENAME

    def ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        get_base_dir().mkdir(parents=True, exist_ok=True)
        get_runs_dir().mkdir(parents=True, exist_ok=True)
        self.audit_log_path.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_cli_args(
        cls,
        profile: Optional[str] = None,
        headless: bool = False,
        auto_approve: bool = False,
        min_action_interval_ms: Optional[int] = None,
        debug: bool = False,
    ) -> "AgentConfig":
        """Create configuration from CLI arguments."""
        config = cls(headless=headless, auto_approve=auto_approve)
        if profile:
            config.profile_name = profile
        if min_action_interval_ms is not None:
            config.min_action_interval_ms = min_action_interval_ms
        if debug:
            config.debug = True
        return config


# Default configuration values for documentation
DEFAULTS = {
    "profile": "default",
    "headless": False,
    "auto_approve": False,
    "poll_interval_ms": 150,
    "element_timeout_ms": 3000,
    "runtime_ready_timeout_ms": 5000,
    "bridge_timeout_ms": 10000,
    "wait_timeout_ms": 5000,
    "min_action_interval_ms": 300,
    "consent_timeout_ms": 60000,
    "sample_limit": 12,
}
