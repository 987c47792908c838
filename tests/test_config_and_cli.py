"""
Tests for configuration, run logging and the CLI.
"""

import json

import pytest
from rich.console import Console

from web_agent.audit_log import AuditLog
from web_agent.cli import create_parser, load_plan, main
from web_agent.config import AgentConfig, DEFAULT_SENSITIVE_DOMAINS, get_base_dir
from web_agent.logger import RunLogger, print_audit_table, slugify
from web_agent.tool_schemas import ToolCall, ToolObservation


class TestAgentConfig:
    """Tests for configuration defaults and environment overrides."""

    def test_defaults(self):
        config = AgentConfig()
        assert config.profile_name == "default"
        assert config.min_action_interval_ms == 300
        assert config.poll_interval_ms == 150
        assert config.sample_limit == 12
        assert config.sensitive_domains == DEFAULT_SENSITIVE_DOMAINS

    def test_home_override(self, isolated_home):
        assert get_base_dir() == isolated_home
        config = AgentConfig(profile_name="work")
        assert config.audit_log_path == isolated_home / "profiles" / "work" / "agent_audit_log.json"

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("WEB_AGENT_SENSITIVE_DOMAINS", "Bank.Example, ,intranet.corp")
        monkeypatch.setenv("WEB_AGENT_MIN_ACTION_INTERVAL_MS", "50")
        monkeypatch.setenv("WEB_AGENT_PROFILE", "ci")
        config = AgentConfig()
        assert config.sensitive_domains[-2:] == ("bank.example", "intranet.corp")
        assert config.min_action_interval_ms == 50
        assert config.profile_name == "ci"

    def test_bad_interval_falls_back(self, monkeypatch):
        monkeypatch.setenv("WEB_AGENT_MIN_ACTION_INTERVAL_MS", "fast")
        assert AgentConfig().min_action_interval_ms == 300

    def test_from_cli_args(self):
        config = AgentConfig.from_cli_args(profile="p", headless=True, auto_approve=True, min_action_interval_ms=0)
        assert config.profile_name == "p"
        assert config.headless
        assert config.auto_approve
        assert config.min_action_interval_ms == 0

    def test_explicit_audit_file(self, tmp_path):
        config = AgentConfig(audit_log_file=tmp_path / "a.json")
        assert config.audit_log_path == tmp_path / "a.json"


class TestRunLogger:
    """Tests for the JSONL step log."""

    def test_log_step_redacts_text(self, tmp_path):
        run_logger = RunLogger("My Plan!", enable_console=False, runs_dir=tmp_path)
        call = ToolCall(name="typeText", arguments={"locator": {"role": "textbox"}, "text": "hunter2"})
        run_logger.log_step(call, ToolObservation(name="typeText", ok=True))

        lines = run_logger.steps_file.read_text().splitlines()
        step = json.loads(lines[0])
        assert step["step"] == 1
        assert step["call"]["arguments"]["text"] == "[REDACTED 7 chars]"
        assert step["observation"]["ok"] is True
        assert "hunter2" not in lines[0]
        assert run_logger.run_dir.name.endswith("my_plan")

    def test_snapshot_saved_as_file(self, tmp_path):
        run_logger = RunLogger("snap", enable_console=False, runs_dir=tmp_path)
        observation = ToolObservation(name="snapshot", ok=True, data={"image_base64": "iVBORw0K"})
        run_logger.log_step(ToolCall(name="snapshot"), observation)

        step = json.loads(run_logger.steps_file.read_text())
        assert "image_base64" not in step["observation"]["data"]
        assert step["observation"]["data"]["image_file"].endswith("step_001.png")
        # The caller's observation is untouched
        assert observation.data["image_base64"] == "iVBORw0K"

    def test_failures_counted(self, tmp_path):
        run_logger = RunLogger("x", enable_console=False, runs_dir=tmp_path)
        run_logger.log_step(ToolCall(name="click"), ToolObservation(name="click", ok=False, message="no"))
        assert run_logger.failures == 1
        step = json.loads(run_logger.steps_file.read_text())
        assert step["observation"] == {"name": "click", "ok": False, "message": "no"}

    def test_console_output(self, tmp_path):
        run_logger = RunLogger("x", enable_console=True, runs_dir=tmp_path)
        run_logger.console = Console(record=True, width=120)
        run_logger.print_call(ToolCall(name="typeText", arguments={"text": "secret"}))
        run_logger.print_observation(ToolObservation(name="observe", ok=True, data={"count": 3}))
        output = run_logger.console.export_text()
        assert "typeText" in output
        assert "secret" not in output
        assert "3 element(s)" in output

    def test_slugify(self):
        assert slugify("Hello, World plan") == "hello_world_plan"


class TestAuditTable:
    """Tests for audit rendering."""

    def test_renders_entries(self, tmp_path):
        log = AuditLog(tmp_path / "a.json")
        log.append("chase.com", "click", {"locator": "text=Pay"}, False, "Confirmation required on sensitive domain", False)
        console = Console(record=True, width=200)
        print_audit_table(console, log.all())
        output = console.export_text()
        assert "chase.com" in output
        assert "denied" in output


class TestCli:
    """Tests for argument parsing and commands that need no browser."""

    def test_parser_run(self):
        args = create_parser().parse_args(["run", "plan.json", "--url", "example.com", "--headless"])
        assert args.command == "run"
        assert args.url == "example.com"
        assert args.headless
        assert not args.auto_approve

    def test_load_plan_list(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps([{"name": "observe", "arguments": {}}]))
        url, calls = load_plan(path)
        assert url is None
        assert calls == [ToolCall(name="observe", arguments={})]

    def test_load_plan_object(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps({"url": "https://example.com", "calls": [{"name": "extract"}]}))
        url, calls = load_plan(path)
        assert url == "https://example.com"
        assert calls[0].name == "extract"

    def test_load_plan_invalid(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text(json.dumps({"calls": "nope"}))
        with pytest.raises(ValueError):
            load_plan(path)

    def test_run_missing_plan(self, tmp_path):
        assert main(["run", str(tmp_path / "missing.json")]) == 2

    def test_tools_command(self, capsys, monkeypatch):
        monkeypatch.setenv("COLUMNS", "200")
        assert main(["tools"]) == 0
        assert "typeText" in capsys.readouterr().out

    def test_audit_command(self, capsys, monkeypatch):
        monkeypatch.setenv("COLUMNS", "250")
        config = AgentConfig()
        config.ensure_directories()
        log = AuditLog(config.audit_log_path)
        log.append("example.com", "navigate", None, True, None, False, outcome_success=True)
        log.append("chase.com", "click", None, False, "Confirmation required on sensitive domain", False)

        assert main(["audit", "--host", "chase.com"]) == 0
        out = capsys.readouterr().out
        assert "chase.com" in out
        assert "1 of 2 entries" in out

    def test_audit_command_limit(self, capsys, monkeypatch):
        monkeypatch.setenv("COLUMNS", "250")
        config = AgentConfig()
        log = AuditLog(config.audit_log_path)
        for action in ("navigate", "extract", "scroll"):
            log.append("example.com", action, None, True, None, False, outcome_success=True)

        assert main(["audit", "--limit", "2"]) == 0
        out = capsys.readouterr().out
        assert "navigate" not in out
        assert "scroll" in out
        assert "2 of 3 entries" in out

    def test_audit_command_without_log(self, capsys):
        assert main(["audit", "--profile", "empty"]) == 0
        assert "No audit log" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
