"""
Tests for the sage-adk CLI.

Uses Click's CliRunner to test commands without spawning subprocesses.
"""

from __future__ import annotations

import json
from unittest import mock

import pytest
from click.testing import CliRunner

from sage_adk.main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("SAGE_ADK_AGENT_ID", "SAGE_ADK_LOG_LEVEL", "SAGE_ADK_HEALTH_PORT", "SAGE_ADK_METRICS_PORT"):
        monkeypatch.delenv(var, raising=False)


class TestCheckConfig:
    def test_defaults_valid(self, runner):
        result = runner.invoke(cli, ["check-config"])

        assert result.exit_code == 0
        assert "Configuration valid" in result.output
        assert "port 9090, path /metrics" in result.output

    def test_invalid_file(self, runner, tmp_path):
        path = tmp_path / "agent.yaml"
        path.write_text("health:\n  port: 0\n")

        result = runner.invoke(cli, ["check-config", "--config", str(path)])

        assert result.exit_code == 1
        assert "health.port" in result.output

    def test_malformed_file(self, runner, tmp_path):
        path = tmp_path / "agent.json"
        path.write_text("{not json")

        result = runner.invoke(cli, ["check-config", "--config", str(path)])

        assert result.exit_code == 1
        assert "cannot parse" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)


class TestHealth:
    def test_json_output(self, runner):
        result = runner.invoke(cli, ["health", "--json"])

        assert result.exit_code == 0
        probes = json.loads(result.output)
        assert [p["name"] for p in probes] == ["liveness", "startup", "readiness"]
        assert all(p["status"] == "healthy" for p in probes)

    def test_text_output(self, runner):
        result = runner.invoke(cli, ["health"])

        assert result.exit_code == 0
        assert "liveness" in result.output
        assert "startup completed" in result.output


class TestMetrics:
    def test_prometheus(self, runner, monkeypatch):
        monkeypatch.setenv("SAGE_ADK_AGENT_ID", "cli-agent")

        result = runner.invoke(cli, ["metrics"])

        assert result.exit_code == 0
        assert 'sage_agent_status{agent_id="cli-agent"} 1' in result.output

    def test_json(self, runner):
        result = runner.invoke(cli, ["metrics", "--format", "json"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["metrics"]["sage_agent_status"]["type"] == "gauge"


class TestServe:
    def test_serve_marks_ready_and_shuts_down(self, runner):
        with mock.patch("sage_adk.main.ObservabilityManager.serve", side_effect=KeyboardInterrupt) as serve, \
                mock.patch("sage_adk.main.signal.signal"):
            result = runner.invoke(cli, ["serve", "--agent-id", "agent-9", "--host", "127.0.0.1"])

        assert result.exit_code == 0
        serve.assert_called_once_with("127.0.0.1")
        assert "Serving observability for agent-9 on 127.0.0.1:8080" in result.output

    def test_serve_invalid_config(self, runner, monkeypatch):
        monkeypatch.setenv("SAGE_ADK_LOG_LEVEL", "loud")

        result = runner.invoke(cli, ["serve"])

        assert result.exit_code == 1
        assert "logging.level" in result.output
