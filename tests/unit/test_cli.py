"""
Tests for the Tollgate CLI.

These drive the Typer app through CliRunner. Nothing is executed; `check`
only runs the shell policy gate.
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tollgate import __version__
from tollgate.cli import app

runner = CliRunner()


class TestVersion:
    """Tests for --version."""

    def test_version(self) -> None:
        """--version prints the version and exits 0."""
        result = runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestRulesCommand:
    """Tests for `tollgate rules`."""

    def test_no_rules(self, project_dir: Path) -> None:
        """With nothing configured the command says so."""
        result = runner.invoke(app, ["rules", "--cwd", str(project_dir)])

        assert result.exit_code == 0
        assert "No permission rules configured" in result.stdout

    def test_cli_rules_json(self, project_dir: Path) -> None:
        """Option rules appear as the cli source."""
        result = runner.invoke(
            app,
            ["rules", "--cwd", str(project_dir), "--deny", "Read(./.env)", "--allow", "Read", "--json"],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["rule_count"] == 2
        assert data["sources"][0]["tier"] == "cli"
        assert data["sources"][0]["deny"] == ["Read(./.env)"]
        assert data["sources"][0]["allow"] == ["Read"]

    def test_user_settings_listed(self, project_dir: Path, user_home: Path) -> None:
        """User settings files are listed with their tier."""
        (user_home / "settings.json").write_text(
            json.dumps({"permissions": {"ask": ["Bash(git push*)"]}})
        )

        result = runner.invoke(app, ["rules", "--cwd", str(project_dir), "--json"])

        data = json.loads(result.stdout)
        assert data["sources"][0]["tier"] == "user"
        assert data["sources"][0]["ask"] == ["Bash(git push*)"]

    def test_env_rules(self, project_dir: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Rules from TOLLGATE_DISALLOWED_TOOLS are included."""
        monkeypatch.setenv("TOLLGATE_DISALLOWED_TOOLS", '["WebFetch"]')

        result = runner.invoke(app, ["rules", "--cwd", str(project_dir), "--json"])

        assert json.loads(result.stdout)["sources"][0]["deny"] == ["WebFetch"]

    def test_malformed_option_rule_warns(self, project_dir: Path) -> None:
        """Malformed rules are reported as warnings, not errors."""
        result = runner.invoke(app, ["rules", "--cwd", str(project_dir), "--deny", "Bash(x", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["rule_count"] == 0
        assert len(data["warnings"]) == 1

    def test_rules_file(self, project_dir: Path, temp_dir: Path) -> None:
        """A YAML rules file is added to the cli tier."""
        rules_file = temp_dir / "rules.yaml"
        rules_file.write_text("deny:\n  - Bash(curl *)\n")

        result = runner.invoke(
            app, ["rules", "--cwd", str(project_dir), "--rules", str(rules_file), "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["sources"][0]["deny"] == ["Bash(curl *)"]

    def test_missing_rules_file(self, project_dir: Path, temp_dir: Path) -> None:
        """A missing rules file is an error."""
        result = runner.invoke(
            app,
            ["rules", "--cwd", str(project_dir), "--rules", str(temp_dir / "nope.yaml"), "--json"],
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"] is True
        assert data["error_type"] == "SettingsFileError"


class TestTestCommand:
    """Tests for `tollgate test`."""

    def test_denied(self, project_dir: Path) -> None:
        """A denied invocation exits 1 and names the rule."""
        result = runner.invoke(
            app,
            ["test", "Bash(npm publish)", "--cwd", str(project_dir), "--deny", "Bash(npm publish*)"],
        )

        assert result.exit_code == 1
        assert "deny" in result.stdout
        assert "Bash(npm publish*)" in result.stdout

    def test_allowed_json(self, project_dir: Path) -> None:
        """An allowed invocation exits 0 with the verdict as JSON."""
        result = runner.invoke(
            app,
            [
                "test",
                "Read(./src/app.py)",
                "--cwd",
                str(project_dir),
                "--allow",
                "Read(./src/**)",
                "--json",
            ],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["tool"] == "read"
        assert data["verdict"]["action"] == "allow"
        assert data["verdict"]["matched_rule"] == "Read(./src/**)"

    def test_ask_is_not_failure(self, project_dir: Path) -> None:
        """Ask verdicts exit 0; only deny fails."""
        result = runner.invoke(
            app,
            ["test", "Bash(git push)", "--cwd", str(project_dir), "--ask", "Bash(git push*)", "--json"],
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout)["verdict"]["action"] == "ask"


class TestCheckCommand:
    """Tests for `tollgate check`."""

    def test_allowed_json(self, project_dir: Path) -> None:
        """An ordinary command is allowed and audited once."""
        result = runner.invoke(app, ["check", "ls -la", "--cwd", str(project_dir), "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["result"]["outcome"] == "allowed"
        assert len(data["audit"]) == 1
        assert data["audit"][0]["source"] == "bash"

    def test_denylisted(self, project_dir: Path) -> None:
        """A denylisted command is blocked with exit code 1."""
        result = runner.invoke(app, ["check", "rm -rf /", "--cwd", str(project_dir)])

        assert result.exit_code == 1
        assert "blocked" in result.stdout

    def test_high_risk_non_interactive(self, project_dir: Path) -> None:
        """High-risk commands are blocked without --interactive."""
        result = runner.invoke(app, ["check", "sudo reboot", "--cwd", str(project_dir), "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["verdict"]["requires_confirmation"] is True
        assert data["result"]["outcome"] == "blocked"

    def test_high_risk_confirmed(self, project_dir: Path) -> None:
        """Answering yes at the prompt confirms the command."""
        result = runner.invoke(
            app,
            ["check", "sudo reboot", "--cwd", str(project_dir), "--interactive"],
            input="y\n",
        )

        assert result.exit_code == 0
        assert "confirmed" in result.stdout

    def test_internal_source(self, project_dir: Path) -> None:
        """Internal sources are judged without prompting."""
        result = runner.invoke(
            app,
            ["check", "curl https://example.com", "--source", "git-helper", "--cwd", str(project_dir), "--json"],
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["verdict"]["reason_code"] == "internal_not_allowlisted"

    def test_secret_redacted_in_json(self, project_dir: Path) -> None:
        """Secrets in the command are redacted from output."""
        result = runner.invoke(
            app,
            ["check", "export API_KEY=abc123secret", "--cwd", str(project_dir), "--json"],
        )

        data = json.loads(result.stdout)
        assert "abc123secret" not in data["command"]
        assert "abc123secret" not in data["verdict"]["normalized_command"]
        assert all("abc123secret" not in entry["command"] for entry in data["audit"])
