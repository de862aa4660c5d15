"""
Unit tests for error hierarchy.

Tests cover:
- Base TollgateError behavior
- Rule parse errors
- Settings file errors
- Policy denial and confirmation errors
- Error serialization
"""

import pytest

from tollgate.errors import (
    ERROR_CONFIG_FILE_NOT_FOUND,
    ERROR_CONFIG_PARSE_FAILED,
    ERROR_CONFIRMATION_CANCELED,
    ERROR_CONFIRMATION_INTERRUPTED,
    ERROR_POLICY_DENIED,
    ERROR_POLICY_RULE_DENIED,
    ERROR_RULE_EMPTY,
    ERROR_RULE_UNCLOSED_PAREN,
    ConfigError,
    ConfirmationError,
    PolicyDeniedError,
    RuleParseError,
    SettingsFileError,
    TollgateError,
)


class TestTollgateError:
    """Tests for base TollgateError."""

    def test_basic_error(self) -> None:
        """Create a basic error with message."""
        err = TollgateError(message="Something went wrong", code=9999)
        assert err.message == "Something went wrong"
        assert err.code == 9999
        assert err.suggestion is None
        assert err.context == {}

    def test_error_with_suggestion(self) -> None:
        """Error with suggestion text."""
        err = TollgateError(message="Failed", code=1, suggestion="Try again")
        assert "Suggestion: Try again" in str(err)

    def test_str_format(self) -> None:
        """String format includes code and message."""
        err = TollgateError(message="Test error", code=1234)
        assert str(err) == "[E1234] Test error"

    def test_repr_format(self) -> None:
        """Repr includes class name and details."""
        err = TollgateError(message="Test", code=1)
        assert repr(err).startswith("TollgateError(message='Test', code=1")

    def test_is_exception(self) -> None:
        """Errors can be raised and caught as TollgateError."""
        with pytest.raises(TollgateError):
            raise PolicyDeniedError(tool="bash", reason="nope")


class TestRuleParseError:
    """Tests for RuleParseError."""

    def test_message_with_raw(self) -> None:
        """The message quotes the rule and names the problem."""
        err = RuleParseError(raw="Bash(x", problem="unclosed parenthesis", code=ERROR_RULE_UNCLOSED_PAREN)
        assert err.message == 'Invalid permission rule "Bash(x": unclosed parenthesis'
        assert err.code == ERROR_RULE_UNCLOSED_PAREN
        assert err.context == {"raw": "Bash(x", "problem": "unclosed parenthesis"}

    def test_message_without_raw(self) -> None:
        """Empty rules produce a message without quotes."""
        err = RuleParseError(problem="empty")
        assert err.message == "Invalid permission rule: empty"
        assert err.code == ERROR_RULE_EMPTY
        assert err.suggestion == "Use the form Tool, Tool() or Tool(specifier)"


class TestSettingsFileError:
    """Tests for config errors."""

    def test_defaults(self) -> None:
        """The message names the file and the underlying problem."""
        err = SettingsFileError(path="/tmp/rules.yaml", underlying_error="bad indent")
        assert err.message == "Failed to load rules from /tmp/rules.yaml: bad indent"
        assert err.code == ERROR_CONFIG_PARSE_FAILED
        assert err.context["path"] == "/tmp/rules.yaml"
        assert err.context["underlying_error"] == "bad indent"
        assert isinstance(err, ConfigError)

    def test_explicit_code_kept(self) -> None:
        """An explicit code is not overwritten."""
        err = SettingsFileError(path="x", underlying_error="gone", code=ERROR_CONFIG_FILE_NOT_FOUND)
        assert err.code == ERROR_CONFIG_FILE_NOT_FOUND


class TestPolicyDeniedError:
    """Tests for PolicyDeniedError."""

    def test_rule_denial(self) -> None:
        """A denial naming a rule gets the rule-denied code."""
        err = PolicyDeniedError(tool="read", reason="denied", rule="Read(./.env)")
        assert err.message == "Blocked read: denied"
        assert err.code == ERROR_POLICY_RULE_DENIED
        assert err.context["rule"] == "Read(./.env)"

    def test_policy_denial(self) -> None:
        """A denial without a rule gets the generic code."""
        err = PolicyDeniedError(tool="bash", reason="Command matches denylist", reason_code="denylisted")
        assert err.code == ERROR_POLICY_DENIED
        assert err.context["reason_code"] == "denylisted"


class TestConfirmationError:
    """Tests for ConfirmationError."""

    def test_canceled(self) -> None:
        """Canceled confirmations have a fixed message."""
        err = ConfirmationError(command="rm -rf x", canceled=True)
        assert err.message == "Confirmation was canceled"
        assert err.code == ERROR_CONFIRMATION_CANCELED

    def test_interrupted(self) -> None:
        """Interrupted confirmations include the underlying error."""
        err = ConfirmationError(command="rm -rf x", underlying_error="EOF")
        assert err.message == "Confirmation interrupted: EOF"
        assert err.code == ERROR_CONFIRMATION_INTERRUPTED


class TestSerialization:
    """Tests for to_dict."""

    def test_to_dict(self) -> None:
        """to_dict exposes type, message, code, suggestion and context."""
        err = RuleParseError(raw="(x)", problem="missing tool name")
        data = err.to_dict()

        assert data["error_type"] == "RuleParseError"
        assert data["message"] == err.message
        assert data["code"] == err.code
        assert data["suggestion"] == err.suggestion
        assert data["context"]["raw"] == "(x)"
