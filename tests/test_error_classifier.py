"""Tests for the ErrorClassifier."""

import signal

import pytest

from conduit.core.errors import (
    ClassifiedError,
    ErrorCategory,
    ErrorClassifier,
    ErrorCode,
    Severity,
)


@pytest.fixture
def classifier() -> ErrorClassifier:
    return ErrorClassifier(program="gemini")


class TestTextRules:
    """Pattern-based classification."""

    @pytest.mark.parametrize(
        ("text", "code"),
        [
            ("bash: gemini: command not found", ErrorCode.CLI_NOT_FOUND),
            ("'gemini' is not recognized as an internal command", ErrorCode.CLI_NOT_FOUND),
            ("spawn gemini ENOENT", ErrorCode.CLI_NOT_FOUND),
            ("Error: unsupported CLI version 0.1", ErrorCode.CLI_VERSION_INCOMPATIBLE),
            ("You are not authenticated. Run gemini auth login.", ErrorCode.AUTH_NOT_AUTHENTICATED),
            ("Not logged in", ErrorCode.AUTH_NOT_AUTHENTICATED),
            ("OAuth token expired", ErrorCode.AUTH_TOKEN_EXPIRED),
            ("Invalid credentials supplied", ErrorCode.AUTH_INVALID_CREDENTIALS),
            ("403 Forbidden", ErrorCode.AUTH_PERMISSION_DENIED),
            ("Quota exceeded for project", ErrorCode.QUOTA_EXCEEDED),
            ("429 Too Many Requests", ErrorCode.RATE_LIMIT_EXCEEDED),
            ("rate-limit reached", ErrorCode.RATE_LIMIT_EXCEEDED),
            ("network connection failed", ErrorCode.NETWORK_CONNECTION_FAILED),
            ("Connection reset by peer", ErrorCode.NETWORK_CONNECTION_FAILED),
            ("request timed out", ErrorCode.EXEC_TIMEOUT),
            ("model returned invalid JSON", ErrorCode.RESPONSE_INVALID_JSON),
            ("empty response from server", ErrorCode.RESPONSE_EMPTY),
            ("output was malformed", ErrorCode.RESPONSE_MALFORMED),
        ],
    )
    def test_patterns(self, classifier: ErrorClassifier, text: str, code: ErrorCode) -> None:
        assert classifier.classify(text).code == code

    def test_case_insensitive(self, classifier: ErrorClassifier) -> None:
        assert classifier.classify("NETWORK CONNECTION FAILED").code == (
            ErrorCode.NETWORK_CONNECTION_FAILED
        )

    def test_specific_beats_generic(self, classifier: ErrorClassifier) -> None:
        """Authentication wins over the generic network rule."""
        error = classifier.classify("connection refused: not authenticated")
        assert error.code == ErrorCode.AUTH_NOT_AUTHENTICATED

    def test_custom_program_name(self) -> None:
        classifier = ErrorClassifier(program="my-cli")
        assert classifier.classify("sh: my-cli: not found").code == ErrorCode.CLI_NOT_FOUND


class TestExitCodes:
    """Classification from exit codes when no text rule matches."""

    def test_exit_127_is_not_found(self, classifier: ErrorClassifier) -> None:
        assert classifier.classify("", exit_code=127).code == ErrorCode.CLI_NOT_FOUND

    def test_signal_is_crash(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("", exit_code=-signal.SIGSEGV)
        assert error.code == ErrorCode.EXEC_PROCESS_CRASHED
        assert "SIGSEGV" in error.message
        assert error.retryable

    def test_nonzero_exit_is_command_failed(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("something odd\nmore", exit_code=2)
        assert error.code == ErrorCode.EXEC_COMMAND_FAILED
        assert error.message.endswith("with exit code 2: something odd")
        assert error.exit_code == 2

    def test_no_information_is_unknown(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("")
        assert error.code == ErrorCode.UNKNOWN_ERROR
        assert error.category == ErrorCategory.UNKNOWN
        assert error.technical_details is None

    def test_timeout_context(self, classifier: ErrorClassifier) -> None:
        assert classifier.classify("", context="timeout").code == ErrorCode.EXEC_TIMEOUT

    def test_deterministic(self, classifier: ErrorClassifier) -> None:
        first = classifier.classify("network down", exit_code=1)
        second = classifier.classify("network down", exit_code=1)
        assert first == second


class TestExceptions:
    """classify_exception()."""

    def test_file_not_found(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify_exception(FileNotFoundError(2, "No such file", "gemini"))
        assert error.code == ErrorCode.CLI_NOT_FOUND
        assert error.message.startswith("gemini executable not found")

    def test_permission_error(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify_exception(PermissionError(13, "Permission denied"))
        assert error.code == ErrorCode.AUTH_PERMISSION_DENIED
        assert error.category == ErrorCategory.PERMISSION

    def test_memory_error(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify_exception(MemoryError())
        assert error.code == ErrorCode.EXEC_RESOURCE_EXHAUSTED
        assert error.severity == Severity.CRITICAL

    def test_other_exception_uses_text(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify_exception(ConnectionResetError("connection reset"))
        assert error.code == ErrorCode.NETWORK_CONNECTION_FAILED


class TestDetails:
    """Technical details and truncation."""

    def test_details_truncated(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("network " + "x" * 5000)
        assert error.technical_details is not None
        assert len(error.technical_details) == 2000

    def test_result_is_immutable(self, classifier: ErrorClassifier) -> None:
        error = classifier.classify("network down")
        with pytest.raises(AttributeError):
            error.code = ErrorCode.UNKNOWN_ERROR  # type: ignore[misc]

    def test_user_facing_rendering(self, classifier: ErrorClassifier) -> None:
        user = classifier.classify("network down").format_for_user()
        assert user.title == "Network Error"
        assert user.message == "The Gemini CLI could not connect to its service."
        assert user.remediation[0] == "Check your internet connection"
        assert user.severity == "medium"
        assert isinstance(ClassifiedError.from_code(ErrorCode.UNKNOWN_ERROR), ClassifiedError)
