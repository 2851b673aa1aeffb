"""Unit tests for the LLM-backed classifier adapter."""

from unittest.mock import MagicMock

import pytest

from vigil.analyzers.classifier import (
    LLMClassifier,
    clamp_line_number,
    extract_snippet,
    parse_verdict,
)
from vigil.exceptions import ClassifierError
from vigil.llm.client import LLMClient, LLMError, LLMResponse
from vigil.models.analysis import SecurityRule, Severity
from vigil.models.llm_config import LLMConfig

SOURCE = "\n".join(
    [
        "import os",
        "",
        "def connect():",
        '    password = "hunter2"',
        "    return db.login('admin', password)",
        "",
        "def close():",
        "    pass",
    ]
)


def _client(content: str | None = None, error: Exception | None = None) -> MagicMock:
    """LLMClient double answering ``content`` (or raising ``error``)."""
    client = MagicMock(spec=LLMClient)
    client.config = LLMConfig()
    if error is not None:
        client.complete.side_effect = error
    else:
        client.complete.return_value = LLMResponse(content=content or "", model="llama3.2", usage={})
    return client


@pytest.fixture
def credentials_rule() -> SecurityRule:
    """Rule with a category the pre-filter knows."""
    return SecurityRule(
        id="creds",
        name="Hardcoded Credentials",
        category="credentials",
        severity=Severity.HIGH,
        description="Secrets in source",
        classifier_prompt="Check for hardcoded secrets.",
    )


class TestClassify:
    """Tests for LLMClassifier.classify()."""

    def test_vulnerable_verdict_builds_finding(self, credentials_rule: SecurityRule) -> None:
        """Test a vulnerable verdict becomes a Finding with the rule's severity."""
        client = _client(
            '{"vulnerable": true, "description": "Password literal", '
            '"recommendation": "Use a secret store", "lineNumber": 4}'
        )
        classifier = LLMClassifier(client)

        finding = classifier.classify(SOURCE, credentials_rule, location="src/db.py")

        assert finding is not None
        assert finding.rule_id == "creds"
        assert finding.rule_name == "Hardcoded Credentials"
        assert finding.severity == Severity.HIGH
        assert finding.location == "src/db.py"
        assert finding.line_number == 4
        assert finding.description == "Password literal"
        assert finding.recommendation == "Use a secret store"
        assert 'password = "hunter2"' in finding.code_snippet
        assert finding.file_content is None

    def test_not_vulnerable_returns_none(self, credentials_rule: SecurityRule) -> None:
        """Test a negative verdict yields no finding."""
        client = _client('{"vulnerable": false, "description": "", "recommendation": "", "lineNumber": 0}')

        assert LLMClassifier(client).classify(SOURCE, credentials_rule) is None

    def test_one_call_per_classification(self, credentials_rule: SecurityRule) -> None:
        """Test exactly one completion with JSON mode and both prompts."""
        client = _client('{"vulnerable": false}')
        classifier = LLMClassifier(client)

        classifier.classify(SOURCE, credentials_rule)

        client.complete.assert_called_once()
        args, kwargs = client.complete.call_args
        assert "Check for hardcoded secrets." in args[0]
        assert "4 |     password" in args[0]
        assert "Hardcoded Credentials" in kwargs["system_prompt"]
        assert kwargs["json_mode"] is True
        assert classifier.calls == 1

    def test_line_number_clamped(self, credentials_rule: SecurityRule) -> None:
        """Test out-of-range line numbers are clamped into the file."""
        client = _client(
            '{"vulnerable": true, "description": "d", "recommendation": "r", "lineNumber": 999}'
        )

        finding = LLMClassifier(client).classify(SOURCE, credentials_rule)

        assert finding is not None
        assert finding.line_number == 8

    def test_line_number_clamped_with_trailing_newline(
        self, credentials_rule: SecurityRule
    ) -> None:
        """Test a final newline does not add a line past the end of the file."""
        client = _client(
            '{"vulnerable": true, "description": "d", "recommendation": "r", "lineNumber": 99}'
        )

        finding = LLMClassifier(client, prefilter=False).classify(
            "a = 1\nb = 2\nc = 3\n", credentials_rule
        )

        assert finding is not None
        assert finding.line_number == 3
        assert finding.code_snippet == "a = 1\nb = 2\nc = 3"

    def test_transport_failure_raises_classifier_error(self, credentials_rule: SecurityRule) -> None:
        """Test LLM errors surface as ClassifierError carrying the rule id."""
        client = _client(error=LLMError("Connection failed to ollama"))

        with pytest.raises(ClassifierError, match="Connection failed") as exc_info:
            LLMClassifier(client).classify(SOURCE, credentials_rule)

        assert exc_info.value.rule_id == "creds"

    def test_malformed_response_raises(self, credentials_rule: SecurityRule) -> None:
        """Test a non-JSON answer is a ClassifierError, not a negative verdict."""
        client = _client("I think this code looks fine.")

        with pytest.raises(ClassifierError, match="no JSON"):
            LLMClassifier(client).classify(SOURCE, credentials_rule)

    def test_empty_content_rejected(self, credentials_rule: SecurityRule) -> None:
        """Test empty or whitespace-only content is refused before any call."""
        client = _client('{"vulnerable": false}')

        with pytest.raises(ValueError, match="must not be empty"):
            LLMClassifier(client).classify("  \n\t", credentials_rule)
        client.complete.assert_not_called()

    def test_empty_prompt_rejected(self) -> None:
        """Test a rule with an empty classifier prompt is refused."""
        rule = SecurityRule(
            id="r",
            name="R",
            category="misc",
            severity=Severity.LOW,
            description="",
            classifier_prompt="   ",
        )

        with pytest.raises(ValueError, match="empty classifier prompt"):
            LLMClassifier(_client()).classify(SOURCE, rule)

    def test_prefilter_skips_llm(self, credentials_rule: SecurityRule) -> None:
        """Test files with no category keyword never reach the LLM."""
        client = _client('{"vulnerable": true}')
        classifier = LLMClassifier(client)

        result = classifier.classify("def add(a, b):\n    return a + b\n", credentials_rule)

        assert result is None
        client.complete.assert_not_called()
        assert classifier.calls == 0

    def test_prefilter_disabled(self, credentials_rule: SecurityRule) -> None:
        """Test every file is sent when the pre-filter is off."""
        client = _client('{"vulnerable": false}')

        LLMClassifier(client, prefilter=False).classify("x = 1", credentials_rule)

        client.complete.assert_called_once()

    def test_should_classify_follows_prefilter(self, credentials_rule: SecurityRule) -> None:
        """Test should_classify reflects the keyword pre-filter and its switch."""
        plain = "def add(a, b):\n    return a + b\n"

        assert not LLMClassifier(_client(), prefilter=True).should_classify(plain, credentials_rule)
        assert LLMClassifier(_client(), prefilter=True).should_classify(SOURCE, credentials_rule)
        assert LLMClassifier(_client(), prefilter=False).should_classify(plain, credentials_rule)

    def test_invalid_snippet_window(self) -> None:
        """Test a snippet window below one line is refused."""
        with pytest.raises(ValueError, match="snippet_window"):
            LLMClassifier(_client(), snippet_window=0)

    def test_metadata(self) -> None:
        """Test metadata exposes model and call count."""
        metadata = LLMClassifier(_client()).get_metadata()

        assert metadata["name"] == "llm"
        assert metadata["model"] == "ollama/llama3.2"
        assert metadata["calls"] == 0


class TestParseVerdict:
    """Tests for parse_verdict()."""

    def test_bare_object(self) -> None:
        """Test a plain JSON object is parsed and normalized."""
        verdict = parse_verdict(
            '{"vulnerable": true, "description": " d ", "recommendation": "r", "lineNumber": "12"}',
            "r1",
        )

        assert verdict == {
            "vulnerable": True,
            "description": "d",
            "recommendation": "r",
            "lineNumber": 12,
        }

    def test_fenced_object(self) -> None:
        """Test a ```json fenced answer is accepted."""
        text = 'Here you go:\n```json\n{"vulnerable": false}\n```'

        assert parse_verdict(text, "r1") == {"vulnerable": False}

    def test_object_with_surrounding_text(self) -> None:
        """Test an object embedded in prose is extracted."""
        assert parse_verdict('Result: {"vulnerable": "false"} done', "r1") == {"vulnerable": False}

    def test_negative_verdict_needs_no_other_fields(self) -> None:
        """Test description and lineNumber may be absent when not vulnerable."""
        assert parse_verdict('{"vulnerable": false}', "r1") == {"vulnerable": False}

    @pytest.mark.parametrize(
        ("text", "message"),
        [
            ("", "empty response"),
            ("no json here", "no JSON"),
            ('{"vulnerable": tru}', "invalid JSON"),
            ('{"description": "x"}', "non-boolean"),
            ('{"vulnerable": "maybe"}', "non-boolean"),
            ('{"vulnerable": true, "description": "d"}', "missing fields"),
            (
                '{"vulnerable": true, "description": "d", "recommendation": "r", "lineNumber": "ten"}',
                "invalid lineNumber",
            ),
        ],
    )
    def test_malformed(self, text: str, message: str) -> None:
        """Test malformed verdicts raise ClassifierError."""
        with pytest.raises(ClassifierError, match=message):
            parse_verdict(text, "r1")

    def test_array_is_not_an_object(self) -> None:
        """Test a fenced JSON array is rejected."""
        with pytest.raises(ClassifierError, match="not a JSON object"):
            parse_verdict('```json\n[{"vulnerable": true}]\n```', "r1")


class TestSnippets:
    """Tests for clamp_line_number() and extract_snippet()."""

    @pytest.mark.parametrize(
        ("line", "count", "expected"),
        [(0, 10, 1), (-3, 10, 1), (5, 10, 5), (11, 10, 10), (4, 0, 1)],
    )
    def test_clamp(self, line: int, count: int, expected: int) -> None:
        """Test line numbers are clamped into [1, count]."""
        assert clamp_line_number(line, count) == expected

    def test_centered_window(self) -> None:
        """Test the snippet is centered on the reported line."""
        lines = [f"line{i}" for i in range(1, 21)]

        assert extract_snippet(lines, 10, window=5).split("\n") == [
            "line8", "line9", "line10", "line11", "line12"
        ]

    def test_window_shifts_at_start(self) -> None:
        """Test the window stays full near the first line."""
        lines = [f"line{i}" for i in range(1, 21)]

        assert extract_snippet(lines, 1, window=5).split("\n")[0] == "line1"
        assert len(extract_snippet(lines, 1, window=5).split("\n")) == 5

    def test_window_shifts_at_end(self) -> None:
        """Test the window stays full near the last line."""
        lines = [f"line{i}" for i in range(1, 21)]

        snippet = extract_snippet(lines, 20, window=5).split("\n")

        assert snippet == ["line16", "line17", "line18", "line19", "line20"]

    def test_short_file(self) -> None:
        """Test a file shorter than the window is returned whole."""
        assert extract_snippet(["a", "b"], 2, window=5) == "a\nb"
