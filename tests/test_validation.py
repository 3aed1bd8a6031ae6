"""Tests for configuration update validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from gaiactl.errors import (
    DuplicateKeyError,
    InvalidEnumValueError,
    InvalidNumberError,
    InvalidUrlOrPathError,
    OutOfRangeError,
    PathNotFoundError,
    UnknownKeyError,
    ValidationError,
)
from gaiactl.models import ConfigUpdate
from gaiactl.rules import (
    BoundedFloat,
    EnumOf,
    ExistingPath,
    FreeText,
    NonNegativeInteger,
    PositiveInteger,
    UrlOrLocalFile,
    build_rule_table,
)
from gaiactl.validation import ConfigValidator


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Return a node base directory inside the temporary path."""
    path = tmp_path / "gaianet"
    path.mkdir()
    return path


@pytest.fixture
def validator(base_dir: Path) -> ConfigValidator:
    """Return a validator bound to the temporary base directory."""
    return ConfigValidator.for_base_dir(base_dir)


def test_rule_table_covers_recognised_keys(base_dir: Path) -> None:
    """The rule table binds every recognised key to its rule class."""
    table = build_rule_table(base_dir)

    assert isinstance(table["chat-url"], UrlOrLocalFile)
    assert isinstance(table["embedding-url"], UrlOrLocalFile)
    assert isinstance(table["snapshot"], UrlOrLocalFile)
    assert table["snapshot"].base_dir == base_dir
    for key in ("chat-ctx-size", "embedding-ctx-size", "port"):
        assert isinstance(table[key], NonNegativeInteger)
    assert isinstance(table["qdrant-limit"], PositiveInteger)
    assert table["qdrant-score-threshold"] == BoundedFloat(minimum=0.0, maximum=1.0)
    assert table["rag-policy"] == EnumOf(
        values=frozenset({"system-message", "last-user-message"})
    )
    assert isinstance(table["base"], ExistingPath)
    for key in ("prompt-template", "system-prompt", "rag-prompt", "reverse-prompt"):
        assert isinstance(table[key], FreeText)
    assert len(table) == 14


def test_rule_table_is_read_only(base_dir: Path) -> None:
    """The table cannot be mutated after construction."""
    table = build_rule_table(base_dir)

    with pytest.raises(TypeError):
        table["new-key"] = FreeText()  # type: ignore[index]


@pytest.mark.parametrize("value", ["0.0", "1.0", "0.5", "1", "0"])
def test_score_threshold_accepts_inclusive_bounds(validator: ConfigValidator, value: str) -> None:
    """Score thresholds on or inside [0, 1] are accepted."""
    validator.validate("qdrant-score-threshold", value)


@pytest.mark.parametrize("value", ["-0.01", "1.01", "inf", "-inf"])
def test_score_threshold_rejects_out_of_range(validator: ConfigValidator, value: str) -> None:
    """Score thresholds outside [0, 1] raise OutOfRangeError."""
    with pytest.raises(OutOfRangeError):
        validator.validate("qdrant-score-threshold", value)


@pytest.mark.parametrize("value", ["abc", "", "nan", " 0.5", "0_5"])
def test_score_threshold_rejects_non_numbers(validator: ConfigValidator, value: str) -> None:
    """Non-numeric thresholds raise InvalidNumberError."""
    with pytest.raises(InvalidNumberError):
        validator.validate("qdrant-score-threshold", value)


def test_port_accepts_integer(validator: ConfigValidator) -> None:
    """Ports accept plain base-10 integers."""
    validator.validate("port", "8080")
    validator.validate("port", "0")


@pytest.mark.parametrize("value", ["-1", "abc", "", "80.5", "4294967296", "1_000"])
def test_port_rejects_invalid_values(validator: ConfigValidator, value: str) -> None:
    """Negative, fractional, oversized and non-numeric ports are rejected."""
    with pytest.raises(InvalidNumberError):
        validator.validate("port", value)


def test_qdrant_limit_requires_positive(validator: ConfigValidator) -> None:
    """qdrant-limit rejects zero but accepts positive integers."""
    validator.validate("qdrant-limit", "1")
    with pytest.raises(InvalidNumberError, match="greater than 0"):
        validator.validate("qdrant-limit", "0")


def test_rag_policy_requires_exact_member(validator: ConfigValidator) -> None:
    """rag-policy accepts only the exact documented values."""
    validator.validate("rag-policy", "system-message")
    validator.validate("rag-policy", "last-user-message")
    for value in ("System-Message", "system-message ", "other"):
        with pytest.raises(InvalidEnumValueError):
            validator.validate("rag-policy", value)


def test_base_requires_existing_path(validator: ConfigValidator, tmp_path: Path) -> None:
    """base accepts existing paths only."""
    validator.validate("base", str(tmp_path))
    with pytest.raises(PathNotFoundError):
        validator.validate("base", str(tmp_path / "missing"))


@pytest.mark.parametrize(
    "value",
    [
        "https://huggingface.co/gaianet/model.gguf",
        "http://localhost:8080/v1",
    ],
)
def test_url_keys_accept_absolute_urls(validator: ConfigValidator, value: str) -> None:
    """URL-or-file keys accept well-formed http(s) URLs."""
    validator.validate("chat-url", value)


@pytest.mark.parametrize("value", ["https://", "http://host:notaport/", "https://[::1"])
def test_url_keys_reject_malformed_urls(validator: ConfigValidator, value: str) -> None:
    """Malformed URLs raise InvalidUrlOrPathError."""
    with pytest.raises(InvalidUrlOrPathError, match="Invalid URL structure"):
        validator.validate("embedding-url", value)


def test_url_keys_accept_file_under_base_dir(
    validator: ConfigValidator,
    base_dir: Path,
) -> None:
    """Existing files under the base directory are accepted."""
    snapshot = base_dir / "snapshots" / "default.snapshot.tar.gz"
    snapshot.parent.mkdir()
    snapshot.write_bytes(b"data")

    validator.validate("snapshot", str(snapshot))


def test_url_keys_reject_file_outside_base_dir(
    validator: ConfigValidator,
    tmp_path: Path,
) -> None:
    """Existing files outside the base directory are rejected."""
    outside = tmp_path / "elsewhere.tar.gz"
    outside.write_bytes(b"data")

    with pytest.raises(InvalidUrlOrPathError, match="local file under"):
        validator.validate("snapshot", str(outside))


def test_url_keys_reject_escape_via_parent_segments(
    validator: ConfigValidator,
    base_dir: Path,
    tmp_path: Path,
) -> None:
    """Paths that climb out of the base directory are resolved and rejected."""
    outside = tmp_path / "escape.gguf"
    outside.write_bytes(b"data")

    with pytest.raises(InvalidUrlOrPathError):
        validator.validate("chat-url", str(base_dir / ".." / "escape.gguf"))


def test_url_keys_reject_missing_file_and_directories(
    validator: ConfigValidator,
    base_dir: Path,
) -> None:
    """Missing files and directories under the base directory are rejected."""
    with pytest.raises(InvalidUrlOrPathError):
        validator.validate("snapshot", str(base_dir / "missing.tar.gz"))
    with pytest.raises(InvalidUrlOrPathError):
        validator.validate("snapshot", str(base_dir))


def test_free_text_accepts_anything(validator: ConfigValidator) -> None:
    """Prompt keys accept arbitrary text including quotes and newlines."""
    validator.validate("system-prompt", "You are a helpful assistant.\nBe 'brief'.")
    validator.validate("reverse-prompt", "")


def test_unknown_key_rejected(validator: ConfigValidator) -> None:
    """Keys outside the table raise UnknownKeyError carrying the key."""
    with pytest.raises(UnknownKeyError) as excinfo:
        validator.validate("model-name", "llama")

    assert excinfo.value.key == "model-name"
    assert excinfo.value.to_dict()["type"] == "unknown_key"


def test_validate_batch_accepts_valid_batch(validator: ConfigValidator) -> None:
    """A batch where every pair passes validates without error."""
    validator.validate_batch(
        [
            ConfigUpdate("chat-ctx-size", "4096"),
            ConfigUpdate("rag-policy", "last-user-message"),
            ConfigUpdate("qdrant-score-threshold", "0.5"),
        ]
    )


def test_validate_batch_accepts_empty_batch(validator: ConfigValidator) -> None:
    """An empty batch is trivially valid."""
    validator.validate_batch([])


def test_validate_batch_reports_first_error_in_input_order(
    validator: ConfigValidator,
) -> None:
    """The first failing pair is reported; later failures are not examined."""
    updates = [
        ConfigUpdate("port", "8080"),
        ConfigUpdate("port-typo", "1"),
        ConfigUpdate("qdrant-limit", "0"),
    ]

    with pytest.raises(ValidationError) as excinfo:
        validator.validate_batch(updates)

    assert isinstance(excinfo.value, UnknownKeyError)
    assert excinfo.value.key == "port-typo"


def test_validate_batch_rejects_duplicate_keys(validator: ConfigValidator) -> None:
    """Repeating a key in one batch is rejected."""
    with pytest.raises(DuplicateKeyError) as excinfo:
        validator.validate_batch([ConfigUpdate("port", "8080"), ConfigUpdate("port", "9090")])

    assert excinfo.value.value == "9090"


def test_validation_error_payload_includes_pair(validator: ConfigValidator) -> None:
    """Validation errors serialise the offending key and value."""
    with pytest.raises(OutOfRangeError) as excinfo:
        validator.validate("qdrant-score-threshold", "1.01")

    payload = excinfo.value.to_dict()
    assert payload["type"] == "out_of_range"
    assert payload["key"] == "qdrant-score-threshold"
    assert payload["value"] == "1.01"
