"""
Tests for settings validation and the logger factory.
"""

import logging

import pytest
from pydantic import ValidationError

from ragent.config.settings import Settings
from ragent.src.utils.logger import get_logger


def test_defaults_and_secret_masking() -> None:
    config = Settings(_env_file=None)

    assert config.VECTOR_DIMENSION == 768
    assert config.MONGO_URI is None
    assert "test-google-key" not in repr(config)
    assert config.GOOGLE_API_KEY.get_secret_value() == "test-google-key"


@pytest.mark.parametrize(
    ("field", "value"),
    [("CHUNK_SIZE", 50), ("CONTEXT_TOP_K", 0), ("CONTEXT_TOP_K", 101), ("VECTOR_DIMENSION", 0), ("MAX_WORKERS", 17)],
)
def test_out_of_range_values_are_rejected(field: str, value: int) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_missing_required_key_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PINECONE_INDEX")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_logger_has_single_stdout_handler() -> None:
    logger = get_logger("ragent.tests.logger")
    same = get_logger("ragent.tests.logger")

    assert logger is same
    assert len(logger.handlers) == 1
    assert logger.propagate is False
    assert logger.level == logging.DEBUG


def test_logger_explicit_level() -> None:
    assert get_logger("ragent.tests.quiet", level=logging.ERROR).level == logging.ERROR
