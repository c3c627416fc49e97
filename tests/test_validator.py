"""Tests for mailvault.validator."""

from __future__ import annotations

import pytest

from mailvault.errors import ValidationFailure
from mailvault.models import Notification
from mailvault.validator import client_state_matches, validate_batch

from tests.conftest import make_notification


def _batch(*client_states: str | None) -> list[Notification]:
    return [
        Notification.model_validate(make_notification(message_id=f"m{i}", client_state=cs))
        for i, cs in enumerate(client_states)
    ]


class TestClientStateMatches:
    def test_equal(self):
        assert client_state_matches("secret", "secret") is True

    def test_different_content(self):
        assert client_state_matches("secreT", "secret") is False

    def test_different_length(self):
        assert client_state_matches("secret-longer", "secret") is False

    def test_non_ascii(self):
        assert client_state_matches("clé", "clé") is True


class TestValidateBatch:
    def test_all_match(self):
        validate_batch(_batch("S", "S"), "S")

    def test_one_mismatch_rejects_whole_batch(self):
        with pytest.raises(ValidationFailure):
            validate_batch(_batch("S", "WRONG", "S"), "S")

    def test_no_secret_configured_passes(self):
        validate_batch(_batch("anything", None), None)
        validate_batch(_batch("anything"), "")

    def test_missing_client_state_passes(self):
        validate_batch(_batch(None, "S"), "S")

    def test_empty_client_state_passes(self):
        validate_batch(_batch(""), "S")

    def test_empty_batch(self):
        validate_batch([], "S")

    def test_error_does_not_leak_secret(self):
        with pytest.raises(ValidationFailure) as exc_info:
            validate_batch(_batch("WRONG"), "top-secret")
        assert "top-secret" not in str(exc_info.value)
