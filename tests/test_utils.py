"""Tests for obfuscation, masking and formatting helpers."""

import base64

import pytest

from jenkins_insights.utils import (
    ENCRYPTION_PREFIX,
    decrypt_data,
    encrypt_data,
    format_duration,
    format_timestamp,
    mask_sensitive_data,
)


class TestEncryption:
    """Tests for encrypt_data / decrypt_data."""

    def test_round_trip(self) -> None:
        secret = "s3cr3t-tökén"  # pragma: allowlist secret
        stored = encrypt_data(secret)
        assert stored.startswith(ENCRYPTION_PREFIX)
        assert secret not in stored
        assert decrypt_data(stored) == secret

    def test_encrypt_empty(self) -> None:
        assert encrypt_data("") == ""

    def test_payload_is_base64_of_utf8(self) -> None:
        stored = encrypt_data("abc")
        assert stored == ENCRYPTION_PREFIX + base64.b64encode(b"abc").decode()

    def test_untagged_value_passes_through(self) -> None:
        assert decrypt_data("plain-token") == "plain-token"
        assert decrypt_data("") == ""

    def test_corrupt_payload_returns_empty(self) -> None:
        assert decrypt_data(f"{ENCRYPTION_PREFIX}not*base64!") == ""

    def test_non_utf8_payload_returns_empty(self) -> None:
        payload = base64.b64encode(b"\xff\xfe\xfd").decode()
        assert decrypt_data(f"{ENCRYPTION_PREFIX}{payload}") == ""


class TestMaskSensitiveData:
    """Tests for mask_sensitive_data."""

    def test_masks_quoted_assignments(self) -> None:
        masked = mask_sensitive_data('login password="abc123" token="xyz" done')
        assert "abc123" not in masked
        assert "xyz" not in masked
        assert 'password="****"' in masked
        assert 'token="****"' in masked
        assert masked.startswith("login ")
        assert masked.endswith(" done")

    def test_masks_unquoted_and_single_quoted_values(self) -> None:
        masked = mask_sensitive_data("SECRET=hunter2 credential='c-1'")
        assert "hunter2" not in masked
        assert "c-1" not in masked
        assert 'SECRET="****"' in masked

    def test_masks_compound_names(self) -> None:
        masked = mask_sensitive_data("export API_KEY=abcdef")
        assert "abcdef" not in masked

    def test_masks_bearer_header(self) -> None:
        masked = mask_sensitive_data("Authorization: Bearer eyJhbGciOi.payload")
        assert masked == "Authorization: Bearer ****"

    def test_masking_stays_on_its_line(self) -> None:
        masked = mask_sensitive_data('password="open\nnext line')
        assert masked.endswith("\nnext line")

    @pytest.mark.parametrize("text", [None, ""])
    def test_empty_input(self, text: str | None) -> None:
        assert mask_sensitive_data(text) == ""

    def test_text_without_secrets_unchanged(self) -> None:
        text = "Building in workspace /var/jenkins/ws\nFinished: SUCCESS"
        assert mask_sensitive_data(text) == text


class TestFormatting:
    @pytest.mark.parametrize(
        "milliseconds,expected",
        [
            (None, "0s"),
            (0, "0s"),
            (999, "0s"),
            (60_000, "1m 0s"),
            (3_661_000, "1h 1m 1s"),
            (7_200_000, "2h 0m 0s"),
        ],
    )
    def test_format_duration(self, milliseconds: int | None, expected: str) -> None:
        assert format_duration(milliseconds) == expected

    def test_format_timestamp(self) -> None:
        assert format_timestamp(1_700_000_000_000) == "2023-11-14T22:13:20+00:00"
        assert format_timestamp(None) == "N/A"
