"""Tests for authentication scheme selection."""

import pytest

from jenkins_insights.auth import (
    AuthType,
    BasicAuthCredentials,
    BasicCredentials,
    MissingCredentialsError,
    SsoCredentials,
    TokenCredentials,
    build_transport,
    credentials_from_connection,
    infer_auth_type,
)
from jenkins_insights.models import ConnectionConfig


class TestInferAuthType:
    """Tests for infer_auth_type priority order."""

    def test_username_and_token_is_basic(self) -> None:
        assert infer_auth_type(username="u", token="t") == AuthType.BASIC

    def test_token_alone_is_token(self) -> None:
        assert infer_auth_type(token="t") == AuthType.TOKEN

    def test_sso_token_is_sso(self) -> None:
        assert infer_auth_type(sso_token="s") == AuthType.SSO

    def test_cookie_auth_alone_is_sso(self) -> None:
        assert infer_auth_type(cookie_auth=True) == AuthType.SSO

    def test_username_and_password_is_basic_auth(self) -> None:
        assert infer_auth_type(username="u", password="p") == AuthType.BASIC_AUTH

    def test_nothing_defaults_to_basic(self) -> None:
        assert infer_auth_type() == AuthType.BASIC

    def test_token_wins_over_sso_and_password(self) -> None:
        """Username+token has priority over every other populated field."""
        result = infer_auth_type(
            username="u", token="t", password="p", sso_token="s", cookie_auth=True
        )
        assert result == AuthType.BASIC

    def test_sso_wins_over_password(self) -> None:
        result = infer_auth_type(username="u", password="p", sso_token="s")
        assert result == AuthType.SSO

    def test_empty_strings_are_not_credentials(self) -> None:
        assert infer_auth_type(username="", token="", password="p") == AuthType.BASIC


class TestCredentialsFromConnection:
    """Tests for building the credential variant."""

    def test_basic(self, basic_connection: ConnectionConfig) -> None:
        creds = credentials_from_connection(basic_connection)
        assert creds == BasicCredentials(username="testuser", token="testtoken")

    def test_token(self) -> None:
        conn = ConnectionConfig(url="https://j", token="abc")
        assert credentials_from_connection(conn) == TokenCredentials(token="abc")

    def test_sso(self) -> None:
        conn = ConnectionConfig(url="https://j", sso_token="sso", cookie_auth=True)
        assert credentials_from_connection(conn) == SsoCredentials(
            sso_token="sso", cookie_auth=True
        )

    def test_basic_auth(self) -> None:
        conn = ConnectionConfig(url="https://j", username="u", password="p")
        assert credentials_from_connection(conn) == BasicAuthCredentials(
            username="u", password="p"
        )

    def test_missing_fields_raise_before_network(self) -> None:
        """Credentials removed after validation are still caught."""
        conn = ConnectionConfig(url="https://j", username="u", token="t")
        conn = conn.model_copy(update={"token": None})
        with pytest.raises(MissingCredentialsError) as exc_info:
            credentials_from_connection(conn)
        assert exc_info.value.missing == ["token"]
        assert "basic" in str(exc_info.value)


class TestBuildTransport:
    """Tests for the transport descriptor."""

    def test_basic_uses_token_as_password(self) -> None:
        transport = build_transport(BasicCredentials("user", "tok"))
        assert transport.basic_auth == ("user", "tok")
        assert "Authorization" not in transport.headers
        assert transport.with_cookies is False

    def test_token_sets_bearer_header(self) -> None:
        transport = build_transport(TokenCredentials("tok"))
        assert transport.headers["Authorization"] == "Bearer tok"
        assert transport.basic_auth is None

    def test_sso_with_cookies(self) -> None:
        transport = build_transport(SsoCredentials("sso", cookie_auth=True))
        assert transport.headers["Authorization"] == "Bearer sso"
        assert transport.with_cookies is True

    def test_sso_cookie_only_has_no_bearer(self) -> None:
        transport = build_transport(SsoCredentials(None, cookie_auth=True))
        assert "Authorization" not in transport.headers
        assert transport.with_cookies is True

    def test_basic_auth_uses_password(self) -> None:
        transport = build_transport(BasicAuthCredentials("user", "pw"))
        assert transport.basic_auth == ("user", "pw")

    def test_content_type_always_json(self) -> None:
        for creds in (
            BasicCredentials("u", "t"),
            TokenCredentials("t"),
            SsoCredentials("s"),
            BasicAuthCredentials("u", "p"),
        ):
            assert build_transport(creds).headers["Content-Type"] == "application/json"
