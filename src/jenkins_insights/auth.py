"""Authentication scheme selection for Jenkins connections.

A connection's ``auth_type`` is resolved once into one of four credential
variants, and that variant into a :class:`Transport` describing exactly what
goes on the wire (headers, basic-auth tuple, cookie handling).
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from jenkins_insights.models import ConnectionConfig


class AuthType(StrEnum):
    BASIC = "basic"
    TOKEN = "token"
    SSO = "sso"
    BASIC_AUTH = "basic_auth"


class MissingCredentialsError(ValueError):
    """Raised when a connection lacks the credentials its auth type requires."""

    def __init__(self, auth_type: AuthType, missing: list[str]) -> None:
        self.auth_type = auth_type
        self.missing = missing
        super().__init__(
            f"Missing required credentials for {auth_type.value} authentication: "
            f"{', '.join(missing)}"
        )


@dataclass(frozen=True)
class BasicCredentials:
    """Username with API token, sent as HTTP Basic auth."""

    username: str
    token: str


@dataclass(frozen=True)
class TokenCredentials:
    token: str


@dataclass(frozen=True)
class SsoCredentials:
    sso_token: str | None
    cookie_auth: bool = False


@dataclass(frozen=True)
class BasicAuthCredentials:
    """Username with account password, sent as HTTP Basic auth."""

    username: str
    password: str


Credentials = BasicCredentials | TokenCredentials | SsoCredentials | BasicAuthCredentials


@dataclass(frozen=True)
class Transport:
    """Resolved request configuration for one connection."""

    headers: dict[str, str] = field(default_factory=dict)
    basic_auth: tuple[str, str] | None = None
    with_cookies: bool = False


def infer_auth_type(
    username: str | None = None,
    token: str | None = None,
    password: str | None = None,
    sso_token: str | None = None,
    cookie_auth: bool = False,
) -> AuthType:
    """Infer the auth type from whichever credential fields are populated.

    Priority: username+token, token, SSO token (or cookie auth),
    username+password. Falls back to BASIC.
    """
    if username and token:
        return AuthType.BASIC
    if token:
        return AuthType.TOKEN
    if sso_token or cookie_auth:
        return AuthType.SSO
    if username and password:
        return AuthType.BASIC_AUTH
    return AuthType.BASIC


def missing_credentials(connection: "ConnectionConfig") -> list[str]:
    """Return the credential fields required by the auth type but not set.

    Args:
        connection: Connection to check.

    Returns:
        Names of the missing fields, empty when the connection is complete.
    """
    auth_type = connection.auth_type
    if auth_type == AuthType.SSO:
        # Cookie-only SSO sessions carry no token
        if connection.sso_token or connection.cookie_auth:
            return []
        return ["sso_token"]

    required = {
        AuthType.BASIC: ("username", "token"),
        AuthType.TOKEN: ("token",),
        AuthType.BASIC_AUTH: ("username", "password"),
    }[auth_type]
    return [name for name in required if not getattr(connection, name)]


def credentials_from_connection(connection: "ConnectionConfig") -> Credentials:
    """Build the credential variant for a connection.

    Raises:
        MissingCredentialsError: If a required field is empty.
    """
    missing = missing_credentials(connection)
    if missing:
        raise MissingCredentialsError(connection.auth_type, missing)

    match connection.auth_type:
        case AuthType.BASIC:
            return BasicCredentials(connection.username, connection.token)
        case AuthType.TOKEN:
            return TokenCredentials(connection.token)
        case AuthType.SSO:
            return SsoCredentials(connection.sso_token, connection.cookie_auth)
        case AuthType.BASIC_AUTH:
            return BasicAuthCredentials(connection.username, connection.password)


def build_transport(credentials: Credentials) -> Transport:
    """Translate credentials into headers, basic auth and cookie handling."""
    headers = {"Content-Type": "application/json"}

    match credentials:
        case BasicCredentials(username=username, token=token):
            return Transport(headers=headers, basic_auth=(username, token))
        case TokenCredentials(token=token):
            headers["Authorization"] = f"Bearer {token}"
            return Transport(headers=headers)
        case SsoCredentials(sso_token=sso_token, cookie_auth=cookie_auth):
            if sso_token:
                headers["Authorization"] = f"Bearer {sso_token}"
            return Transport(headers=headers, with_cookies=cookie_auth)
        case BasicAuthCredentials(username=username, password=password):
            return Transport(headers=headers, basic_auth=(username, password))

    raise TypeError(f"Unsupported credentials: {type(credentials).__name__}")
