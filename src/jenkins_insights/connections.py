"""Registered connections, the active selection and their clients."""

import os
from collections import defaultdict

from simple_logger.logger import get_logger

from jenkins_insights import storage
from jenkins_insights.config import Settings
from jenkins_insights.jenkins import JenkinsClient
from jenkins_insights.models import ConnectionConfig

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))

DEFAULT_FOLDER = "Default"


class ConnectionManager:
    """Application state for Jenkins connections.

    Each connection gets its own :class:`JenkinsClient` (and so its own
    cache). Activating a connection always builds a fresh client.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._connections: dict[str, ConnectionConfig] = {}
        self._clients: dict[str, JenkinsClient] = {}
        self.active_id: str | None = None

    @property
    def connections(self) -> list[ConnectionConfig]:
        return list(self._connections.values())

    @property
    def active_connection(self) -> ConnectionConfig | None:
        return self._connections.get(self.active_id) if self.active_id else None

    def _new_client(self, connection: ConnectionConfig) -> JenkinsClient:
        return JenkinsClient(
            connection,
            ssl_verify=self._settings.jenkins_ssl_verify,
            timeout=self._settings.request_timeout,
        )

    async def load(self) -> None:
        """Load connections and the active selection from storage."""
        for connection in await storage.list_connections():
            self._connections[connection.id] = connection

        active_id = await storage.get_active_connection_id()
        if active_id in self._connections:
            self.active_id = active_id
        logger.info(
            f"Loaded {len(self._connections)} connection(s), active: {self.active_id}"
        )

    async def seed_from_settings(self) -> None:
        """Add the environment-configured connection unless its URL is registered."""
        if not self._settings.bootstrap_enabled:
            return
        url = self._settings.jenkins_url.rstrip("/")
        if any(c.url.rstrip("/") == url for c in self._connections.values()):
            return
        await self.add(
            ConnectionConfig(
                name=self._settings.jenkins_name,
                url=url,
                username=self._settings.jenkins_user,
                token=self._settings.jenkins_token.get_secret_value(),
            )
        )

    async def add(self, connection: ConnectionConfig) -> ConnectionConfig:
        """Register and persist a connection; the first one becomes active."""
        # Re-adding an id replaces the connection, so its old client is stale
        stale_client = self._clients.pop(connection.id, None)
        if stale_client:
            await stale_client.close()

        self._connections[connection.id] = connection
        await storage.save_connection(connection)
        logger.info(
            f"Added connection {connection.id} ({connection.name}, "
            f"{connection.auth_type.value})"
        )
        if self.active_id is None:
            await self.set_active(connection.id)
        return connection

    async def remove(self, connection_id: str) -> None:
        """Remove a connection.

        Raises:
            KeyError: If the connection is unknown.
        """
        if connection_id not in self._connections:
            raise KeyError(connection_id)

        del self._connections[connection_id]
        await storage.delete_connection(connection_id)
        client = self._clients.pop(connection_id, None)
        if client:
            await client.close()

        if self.active_id == connection_id:
            self.active_id = None
            await storage.set_active_connection_id(None)

    async def set_active(self, connection_id: str) -> JenkinsClient:
        """Make a connection active with a freshly built client.

        Raises:
            KeyError: If the connection is unknown.
        """
        connection = self._connections.get(connection_id)
        if connection is None:
            raise KeyError(connection_id)

        old_client = self._clients.pop(connection_id, None)
        if old_client:
            await old_client.close()

        client = self._new_client(connection)
        self._clients[connection_id] = client
        self.active_id = connection_id
        await storage.set_active_connection_id(connection_id)
        return client

    def get_client(self, connection_id: str | None = None) -> JenkinsClient:
        """Get the client for a connection, the active one by default.

        Raises:
            KeyError: If the connection is unknown.
            LookupError: If no id is given and no connection is active.
        """
        if connection_id is None:
            if self.active_id is None:
                raise LookupError("No active Jenkins connection")
            connection_id = self.active_id

        connection = self._connections.get(connection_id)
        if connection is None:
            raise KeyError(connection_id)

        client = self._clients.get(connection_id)
        if client is None:
            client = self._new_client(connection)
            self._clients[connection_id] = client
        return client

    async def test_connection(self, connection: ConnectionConfig) -> bool:
        """Test a connection with a throwaway client. Never raises."""
        try:
            client = self._new_client(connection)
        except ValueError as e:
            logger.warning(f"Cannot test connection {connection.name}: {e}")
            return False
        async with client:
            return await client.test_connection()

    def connections_by_folder(self) -> dict[str, list[ConnectionConfig]]:
        grouped: defaultdict[str, list[ConnectionConfig]] = defaultdict(list)
        for connection in self._connections.values():
            grouped[connection.folder or DEFAULT_FOLDER].append(connection)
        return dict(grouped)

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
