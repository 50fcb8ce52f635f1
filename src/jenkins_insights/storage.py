"""SQLite storage for connections and application state."""

import json
import os
from pathlib import Path

import aiosqlite
from simple_logger.logger import get_logger

from jenkins_insights.models import SECRET_FIELDS, ConnectionConfig
from jenkins_insights.utils import decrypt_data, encrypt_data

logger = get_logger(name=__name__, level=os.environ.get("LOG_LEVEL", "INFO"))

DB_PATH = Path(os.getenv("DB_PATH", "/data/insights.db"))

ACTIVE_CONNECTION_KEY = "active_connection_id"


async def init_db() -> None:
    """Initialize the database schema.

    Creates the connections and app_state tables if they do not exist.
    """
    logger.info(f"Initializing database at {DB_PATH}")
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS connections (
                id TEXT PRIMARY KEY,
                connection_json TEXT NOT NULL,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS app_state (
                key TEXT PRIMARY KEY,
                value TEXT
            )
        """)
        await db.commit()


def _encrypt_connection(connection: ConnectionConfig) -> dict:
    data = connection.model_dump(mode="json")
    for field in SECRET_FIELDS:
        if data.get(field):
            data[field] = encrypt_data(data[field])
    return data


def _decrypt_connection(data: dict) -> ConnectionConfig:
    for field in SECRET_FIELDS:
        if data.get(field):
            data[field] = decrypt_data(data[field])
    # Records saved without auth_type get it inferred by the model
    return ConnectionConfig.model_validate(data)


async def save_connection(connection: ConnectionConfig) -> None:
    """Save or update a connection, obfuscating its secrets.

    Args:
        connection: Connection to persist.
    """
    logger.debug(f"Saving connection {connection.id} ({connection.name})")
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """
            INSERT INTO connections (id, connection_json) VALUES (?, ?)
            ON CONFLICT(id) DO UPDATE SET connection_json = excluded.connection_json
            """,
            (connection.id, json.dumps(_encrypt_connection(connection))),
        )
        await db.commit()


async def delete_connection(connection_id: str) -> bool:
    """Delete a connection.

    Args:
        connection_id: Identifier of the connection.

    Returns:
        True if a connection was deleted.
    """
    async with aiosqlite.connect(DB_PATH) as db:
        cursor = await db.execute(
            "DELETE FROM connections WHERE id = ?", (connection_id,)
        )
        await db.commit()
        return cursor.rowcount > 0


async def list_connections() -> list[ConnectionConfig]:
    """Load all stored connections in insertion order.

    Records that no longer validate are logged and skipped.
    """
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            "SELECT id, connection_json FROM connections ORDER BY created_at, rowid"
        )
        rows = await cursor.fetchall()

    connections: list[ConnectionConfig] = []
    for row in rows:
        try:
            connections.append(_decrypt_connection(json.loads(row["connection_json"])))
        except ValueError:
            logger.exception(f"Skipping invalid stored connection {row['id']}")
    return connections


async def get_active_connection_id() -> str | None:
    async with aiosqlite.connect(DB_PATH) as db:
        cursor = await db.execute(
            "SELECT value FROM app_state WHERE key = ?", (ACTIVE_CONNECTION_KEY,)
        )
        row = await cursor.fetchone()
        return row[0] if row else None


async def set_active_connection_id(connection_id: str | None) -> None:
    """Store the active connection id, or clear it when None."""
    async with aiosqlite.connect(DB_PATH) as db:
        if connection_id is None:
            await db.execute(
                "DELETE FROM app_state WHERE key = ?", (ACTIVE_CONNECTION_KEY,)
            )
        else:
            await db.execute(
                "INSERT OR REPLACE INTO app_state (key, value) VALUES (?, ?)",
                (ACTIVE_CONNECTION_KEY, connection_id),
            )
        await db.commit()
