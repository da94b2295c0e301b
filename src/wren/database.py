"""
Connections to the database under test.

Part of the Wren compatibility harness. Licensed under MIT.
"""

import logging
import re

import pyodbc

from .errors import CollaboratorError, ConfigurationError

DEFAULT_DRIVER = "PostgreSQL Unicode"

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
VERSION_IN_BANNER_RE = re.compile(r"v\d+\.\d+(?:\.\d+)?(?:-[0-9A-Za-z.-]+)?")


class ConnectionManager:
    """Manages named ODBC connections with caching."""

    def __init__(self, shared_connections: dict[str, dict] | None = None):
        self._shared = shared_connections or {}
        self._cache: dict[str, pyodbc.Connection] = {}

    def get_connection(self, conn_info: dict) -> pyodbc.Connection:
        """Return a pyodbc connection (cached by connection string)."""
        conn_str = self._build_connection_string(conn_info)
        if conn_str not in self._cache:
            try:
                self._cache[conn_str] = pyodbc.connect(conn_str, timeout=30, autocommit=True)
            except pyodbc.Error as e:
                raise CollaboratorError(
                    f"Could not connect to {conn_info.get('server', '?')}: {e}"
                ) from e
        return self._cache[conn_str]

    def resolve(self, name_or_dict: str | dict) -> dict:
        """Resolve a connection name to its full config dict."""
        if isinstance(name_or_dict, str):
            if name_or_dict not in self._shared:
                raise ConfigurationError(
                    f"Connection '{name_or_dict}' not found in shared connections. "
                    f"Available: {list(self._shared.keys())}"
                )
            return self._shared[name_or_dict]
        return name_or_dict

    def close_all(self):
        for conn in self._cache.values():
            try:
                conn.close()
            except pyodbc.Error:
                logging.getLogger("wren").debug("Ignoring error while closing connection")
        self._cache.clear()

    @staticmethod
    def _build_connection_string(info: dict) -> str:
        if "server" not in info:
            raise ConfigurationError("Connection settings need a 'server'")
        driver = info.get("driver", DEFAULT_DRIVER)
        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={info['server']}",
            f"PORT={info.get('port', 26257)}",
            f"DATABASE={info.get('database', 'defaultdb')}",
            f"UID={info.get('username', 'root')}",
        ]
        if info.get("password"):
            parts.append(f"PWD={info['password']}")
        parts.append(f"SSLMODE={info.get('sslmode', 'disable')}")

        for k, v in info.get("odbc_extras", {}).items():
            parts.append(f"{k}={v}")

        return ";".join(parts)


def fetch_server_version(conn: pyodbc.Connection) -> str:
    """Full `SELECT version()` banner reported by the server."""
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT version()")
        row = cursor.fetchone()
    except pyodbc.Error as e:
        raise CollaboratorError(f"Could not read server version: {e}") from e
    return str(row[0]) if row else ""


def version_from_banner(banner: str) -> str | None:
    """Pull the vMAJOR.MINOR.PATCH token out of a version() banner."""
    m = VERSION_IN_BANNER_RE.search(banner)
    return m.group(0) if m else None


def create_database(conn: pyodbc.Connection, name: str):
    if not IDENTIFIER_RE.match(name):
        raise ConfigurationError(f"Not a valid database name: {name!r}")
    try:
        conn.cursor().execute(f"CREATE DATABASE IF NOT EXISTS {name}")
    except pyodbc.Error as e:
        raise CollaboratorError(f"Could not create database {name}: {e}") from e
