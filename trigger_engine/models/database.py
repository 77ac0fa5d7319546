"""
Database manager for the trigger engine PyDAL store.

Builds PyDAL connection strings from configuration and hands out
thread-local connections. Scan jobs and dispatch workers run on their own
threads, so every thread gets its own DAL instance with the tables defined.
"""

import os
import threading
from typing import Any, Callable, Dict, List, Optional

from pydal import DAL


class DatabaseManager:
    """
    Manages PyDAL database connections for the engine.

    One DAL per thread; every connection handed out is tracked so that
    shutdown can close all of them, not only the caller's.
    """

    # Supported database types mapping to PyDAL connection string prefixes
    DB_TYPE_MAP: Dict[str, str] = {
        'postgres': 'postgres://',
        'postgresql': 'postgres://',
        'mysql': 'mysql://',
        'mariadb': 'mysql://',  # MariaDB uses MySQL adapter
        'sqlite': 'sqlite://',
    }

    DEFAULT_PORTS: Dict[str, str] = {
        'postgres': '5432',
        'postgresql': '5432',
        'mysql': '3306',
        'mariadb': '3306',
        'sqlite': '0',
    }

    def __init__(
        self,
        db_type: str = 'sqlite',
        db_host: str = 'localhost',
        db_port: Optional[str] = None,
        db_name: str = 'trigger_engine',
        db_user: str = '',
        db_password: str = '',
        db_path: str = 'db/trigger_engine.db',
        pool_size: int = 10,
        migrate: bool = True,
        folder: Optional[str] = None,
        on_connect: Optional[Callable[[DAL], None]] = None,
    ) -> None:
        """
        Initialize database manager.

        Args:
            db_type: One of DB_TYPE_MAP keys
            db_host: Database host
            db_port: Database port (defaults per db_type)
            db_name: Database name
            db_user: Database user
            db_password: Database password
            db_path: SQLite file path, or ':memory:'
            pool_size: PyDAL connection pool size
            migrate: Let PyDAL create/alter tables
            folder: Folder for PyDAL migration files
            on_connect: Called with each new connection (defines tables)
        """
        self.db_type: str = db_type.lower()
        self._validate_db_type()
        self.db_host = db_host
        self.db_port: str = db_port or self.DEFAULT_PORTS[self.db_type]
        self.db_name = db_name
        self.db_user = db_user
        self.db_password = db_password
        self.db_path = db_path
        self.pool_size = pool_size
        self.migrate = migrate
        self.folder = folder
        self.on_connect = on_connect

        self._local = threading.local()
        self._connections: List[DAL] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config: Any,
        on_connect: Optional[Callable[[DAL], None]] = None,
    ) -> 'DatabaseManager':
        """
        Build a manager from a Flask config mapping.

        Args:
            config: Flask app.config (or any mapping with DB_* keys)
            on_connect: Called with each new connection

        Returns:
            DatabaseManager instance
        """
        return cls(
            db_type=config.get('DB_TYPE', 'sqlite'),
            db_host=config.get('DB_HOST', 'localhost'),
            db_port=config.get('DB_PORT') or None,
            db_name=config.get('DB_NAME', 'trigger_engine'),
            db_user=config.get('DB_USER', ''),
            db_password=config.get('DB_PASSWORD', ''),
            db_path=config.get('DB_PATH', 'db/trigger_engine.db'),
            pool_size=config.get('DB_POOL_SIZE', 10),
            migrate=config.get('DB_MIGRATE', True),
            folder=config.get('DB_MIGRATIONS_FOLDER'),
            on_connect=on_connect,
        )

    def _validate_db_type(self) -> None:
        """Validate DB_TYPE is supported."""
        if self.db_type not in self.DB_TYPE_MAP:
            supported: str = ', '.join(sorted(self.DB_TYPE_MAP.keys()))
            raise ValueError(
                f"Unsupported DB_TYPE: {self.db_type}. "
                f"Supported types: {supported}"
            )

    def build_connection_string(self) -> str:
        """
        Build PyDAL connection string based on DB_TYPE.

        Returns:
            Connection string for PyDAL
        """
        if self.db_type == 'sqlite':
            if self.db_path == ':memory:':
                return 'sqlite:memory'
            return f"sqlite://{self.db_path}"

        prefix = self.DB_TYPE_MAP[self.db_type]
        return (
            f"{prefix}{self.db_user}:{self.db_password}@"
            f"{self.db_host}:{self.db_port}/{self.db_name}"
        )

    def get_connection_params(self) -> Dict[str, Any]:
        """
        Get additional connection parameters for DAL.

        Returns:
            Dictionary of DAL constructor parameters
        """
        params: Dict[str, Any] = {
            'pool_size': 0 if self.db_type == 'sqlite' else self.pool_size,
            'migrate': self.migrate,
        }
        if self.folder and self.migrate and self.db_path != ':memory:':
            os.makedirs(self.folder, exist_ok=True)
            params['folder'] = self.folder
        return params

    def create_connection(self) -> DAL:
        """
        Create new PyDAL database connection.

        Returns:
            DAL instance with tables defined
        """
        db = DAL(self.build_connection_string(), **self.get_connection_params())
        if self.on_connect is not None:
            self.on_connect(db)
        with self._lock:
            self._connections.append(db)
        return db

    def get_thread_connection(self) -> DAL:
        """
        Get thread-local database connection.

        Creates new connection if none exists for current thread.

        Returns:
            Thread-local DAL instance
        """
        if getattr(self._local, 'db', None) is None:
            self._local.db = self.create_connection()
        return self._local.db

    def close_thread_connection(self) -> None:
        """Close and cleanup thread-local database connection."""
        db = getattr(self._local, 'db', None)
        if db is not None:
            with self._lock:
                self._connections = [c for c in self._connections if c is not db]
            db.close()
            self._local.db = None

    def cleanup_all_connections(self) -> None:
        """
        Close every connection handed out by this manager.

        Warning: Only call during application shutdown.
        """
        with self._lock:
            connections, self._connections = self._connections, []
        for db in connections:
            db.close()
        self._local = threading.local()

    @property
    def open_connections(self) -> int:
        """Number of connections currently handed out."""
        with self._lock:
            return len(self._connections)
