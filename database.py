"""
Database connection management and utilities
Async PostgreSQL operations using asyncpg

Every statement runs in autocommit mode on a pooled connection; this module
issues no multi-statement transactions. Store failures are logged with the
statement and its parameters and re-raised as StoreError.
"""

import asyncpg
import logging
from typing import Optional, List, Any
from contextlib import asynccontextmanager

from config import DatabaseConfig
from errors import StoreError
from utils.error_messages import enhance_error_message

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Manages PostgreSQL connection pool and provides database operations
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self):
        """Initialize connection pool"""
        if self.pool is not None:
            logger.warning("Connection pool already initialized")
            return

        # asyncpg expects: True (require SSL), False (disable SSL), or 'prefer'
        if self.config.ssl_mode == 'require':
            ssl_setting = True
        elif self.config.ssl_mode == 'disable':
            ssl_setting = False
        else:
            ssl_setting = 'prefer'

        try:
            self.pool = await asyncpg.create_pool(
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.user,
                password=self.config.password,
                min_size=self.config.min_pool_size,
                max_size=self.config.max_pool_size,
                command_timeout=self.config.command_timeout,
                ssl=ssl_setting,
            )
            logger.info(f"Connected to PostgreSQL at {self.config.host}:{self.config.port}/{self.config.database}")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def disconnect(self):
        """Close connection pool"""
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def acquire(self):
        """
        Acquire a connection from the pool.

        Usage:
            async with db.acquire() as conn:
                result = await conn.fetch("SELECT * FROM items")
        """
        if self.pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")

        async with self.pool.acquire() as connection:
            yield connection

    async def _run(self, method: str, query: str, args: tuple, **kwargs) -> Any:
        async with self.acquire() as conn:
            try:
                return await getattr(conn, method)(query, *args, **kwargs)
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                logger.error(f"Query failed: {e}\n  sql: {query}\n  params: {list(args)}", exc_info=True)
                raise StoreError(enhance_error_message(e)) from e

    async def execute(self, query: str, *args, timeout: Optional[float] = None) -> str:
        """
        Execute a query without returning results

        Returns:
            Status string (e.g., "UPDATE 2")
        """
        return await self._run("execute", query, args, timeout=timeout)

    async def fetch(self, query: str, *args, timeout: Optional[float] = None) -> List[asyncpg.Record]:
        """Fetch multiple rows"""
        return await self._run("fetch", query, args, timeout=timeout)

    async def fetchrow(self, query: str, *args, timeout: Optional[float] = None) -> Optional[asyncpg.Record]:
        """Fetch a single row, or None"""
        return await self._run("fetchrow", query, args, timeout=timeout)

    async def fetchval(self, query: str, *args, column: int = 0, timeout: Optional[float] = None) -> Any:
        """Fetch a single value"""
        return await self._run("fetchval", query, args, column=column, timeout=timeout)

    async def check_connection(self) -> bool:
        """
        Check if database connection is healthy

        Returns:
            True if connection is healthy
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except (StoreError, RuntimeError, OSError) as e:
            logger.error(f"Connection check failed: {e}")
            return False

    async def apply_schema(self, schema_file: str):
        """Apply the table definitions from schema.sql"""
        logger.info(f"Applying schema from {schema_file}...")
        with open(schema_file, 'r', encoding='utf-8') as f:
            schema_sql = f.read()
        await self.execute(schema_sql)
        logger.info("Schema applied successfully")


async def init_database(config: Optional[DatabaseConfig] = None) -> DatabaseConnection:
    """
    Create and connect a DatabaseConnection

    Args:
        config: Database configuration (uses environment if not provided)
    """
    if config is None:
        config = DatabaseConfig.from_environment()
    db = DatabaseConnection(config)
    await db.connect()
    return db
