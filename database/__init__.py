"""Database module for managing the marketplace entity store.

This module handles:
- Database connection pool initialization
- Schema management
- Choosing the store backend (PostgreSQL or in-memory)
- Connection lifecycle
"""

import logging
from typing import Optional, Dict, Any
import backoff
import asyncpg
from urllib.parse import urlparse, parse_qs, urlunparse

from .exceptions import DatabaseError, DatabaseSchemaError
from .lib.schema_manager import SchemaManager
from .memory import MemoryStore
from .postgres import PostgresStore
from .store import Store, StoreSession

logger = logging.getLogger(__name__)

_pool: Optional[asyncpg.Pool] = None
_store: Optional[Store] = None

def _get_connection_kwargs(db_url: str) -> Dict[str, Any]:
    """Get connection kwargs from database URL.
    
    Args:
        db_url: Database connection URL
        
    Returns:
        Dict of connection parameters
    """
    parsed = urlparse(db_url)
    params = parse_qs(parsed.query)
    
    kwargs: Dict[str, Any] = {
        'server_settings': {
            'statement_timeout': '300000',  # 5 minutes
        }
    }
    
    # sslmode is understood by asyncpg through the DSN itself
    for key, values in params.items():
        if key not in ('sslmode', 'ssl'):
            kwargs[key] = values[0]
            
    return kwargs

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError),
    max_tries=5
)
async def create_database_if_not_exists(db_url: str) -> None:
    """Create the database if it doesn't exist.
    
    Args:
        db_url: Database connection URL
        
    Raises:
        Exception: If database creation fails after retries
    """
    parsed = urlparse(db_url)
    db_name = parsed.path.strip('/') or 'defaultdb'
    
    # Connect to the maintenance database to create the target
    base_url = urlunparse(parsed._replace(path='/defaultdb' if db_name != 'defaultdb' else '/postgres'))
    logger.info(f"Connecting to maintenance database to create {db_name} if needed")
    
    try:
        conn = await asyncpg.connect(base_url)
    except (OSError, asyncpg.exceptions.InvalidCatalogNameError) as e:
        logger.warning(f"Could not reach maintenance database, assuming {db_name} exists: {e}")
        return
        
    try:
        exists = await conn.fetchval(
            'SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = $1)',
            db_name
        )
        if not exists:
            await conn.execute(f'CREATE DATABASE "{db_name}"')
            logger.info(f"Created database {db_name}")
    except Exception as e:
        logger.error(f"Error creating database: {e}")
        raise
    finally:
        await conn.close()

@backoff.on_exception(
    backoff.expo,
    (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError),
    max_tries=5
)
async def init_db(db_url: Optional[str] = None, force_recreate: bool = False) -> None:
    """Initialize the database connection pool and schema.
    
    Args:
        db_url: Optional database URL. If not provided, will use settings.
        force_recreate: If True, drop and recreate all tables
        
    Raises:
        ValueError: If database URL is not provided
        Exception: If initialization fails after retries
    """
    global _pool, _store
    
    try:
        # Import here to avoid circular imports
        from config import settings_conf
        
        url = db_url or settings_conf.get('db_url')
        if not url:
            raise ValueError("Database URL not provided")
        
        await create_database_if_not_exists(url)
        
        conn_kwargs = _get_connection_kwargs(url)
        
        _pool = await asyncpg.create_pool(
            url,
            min_size=2,          # Minimum idle connections
            max_size=20,         # Maximum connections
            max_queries=10000,   # Reset connection after this many queries
            max_inactive_connection_lifetime=300.0,  # 5 minutes
            command_timeout=60.0,  # 1 minute command timeout
            **conn_kwargs
        )
        
        if force_recreate:
            logger.info("Force recreate requested. Dropping existing tables...")
            async with _pool.acquire() as conn:
                tables = await conn.fetch(
                    '''
                    SELECT tablename 
                    FROM pg_tables 
                    WHERE schemaname = 'public'
                    '''
                )
                for table in tables:
                    await conn.execute(
                        f'DROP TABLE IF EXISTS "{table["tablename"]}" CASCADE'
                    )
                
        await SchemaManager(_pool).initialize()
        _store = PostgresStore(_pool)
        
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

async def get_pool() -> asyncpg.Pool:
    """Get the database connection pool.
    
    Returns:
        The connection pool
        
    Raises:
        RuntimeError: If pool hasn't been initialized
    """
    if not _pool:
        await init_db()
    if not _pool:
        raise RuntimeError("Failed to initialize database pool")
    return _pool

async def get_store() -> Store:
    """Get the configured entity store.
    
    Used directly by the managers and as a FastAPI dependency.
    """
    global _store
    
    if _store is None:
        from config import settings_conf
        
        if settings_conf['store_backend'] == 'memory':
            logger.info("Using in-memory store")
            _store = MemoryStore()
        else:
            _store = PostgresStore(await get_pool())
    return _store

def set_store(store: Optional[Store]) -> None:
    """Install a store explicitly (``None`` resets to the configured backend)."""
    global _store
    _store = store

async def close() -> None:
    """Close the database connection pool."""
    global _pool, _store
    
    if _pool:
        await _pool.close()
        _pool = None
    _store = None

# Export public interface
__all__ = [
    'init_db', 'get_pool', 'get_store', 'set_store', 'close',
    'Store', 'StoreSession', 'MemoryStore', 'PostgresStore',
    'DatabaseError', 'DatabaseSchemaError'
]
