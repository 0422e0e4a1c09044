"""Database schema management module.

This module handles database schema versioning, validation, and migrations.
It supports creating and updating tables, indexes and foreign keys. The schema
definitions double as the column whitelist the stores validate queries against.
"""
import importlib
import logging
from functools import lru_cache
from pathlib import Path
from typing import Dict, Any, FrozenSet

from ..exceptions import DatabaseSchemaError

logger = logging.getLogger(__name__)

SCHEMA_DIR = Path(__file__).resolve().parent.parent / 'schema'

def load_schema_files(schema_dir: Path = SCHEMA_DIR) -> Dict[int, Dict[str, Any]]:
    """Load all schema version files.
    
    Returns:
        Dict mapping version numbers to schema definitions, sorted by version
        
    Raises:
        DatabaseSchemaError: If a schema file is malformed
    """
    schema_files = {}
    
    if not schema_dir.exists():
        return schema_files
        
    # Load all vX.py files
    for file in schema_dir.glob('v*.py'):
        try:
            version = int(file.stem[1:])  # Extract number from vX.py
        except ValueError:
            logger.warning(f"Invalid schema filename: {file}")
            continue
            
        try:
            module = importlib.import_module(f"database.schema.{file.stem}")
        except ImportError as e:
            raise DatabaseSchemaError(f"Failed to import schema {file}: {e}")
            
        if not hasattr(module, 'schema'):
            raise DatabaseSchemaError(
                f"Schema file {file} missing 'schema' definition"
            )
            
        schema = module.schema
        if schema['version'] != version:
            raise DatabaseSchemaError(
                f"Schema version mismatch in {file}: "
                f"Expected v{version}, got v{schema['version']}"
            )
            
        schema_files[version] = schema
        
    return dict(sorted(schema_files.items()))

@lru_cache(maxsize=1)
def table_columns() -> Dict[str, FrozenSet[str]]:
    """Map every table of the latest schema to its column names."""
    schema_files = load_schema_files()
    if not schema_files:
        raise DatabaseSchemaError("No valid schema files found in schema directory")
    latest = schema_files[max(schema_files)]
    return {
        table['name']: frozenset(col['name'] for col in table['columns'])
        for table in latest['tables']
    }

class SchemaManager:
    """Manages database schema versioning and migrations."""
    
    def __init__(self, pool, schema_dir: Path = SCHEMA_DIR) -> None:
        """Initialize schema manager.
        
        Args:
            pool: Database connection pool
            schema_dir: Directory containing schema version files
        """
        self.pool = pool
        self._schema_dir = Path(schema_dir)
        self.current_version = 0
    
    async def initialize(self) -> None:
        """Initialize schema management.
        
        Creates schema version table if it doesn't exist and runs any pending migrations.
        
        Raises:
            DatabaseSchemaError: If schema initialization fails or no valid schema files are found
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute('''
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INT8 PRIMARY KEY,
                        applied_at TIMESTAMP NOT NULL DEFAULT now()
                    )
                ''')
                
                row = await conn.fetchrow(
                    'SELECT version FROM schema_version ORDER BY version DESC LIMIT 1'
                )
                self.current_version = row['version'] if row else 0
                
            schema_files = load_schema_files(self._schema_dir)
            if not schema_files:
                raise DatabaseSchemaError("No valid schema files found in schema directory")
                
            await self._apply_migrations(schema_files)
                
        except DatabaseSchemaError:
            raise
        except Exception as e:
            logger.error(f"Schema initialization failed: {e}")
            raise DatabaseSchemaError(f"Failed to initialize schema: {e}")
    
    async def _apply_migrations(self, schema_files: Dict[int, Dict[str, Any]]) -> None:
        """Apply any pending schema migrations.
        
        Args:
            schema_files: Dict mapping version numbers to schema definitions
        """
        latest_version = max(schema_files.keys())
        if self.current_version >= latest_version:
            logger.info("Schema is up to date")
            return
            
        logger.info(
            f"Updating schema from version {self.current_version} to {latest_version}"
        )
        
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    # Fresh install creates the latest schema directly
                    if self.current_version == 0:
                        await self._create_fresh_schema(conn, schema_files[latest_version])
                        return
                        
                    for version in range(self.current_version + 1, latest_version + 1):
                        if version in schema_files:
                            await self._apply_version_migrations(conn, schema_files[version])
                            await conn.execute(
                                'INSERT INTO schema_version (version) VALUES ($1)',
                                version
                            )
                            logger.info(f"Successfully migrated to version {version}")
                
        except Exception as e:
            logger.error(f"Schema migration failed: {e}")
            raise DatabaseSchemaError(f"Failed to apply schema migrations: {e}")
    
    async def _create_fresh_schema(self, conn, schema: Dict[str, Any]) -> None:
        """Create all tables, then their foreign keys and indexes."""
        for table in schema.get('tables', []):
            await self._create_table(conn, table)
        
        for table in schema.get('tables', []):
            await self._add_constraints(conn, table)
            
        await conn.execute(
            'INSERT INTO schema_version (version) VALUES ($1)',
            schema['version']
        )
        logger.info(f"Successfully created fresh schema version {schema['version']}")

    async def _apply_version_migrations(self, conn, schema: Dict[str, Any]) -> None:
        for migration in schema.get('migrations', []):
            await conn.execute(migration)
    
    async def _create_table(self, conn, table: Dict[str, Any]) -> None:
        """Create a single table without foreign keys.
        
        Args:
            conn: Database connection
            table: Table definition dictionary
        """
        columns = []
        constraints = []
        
        for col in table['columns']:
            col_def = f"{col['name']} {col['type']}"
            
            if col.get('primary_key'):
                constraints.append(f"PRIMARY KEY ({col['name']})")
            elif col.get('unique'):
                constraints.append(f"UNIQUE ({col['name']})")
                
            if 'default' in col:
                col_def += f" DEFAULT {col['default']}"
                
            if col.get('nullable') is False:
                col_def += " NOT NULL"
                
            columns.append(col_def)
            
        table_def = ', '.join(columns + constraints)
        
        await conn.execute(f'''
            CREATE TABLE IF NOT EXISTS {table['name']} (
                {table_def}
            )
        ''')
        logger.info(f"Created table {table['name']}")
    
    async def _add_constraints(self, conn, table: Dict[str, Any]) -> None:
        """Add foreign keys and indexes to a table.
        
        Args:
            conn: Database connection
            table: Table definition dictionary
        """
        for fk in table.get('foreign_keys', []):
            await conn.execute(f'''
                ALTER TABLE {table['name']}
                ADD CONSTRAINT fk_{table['name']}_{fk['columns'][0]}
                FOREIGN KEY ({', '.join(fk['columns'])})
                REFERENCES {fk['references']}
            ''')
            logger.info(
                f"Added foreign key constraint to {table['name']} "
                f"referencing {fk['references']}"
            )
        
        for idx in table.get('indexes', []):
            unique = 'UNIQUE ' if idx.get('unique') else ''
            where = f" WHERE {idx['where']}" if 'where' in idx else ''
            await conn.execute(f'''
                CREATE {unique}INDEX IF NOT EXISTS {idx['name']}
                ON {table['name']}({', '.join(idx['columns'])})
                {where}
            ''')
            logger.info(f"Created index {idx['name']} on {table['name']}")
