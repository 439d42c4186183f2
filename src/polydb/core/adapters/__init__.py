"""Database adapters -- one Capability Contract over eight engines.

Manifesto:
    A database browser should not care whether the thing it is browsing
    is a PostgreSQL schema, a MongoDB database or a Redis keyspace.  Every
    adapter answers the same calls (list namespaces, list storage units,
    page through rows, mutate rows, draw a relationship graph) and says
    ``UnsupportedOperationError`` when an engine has no meaningful answer.

    Each adapter is **import-guarded**: the driver is only required when a
    call connects, not at import time.  Install the corresponding extra::

        pip install polydb-core[postgresql]      # psycopg2-binary
        pip install polydb-core[mysql]           # mysql-connector-python
        pip install polydb-core[oracle]          # oracledb
        pip install polydb-core[mongodb]         # pymongo
        pip install polydb-core[redis]           # redis
        pip install polydb-core[elasticsearch]   # elasticsearch 8.x

Architecture::

    DatabaseAdapter (base.py)          Capability Contract, default "unsupported"
        |-- RelationalAdapter          SQLAlchemy Core, shared SQL behaviour
        |     |-- SQLiteAdapter        stdlib sqlite3 (always available)
        |     |-- PostgreSQLAdapter    psycopg2
        |     |-- MySQLAdapter         mysql.connector
        |     |     `-- MariaDBAdapter
        |     `-- OracleAdapter        oracledb
        |-- MongoDBAdapter             pymongo
        |-- RedisAdapter               redis
        `-- ElasticsearchAdapter       elasticsearch

    EngineRegistry (registry.py)       frozen DatabaseType -> adapter table
    SQLFilterCompiler (sql_filter.py)  filter tree -> parameterised WHERE
    graph.py                           FK / reference cardinality rules

Modules
-------
base            Abstract DatabaseAdapter + operation() decorator
types           DatabaseType enum + parse_database_type()
registry        EngineRegistry, create_default_registry(), default_registry()
relational      RelationalAdapter (SQLAlchemy Core)
sql_filter      Filter compiler for the SQL adapters
graph           Relationship classification
sqlite          SQLite adapter
postgresql      PostgreSQL adapter
mysql           MySQL / MariaDB adapters
oracle          Oracle adapter
mongodb         MongoDB adapter
redis           Redis adapter
elasticsearch   Elasticsearch adapter

Guardrails:
    ❌ ``conn.exec_driver_sql(f"SELECT * FROM t WHERE id = {user_input}")``
    ✅ ``compile_where(condition, columns, dialect)`` with bound parameters
    ❌ Importing optional drivers at module scope
    ✅ ``import_driver()`` at connect time with a clear ``ConfigError``
    ❌ ``adapter = PostgreSQLAdapter()`` in calling code
    ✅ ``adapter = default_registry().choose("postgresql")``

Tags:
    polydb, database, adapters, multi-engine, import-guarded,
    registry-pattern, sql, document, key-value, search

Doc-Types:
    package-overview, architecture-map, module-index
"""

from polydb.core.dialect import Dialect, get_dialect

from .base import DatabaseAdapter, import_driver, operation
from .elasticsearch import ElasticsearchAdapter
from .mongodb import MongoDBAdapter
from .mysql import MariaDBAdapter, MySQLAdapter
from .oracle import OracleAdapter
from .postgresql import PostgreSQLAdapter
from .redis import RedisAdapter
from .registry import EngineRegistry, create_default_registry, default_registry
from .relational import RelationalAdapter
from .sql_filter import SQLFilterCompiler, compile_where
from .sqlite import SQLiteAdapter
from .types import RELATIONAL_TYPES, DatabaseType, parse_database_type

__all__ = [
    # Types
    "DatabaseType",
    "RELATIONAL_TYPES",
    "parse_database_type",
    # Dialects
    "Dialect",
    "get_dialect",
    # Base classes
    "DatabaseAdapter",
    "RelationalAdapter",
    "import_driver",
    "operation",
    # Adapters
    "SQLiteAdapter",
    "PostgreSQLAdapter",
    "MySQLAdapter",
    "MariaDBAdapter",
    "OracleAdapter",
    "MongoDBAdapter",
    "RedisAdapter",
    "ElasticsearchAdapter",
    # Registry
    "EngineRegistry",
    "create_default_registry",
    "default_registry",
    # Filters
    "SQLFilterCompiler",
    "compile_where",
]
