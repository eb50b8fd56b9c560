"""MySQL catalog backed by ``information_schema.ROUTINES``.

Reads go through SQLAlchemy with bound parameters.  DDL goes through the raw
``aiomysql`` connection instead: the artifact is sent verbatim as one
multi-statement batch (the engine must be created with
``CLIENT.MULTI_STATEMENTS``, see :func:`procsync.state.database.get_engine`),
and every result set is drained so the pooled connection is returned clean.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from pymysql.err import MySQLError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from procsync.errors import CatalogQueryError, DdlApplyError
from procsync.parser.artifact import routine_name

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ROUTINE_FILTER = """
    FROM information_schema.ROUTINES
    WHERE ROUTINE_SCHEMA = DATABASE()
      AND ROUTINE_TYPE = 'PROCEDURE'
"""

_EXISTS_SQL = text(f"SELECT ROUTINE_NAME {_ROUTINE_FILTER} AND ROUTINE_NAME = :name")
_DEFINITION_SQL = text(f"SELECT ROUTINE_DEFINITION {_ROUTINE_FILTER} AND ROUTINE_NAME = :name")
_LIST_SQL = text(f"SELECT ROUTINE_NAME {_ROUTINE_FILTER}")


class MySQLCatalog:
    """Live procedure introspection and DDL application for MySQL.

    Implements the :class:`~procsync.catalog.base.CatalogInterface` protocol.

    Parameters
    ----------
    engine:
        Async engine connected to the live schema.
    timeout_seconds:
        Upper bound for every individual call.  A timed-out call fails; it is
        never retried here.
    """

    def __init__(self, engine: AsyncEngine, *, timeout_seconds: float = 30.0) -> None:
        self._engine = engine
        self._timeout = timeout_seconds

    # -- Catalog reads -------------------------------------------------------

    async def _query(self, coro: Awaitable[T], description: str) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except TimeoutError as exc:
            raise CatalogQueryError(f"Timed out after {self._timeout:g}s while {description}") from exc
        except SQLAlchemyError as exc:
            raise CatalogQueryError(f"Catalog query failed while {description}: {exc}") from exc

    async def _fetch_first(self, stmt: Any, params: dict[str, Any]) -> Any:
        async with self._engine.connect() as conn:
            result = await conn.execute(stmt, params)
            return result.first()

    async def _fetch_names(self) -> set[str]:
        async with self._engine.connect() as conn:
            result = await conn.execute(_LIST_SQL)
            return {row[0] for row in result.all()}

    async def procedure_exists(self, name: str) -> bool:
        row = await self._query(
            self._fetch_first(_EXISTS_SQL, {"name": routine_name(name)}),
            f"checking whether {name} exists",
        )
        return row is not None

    async def get_definition(self, name: str) -> str | None:
        row = await self._query(
            self._fetch_first(_DEFINITION_SQL, {"name": routine_name(name)}),
            f"reading the definition of {name}",
        )
        if row is None:
            return None
        definition = row[0]
        if isinstance(definition, bytes):
            definition = definition.decode("utf-8")
        return definition or None

    async def list_procedures(self) -> set[str]:
        return await self._query(self._fetch_names(), "listing procedures")

    # -- DDL -----------------------------------------------------------------

    async def _execute_batch(self, raw_sql: str) -> None:
        async with self._engine.connect() as conn:
            raw = await conn.get_raw_connection()
            driver_conn = raw.driver_connection
            async with driver_conn.cursor() as cursor:
                # No args: the driver sends the text untouched (no %-formatting).
                await cursor.execute(raw_sql)
                while await cursor.nextset():
                    pass
            await driver_conn.commit()

    async def apply_artifact(self, raw_sql: str) -> None:
        try:
            await asyncio.wait_for(self._execute_batch(raw_sql), timeout=self._timeout)
        except TimeoutError as exc:
            raise DdlApplyError(f"Timed out after {self._timeout:g}s applying procedure DDL") from exc
        except (SQLAlchemyError, MySQLError) as exc:
            # aiomysql raises pymysql errors directly on the raw connection.
            raise DdlApplyError(f"Database rejected procedure DDL: {exc}") from exc
