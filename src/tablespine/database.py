"""
Database handle: table registry, persistence API and the async coordinator.

Manifesto:
    One handle owns one configured database. It registers entity types,
    compiles their statements, and executes them on one of exactly two
    pinned connections: the primary slot (used by the thread that created
    the handle) and the async slot (used by the handle's single background
    worker). There is no pool and no cross-thread connection sharing.

Architecture:
    ::

        caller thread ──► save()/find()/update()/delete() ──► primary slot
                   │
                   └──► *_async / run_async ──► AsyncTaskQueue ──► worker
                                                                     │
                                                               async slot
                                                                     │
                                            callback_dispatcher(callback)

    Slot state: UNINITIALIZED ─first use─► CONNECTED ─close()─► CLOSED.
    Before reuse each slot is probed with ``is_valid()``; a dead connection
    is replaced transparently from the stored configuration.

    Callers may pass an explicit :class:`ExecutionContext`. Without one the
    slot is chosen by thread: the owner thread gets PRIMARY, the worker gets
    ASYNC, and any other thread is logged as misuse and degraded to ASYNC.

Examples:
    >>> db = Database(DatabaseConfig(url="sqlite:///players.db"))
    >>> db.register_table(Player)
    >>> db.create_all_tables()
    True
    >>> db.save(Player(name="Ann"))
    1
    >>> db.find(Player).eq("name", "Ann").find_unique()
    Player(id=1, name='Ann')
    >>> db.close()

Guardrails:
    ❌ DON'T: Share one handle's connection between two threads yourself
    ✅ DO: Use the *_async forms (or run_async) from background code

    ❌ DON'T: Expect an async callback when the task failed
    ✅ DO: Treat a missing callback as failure; the error is logged

Tags:
    database, coordinator, async, connection, persistence, table-spine

Doc-Types:
    - API Reference
    - Architecture Documentation
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from tablespine.core.connection import backend_of, create_connection, is_memory_url, shared_memory_url
from tablespine.core.dialect import Dialect, get_dialect
from tablespine.core.errors import (
    ConfigurationError,
    InvalidValueError,
    OptimisticConflictError,
    PersistenceError,
)
from tablespine.core.logging import get_logger
from tablespine.core.protocols import Connection
from tablespine.core.settings import DatabaseConfig
from tablespine.execution.async_queue import AsyncTaskQueue
from tablespine.orm.finder import Finder
from tablespine.orm.statements import Statement
from tablespine.orm.table import TableDescriptor, describe
from tablespine.orm.updater import Updater

logger = get_logger(__name__)

E = TypeVar("E")
T = TypeVar("T")

Callback = Callable[[Any], Any]
CallbackDispatcher = Callable[[Callable[[], Any]], Any]


class ConnectionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONNECTED = "connected"
    CLOSED = "closed"


class ExecutionContext(str, Enum):
    """Which pinned connection slot a call runs on."""

    PRIMARY = "primary"
    ASYNC = "async"


@dataclass(frozen=True)
class SaveOptions:
    """Options for :meth:`Database.save`.

    Attributes:
        ignore_duplicates: Insert-or-skip; rows colliding with a unique key
            are left untouched and keep a None identity.
        columns: Restrict the written/updated columns (field or storage names).
        update_on_conflict: Upsert; ignored when ``ignore_duplicates`` is set.
        run_async: Run on the async worker and return None immediately.
        callback: Receives the affected row count (async only).
    """

    ignore_duplicates: bool = False
    columns: tuple[str, ...] | None = None
    update_on_conflict: bool = True
    run_async: bool = False
    callback: Callable[[int], Any] | None = None


class Database:
    """A configured database handle with two pinned connections."""

    def __init__(
        self,
        config: DatabaseConfig | None = None,
        *,
        name: str = "default",
        callback_dispatcher: CallbackDispatcher | None = None,
    ):
        self.config = config or DatabaseConfig()
        self.name = name
        url = self.config.effective_url()
        if is_memory_url(url):
            # both slots must see the same in-memory database
            url = shared_memory_url(name)
        self.url = url
        self.dialect: Dialect = get_dialect(backend_of(url))
        self.callback_dispatcher = callback_dispatcher

        self._owner = threading.current_thread()
        self._slots: dict[ExecutionContext, Connection | None] = {
            ExecutionContext.PRIMARY: None,
            ExecutionContext.ASYNC: None,
        }
        self._state = ConnectionState.UNINITIALIZED
        self._tables: dict[type, TableDescriptor] = {}
        self._queue = AsyncTaskQueue(
            name=name,
            backlog_threshold=self.config.backlog_threshold,
            poll_interval=self.config.poll_interval,
        )

    # ── Connections ──────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is ConnectionState.CLOSED

    def _check_open(self) -> None:
        if self._state is ConnectionState.CLOSED:
            raise PersistenceError(f"Database '{self.name}' is closed").with_context(
                database=self.name
            )

    def current_context(self) -> ExecutionContext:
        """Slot for the calling thread (owner → PRIMARY, worker → ASYNC)."""
        current = threading.current_thread()
        if current is self._owner:
            return ExecutionContext.PRIMARY
        if self._queue.is_worker_thread():
            return ExecutionContext.ASYNC
        logger.warning(
            "connection_from_foreign_thread",
            database=self.name,
            thread=current.name,
        )
        return ExecutionContext.ASYNC

    def connection(self, context: ExecutionContext | None = None) -> Connection:
        """Healthy connection for ``context`` (inferred from the thread if None)."""
        self._check_open()
        if context is None:
            context = self.current_context()
        conn = self._slots[context]
        if conn is not None:
            if conn.is_valid(self.config.health_check_timeout):
                return conn
            logger.warning("connection_unhealthy", database=self.name, slot=context.value)
            self._close_slot(context)
        conn, info = create_connection(self.url)
        self._slots[context] = conn
        self._state = ConnectionState.CONNECTED
        logger.info(
            "database_connected",
            database=self.name,
            slot=context.value,
            backend=info.backend,
        )
        return conn

    def _close_slot(self, context: ExecutionContext) -> None:
        conn = self._slots[context]
        self._slots[context] = None
        if conn is None:
            return
        try:
            conn.close()
        except Exception as e:
            logger.warning(
                "connection_close_failed",
                database=self.name,
                slot=context.value,
                error=str(e),
            )

    def log_sql(self, sql: str, params: Sequence[Any] = ()) -> None:
        if self.config.debug:
            logger.info("sql", database=self.name, sql=sql, params=list(params))

    def _run(self, conn: Connection, stmt: Statement | str) -> None:
        if isinstance(stmt, str):
            self.log_sql(stmt)
            conn.execute(stmt)
        else:
            self.log_sql(stmt.sql, stmt.params)
            conn.execute(stmt.sql, stmt.params)

    # ── Tables ───────────────────────────────────────────────────────────

    def register_table(self, entity_type: type[E]) -> TableDescriptor:
        """Describe ``entity_type`` with this handle's prefix and dialect.

        The descriptor is built once; registering the type again returns it.
        """
        if entity_type in self._tables:
            return self._tables[entity_type]
        table = describe(
            entity_type,
            prefix=self.config.prefix,
            dialect=self.dialect,
            database=self,
        )
        self._tables[entity_type] = table
        return table

    def register_tables(self, *entity_types: type) -> list[TableDescriptor]:
        return [self.register_table(t) for t in entity_types]

    def get_table(self, entity: type | Any) -> TableDescriptor:
        """Descriptor for a registered entity type (or an instance of one)."""
        entity_type = entity if isinstance(entity, type) else type(entity)
        table = self._tables.get(entity_type)
        if table is None:
            raise ConfigurationError(
                f"{entity_type.__qualname__} is not registered with database '{self.name}'"
            ).with_context(entity=entity_type.__qualname__, database=self.name)
        return table

    table_for = get_table

    @property
    def tables(self) -> list[TableDescriptor]:
        """Registered tables, in registration order."""
        return list(self._tables.values())

    def create_all_tables(self) -> bool:
        """Create every registered table (idempotent). False if any statement failed."""
        try:
            for table in self._tables.values():
                for sql in table.create_table_statements():
                    self.execute_update(sql)
        except PersistenceError as e:
            logger.error("create_tables_failed", database=self.name, **e.to_dict())
            return False
        logger.info("tables_created", database=self.name, tables=[t.name for t in self.tables])
        return True

    def create_column_if_missing(self, entity_type: type, label: str) -> bool:
        """Add a missing column after its declared predecessor; True if added."""
        table = self.get_table(entity_type)
        conn = self.connection()
        probe = table.probe_statement(label)
        try:
            self._run(conn, probe)
            conn.fetchall()
        except PersistenceError:
            logger.info("column_missing", table=table.name, column=table.column(label).name)
        else:
            logger.info("column_exists", table=table.name, column=table.column(label).name)
            return False
        self._run(conn, table.add_column_statement(label))
        logger.info("column_added", table=table.name, column=table.column(label).name)
        return True

    # ── Queries ──────────────────────────────────────────────────────────

    def find(self, entity_type: type[E], context: ExecutionContext | None = None) -> Finder[E]:
        return Finder(self, self.get_table(entity_type), context)

    def find_by_id(
        self,
        entity_type: type[E],
        ident: int,
        context: ExecutionContext | None = None,
    ) -> E | None:
        return self.get_table(entity_type).load_by_id(self.connection(context), ident)

    def updater(self, entity_type: type[E], context: ExecutionContext | None = None) -> Updater[E]:
        return Updater(self, self.get_table(entity_type), context)

    # ── Writes ───────────────────────────────────────────────────────────

    def _batch(self, rows: Any) -> tuple[TableDescriptor | None, list[Any]]:
        if dataclasses.is_dataclass(rows) and not isinstance(rows, type):
            batch = [rows]
        elif isinstance(rows, Iterable):
            batch = list(rows)
        else:
            raise InvalidValueError(f"Expected an entity or a collection of entities, got {rows!r}")
        if not batch:
            return None, batch
        entity_type = type(batch[0])
        for row in batch:
            if type(row) is not entity_type:
                raise InvalidValueError(
                    f"Mixed entity types in one call: {entity_type.__qualname__} and "
                    f"{type(row).__qualname__}"
                )
        return self.get_table(entity_type), batch

    def _submit(
        self,
        run_async: bool,
        work: Callable[[Connection], T],
        callback: Callable[[T], Any] | None,
    ) -> T | None:
        if run_async:
            self.run_async(work, callback)
            return None
        return work(self.connection())

    def save(self, rows: Any, options: SaveOptions | None = None, **overrides: Any) -> int | None:
        """Insert or upsert one entity or a homogeneous collection.

        ``overrides`` are :class:`SaveOptions` fields. Returns the affected
        row count as reported by the driver (None when run asynchronously).
        Identities generated for rows saved with a None identity are written
        back into those rows.
        """
        opts = options or SaveOptions()
        if overrides:
            if "columns" in overrides and overrides["columns"] is not None:
                overrides["columns"] = tuple(overrides["columns"])
            opts = dataclasses.replace(opts, **overrides)
        table, batch = self._batch(rows)
        if table is None:
            return self._submit(opts.run_async, lambda conn: 0, opts.callback)
        if opts.columns is not None:
            table.columns_for(opts.columns)
        return self._submit(
            opts.run_async, lambda conn: self._save(conn, table, batch, opts), opts.callback
        )

    def _save(self, conn: Connection, table: TableDescriptor, rows: list[Any], opts: SaveOptions) -> int:
        if opts.ignore_duplicates and table.identity is not None and len(rows) > 1:
            # skipped rows return no key, so keys are matched one insert at a time
            return sum(self._save_batch(conn, table, [row], opts) for row in rows)
        return self._save_batch(conn, table, rows, opts)

    def _save_batch(
        self, conn: Connection, table: TableDescriptor, rows: list[Any], opts: SaveOptions
    ) -> int:
        update = opts.update_on_conflict and not opts.ignore_duplicates
        stmt = table.compiler.build_upsert(
            rows,
            ignore_duplicates=opts.ignore_duplicates,
            update_on_conflict=update,
            columns=opts.columns,
            include_identity=update or opts.ignore_duplicates,
        )
        self._run(conn, stmt)
        ident = table.identity
        if ident is None:
            return conn.rowcount
        pending = sum(1 for row in rows if ident.get(row) is None)
        keys = self.dialect.generated_keys(conn, ident.name, pending)
        returns_keys = bool(self.dialect.returning_clause(ident.name))
        affected = len(keys) if returns_keys else conn.rowcount
        table.assign_generated_keys(rows, keys, ignore_duplicates=opts.ignore_duplicates)
        return affected

    def insert(
        self,
        rows: Any,
        *,
        ignore_duplicates: bool = False,
        run_async: bool = False,
        callback: Callable[[int], Any] | None = None,
    ) -> int | None:
        """Plain insert (no update on conflict)."""
        return self.save(
            rows,
            SaveOptions(
                ignore_duplicates=ignore_duplicates,
                update_on_conflict=False,
                run_async=run_async,
                callback=callback,
            ),
        )

    def update(
        self,
        row: Any,
        *columns: str,
        run_async: bool = False,
        callback: Callable[[int], Any] | None = None,
    ) -> int | None:
        """``UPDATE`` one row by identity (all columns, or only ``columns``).

        Raises:
            OptimisticConflictError: The table has a version column and no row
                matched the row's identity and current version.
        """
        table = self.get_table(row)
        stmt = table.compiler.build_targeted_update(row, list(columns) or None)
        return self._submit(run_async, lambda conn: self._update(conn, table, row, stmt), callback)

    def _update(self, conn: Connection, table: TableDescriptor, row: Any, stmt: Statement) -> int:
        self._run(conn, stmt)
        count = conn.rowcount
        version = table.version
        if version is not None:
            if count <= 0:
                raise OptimisticConflictError(
                    f"Row {table.identity_value(row)} of `{table.name}` was changed or "
                    "deleted concurrently; reload it and retry"
                ).with_context(table=table.name, sql=stmt.sql)
            version.set(row, (version.get(row) or 0) + 1)
        return count

    def delete(
        self,
        rows: Any,
        *,
        run_async: bool = False,
        callback: Callable[[int], Any] | None = None,
    ) -> int | None:
        """Delete one entity or a collection by identity."""
        table, batch = self._batch(rows)
        if table is None:
            return self._submit(run_async, lambda conn: 0, callback)
        sql = table.compiler.build_delete(table.identity_value(row) for row in batch)

        def work(conn: Connection) -> int:
            if sql is None:
                return 0
            self._run(conn, sql)
            return conn.rowcount

        return self._submit(run_async, work, callback)

    # ── Raw SQL ──────────────────────────────────────────────────────────

    def _execute_update(self, conn: Connection, sql: str) -> int:
        self._run(conn, sql)
        return conn.rowcount

    def _execute_query(self, conn: Connection, sql: str) -> list[dict[str, Any]]:
        self._run(conn, sql)
        return conn.fetchall()

    def execute_update(self, sql: str) -> int:
        """Run parameter-free SQL; returns the driver's affected row count."""
        return self._execute_update(self.connection(), sql)

    def execute_query(self, sql: str) -> list[dict[str, Any]]:
        """Run a parameter-free query; rows come back as dicts."""
        return self._execute_query(self.connection(), sql)

    def execute_update_async(self, sql: str, callback: Callable[[int], Any] | None = None) -> None:
        self.run_async(lambda conn: self._execute_update(conn, sql), callback)

    def execute_query_async(
        self, sql: str, callback: Callable[[list[dict[str, Any]]], Any] | None = None
    ) -> None:
        self.run_async(lambda conn: self._execute_query(conn, sql), callback)

    # ── Async ────────────────────────────────────────────────────────────

    def schedule_async_task(self, task: Callable[[], Any]) -> None:
        """Enqueue a zero-argument task for the worker thread."""
        self._check_open()
        self._queue.submit(task)

    def run_async(
        self,
        work: Callable[[Connection], T],
        callback: Callable[[T], Any] | None = None,
    ) -> None:
        """Run ``work(async_connection)`` on the worker; hand the result to ``callback``."""

        def task() -> None:
            result = work(self.connection(ExecutionContext.ASYNC))
            if callback is None:
                return
            if self.callback_dispatcher is not None:
                self.callback_dispatcher(lambda: callback(result))
            else:
                callback(result)

        self.schedule_async_task(task)

    @property
    def backlog_size(self) -> int:
        return self._queue.backlog_size

    def wait_for_async_tasks(self) -> None:
        """Block until every queued async task has completed."""
        pending = self._queue.backlog_size
        if pending:
            logger.info("async_tasks_pending", database=self.name, pending=pending)
        self._queue.wait()

    # ── Lifecycle ────────────────────────────────────────────────────────

    def close(self) -> None:
        """Drain the async queue, then close both connections. Idempotent."""
        if self._state is ConnectionState.CLOSED:
            return
        self._queue.stop()
        for context in ExecutionContext:
            self._close_slot(context)
        self._state = ConnectionState.CLOSED
        logger.info("database_closed", database=self.name)

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Database({self.name!r}, {self.dialect.name}, {self._state.value}, tables={len(self._tables)})"


__all__ = [
    "CallbackDispatcher",
    "ConnectionState",
    "Database",
    "ExecutionContext",
    "SaveOptions",
]
