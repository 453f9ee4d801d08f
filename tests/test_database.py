"""Tests for the Database coordinator: persistence API, slots and async."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass

import pytest
from _support.entities import Account, Home, Log, Player, Rank, Team
from structlog.testing import capture_logs

from tablespine import (
    ConnectionState,
    Database,
    DatabaseConfig,
    ExecutionContext,
    SaveOptions,
    column,
)
from tablespine.core.errors import (
    ConfigurationError,
    InvalidValueError,
    MissingIdentityError,
    OptimisticConflictError,
    PersistenceError,
    UnknownColumnError,
)


@dataclass
class Broken:
    id: int | None = column(identity=True)
    bad: int | None = column(definition="int CHECK (")


@dataclass
class Legacy:
    id: int | None = column(identity=True)
    note: str | None = column(length=64)


# =============================================================================
# Registration
# =============================================================================


class TestRegistration:
    def test_prefix_applies(self, db_url: str):
        with Database(DatabaseConfig(url=db_url, prefix="app_")) as db:
            assert db.register_table(Player).name == "app_player"
            assert db.get_table(Player(name="x")).name == "app_player"

    def test_unregistered(self, db: Database):
        with pytest.raises(ConfigurationError, match="not registered"):
            db.get_table(Broken)

    def test_tables_in_registration_order(self, db: Database):
        assert [t.name for t in db.tables] == ["teams", "player", "log", "home", "account"]

    def test_register_again_returns_cached_descriptor(self, db: Database):
        teams = db.get_table(Team)
        assert db.register_table(Team) is teams
        assert db.register_tables(Team, Player) == [teams, db.get_table(Player)]
        assert db.find(Team).table is teams

    def test_create_all_tables_is_idempotent(self, db: Database):
        assert db.create_all_tables() is True

    def test_create_all_tables_failure(self, db: Database):
        db.register_table(Broken)
        with capture_logs() as logs:
            assert db.create_all_tables() is False
        assert any(e["event"] == "create_tables_failed" for e in logs)

    def test_create_column_if_missing(self, db: Database):
        db.execute_update("CREATE TABLE `legacy` (`id` INTEGER PRIMARY KEY AUTOINCREMENT)")
        db.register_table(Legacy)
        with capture_logs() as logs:
            assert db.create_column_if_missing(Legacy, "note") is True
            assert db.create_column_if_missing(Legacy, "note") is False
        events = [e["event"] for e in logs if e["event"].startswith("column_")]
        assert events == ["column_missing", "column_added", "column_exists"]
        db.save(Legacy(note="hello"))
        assert db.find(Legacy).find_values("note") == ["hello"]


# =============================================================================
# Saving
# =============================================================================


class TestSave:
    def test_generated_identity(self, db: Database):
        log = Log(player_name="Ann")
        assert db.save(log) == 1
        assert log.id is not None
        assert db.find_by_id(Log, log.id) == log

    def test_batch_identities(self, db: Database):
        teams = [Team(name="red"), Team(name="blue"), Team(name="green")]
        assert db.save(teams) == 3
        assert len({t.id for t in teams}) == 3
        for team in teams:
            assert db.find_by_id(Team, team.id) == team

    def test_save_again_updates(self, db: Database):
        account = Account(owner="ann", balance=5)
        db.save(account)
        account.balance = 9
        db.save(account)
        assert db.find(Account).count() == 1
        assert db.find_by_id(Account, account.id).balance == 9

    def test_upsert_on_unique_key(self, db: Database):
        first = Account(owner="ann", balance=5)
        db.save(first)
        second = Account(owner="ann", balance=7)
        db.save(second)
        assert second.id == first.id
        assert db.find(Account).count() == 1
        assert db.find_by_id(Account, first.id).balance == 7

    def test_column_subset(self, db: Database):
        account = Account(owner="ann", balance=5)
        db.save(account)
        account.balance = 50
        account.frozen = True
        db.save(account, columns=["balance"])
        stored = db.find_by_id(Account, account.id)
        assert (stored.balance, stored.frozen) == (50, False)

    def test_column_subset_must_exist(self, db: Database):
        with pytest.raises(UnknownColumnError):
            db.save(Account(owner="ann"), SaveOptions(columns=("nope",)))

    def test_plain_insert_rejects_duplicates(self, db: Database):
        db.insert(Team(name="red"))
        with pytest.raises(PersistenceError, match="UNIQUE"):
            db.insert(Team(name="red"))

    def test_insert_ignore_skips_duplicates(self, db: Database):
        db.insert(Team(name="red"))
        blue, red = Team(name="blue"), Team(name="red")
        assert db.insert([blue, red], ignore_duplicates=True) == 1
        assert blue.id is not None
        assert red.id is None
        assert db.find(Team).count() == 2

    def test_insert_ignore_with_duplicate_first(self, db: Database):
        db.insert(Team(name="red"))
        red, blue = Team(name="red"), Team(name="blue")
        assert db.insert([red, blue], ignore_duplicates=True) == 1
        assert red.id is None
        assert blue.id is not None
        stored = db.find(Team).eq("name", "blue").find_unique()
        assert stored.id == blue.id
        assert db.find(Team).eq("name", "red").count() == 1

    def test_save_ignore_same_unique_value_in_one_batch(self, db: Database):
        player = uuid.uuid4()
        first = Log(player_uuid=player, player_name="Ann")
        second = Log(player_uuid=player, player_name="Ann again")
        assert db.save([first, second], ignore_duplicates=True) == 1
        assert first.id is not None
        assert second.id is None
        stored = db.find(Log).find_list()
        assert [(row.id, row.player_name) for row in stored] == [(first.id, "Ann")]

    def test_empty_and_mixed_batches(self, db: Database):
        assert db.save([]) == 0
        with pytest.raises(InvalidValueError, match="Mixed"):
            db.save([Team(name="red"), Log()])
        with pytest.raises(InvalidValueError):
            db.save(42)

    def test_unsaved_reference(self, db: Database):
        with pytest.raises(MissingIdentityError):
            db.save(Player(name="Ann", team=Team(name="red")))

    def test_enum_and_uuid_round_trip(self, db: Database):
        home = Home(owner=uuid.uuid4(), name="base", rank=Rank.ADMIN)
        db.save(home)
        stored = db.find(Home).eq("owner", home.owner).find_unique()
        assert stored == home
        assert db.execute_query("SELECT `rank` FROM `home`") == [{"rank": "ADMIN"}]


# =============================================================================
# Update / delete
# =============================================================================


class TestUpdateDelete:
    def test_targeted_update(self, db: Database):
        player = Player(name="Ann", age=30)
        db.save(player)
        player.age = 31
        player.name = "Anna"
        assert db.update(player, "age") == 1
        stored = db.find_by_id(Player, player.id)
        assert (stored.name, stored.age) == ("Ann", 31)

    def test_optimistic_lock(self, db: Database):
        account = Account(owner="ann", balance=5)
        db.save(account)
        stale = db.find_by_id(Account, account.id)
        account.balance = 6
        db.update(account)
        assert account.version == 1
        stale.balance = 7
        with pytest.raises(OptimisticConflictError):
            db.update(stale)
        assert db.find_by_id(Account, account.id).balance == 6

    def test_delete(self, db: Database):
        teams = [Team(name="red"), Team(name="blue"), Team(name="green")]
        db.save(teams)
        assert db.delete(teams[:2]) == 2
        assert db.find(Team).find_values("name") == ["green"]
        assert db.delete([]) == 0

    def test_delete_unsaved(self, db: Database):
        with pytest.raises(MissingIdentityError):
            db.delete(Team(name="red"))


# =============================================================================
# Raw SQL
# =============================================================================


class TestRawSql:
    def test_execute_update_and_query(self, db: Database):
        assert db.execute_update("INSERT INTO `teams` (`name`) VALUES ('red'), ('blue')") == 2
        assert db.execute_query("SELECT `name` FROM `teams` ORDER BY `name`") == [
            {"name": "blue"},
            {"name": "red"},
        ]

    def test_errors_propagate(self, db: Database):
        with pytest.raises(PersistenceError):
            db.execute_query("SELECT * FROM `missing`")

    def test_debug_logs_sql(self, db_url: str):
        with Database(DatabaseConfig(url=db_url, debug=True)) as db:
            with capture_logs() as logs:
                db.execute_query("SELECT 1 AS one")
        sql_events = [e for e in logs if e["event"] == "sql"]
        assert sql_events[0]["sql"] == "SELECT 1 AS one"
        assert sql_events[0]["log_level"] == "info"


# =============================================================================
# Connections
# =============================================================================


class TestConnections:
    def test_state_transitions(self, db_url: str):
        db = Database(DatabaseConfig(url=db_url))
        assert db.state is ConnectionState.UNINITIALIZED
        db.execute_query("SELECT 1")
        assert db.state is ConnectionState.CONNECTED
        db.close()
        db.close()
        assert db.state is ConnectionState.CLOSED
        with pytest.raises(PersistenceError, match="closed"):
            db.execute_query("SELECT 1")

    def test_slots_are_separate(self, db: Database):
        primary = db.connection(ExecutionContext.PRIMARY)
        assert db.connection() is primary
        assert db.connection(ExecutionContext.ASYNC) is not primary

    def test_dead_connection_is_replaced(self, db: Database):
        db.save(Team(name="red"))
        old = db.connection()
        old.close()
        with capture_logs() as logs:
            fresh = db.connection()
        assert fresh is not old
        assert any(e["event"] == "connection_unhealthy" for e in logs)
        assert db.find(Team).count() == 1

    def test_foreign_thread_degrades_to_async(self, db: Database):
        seen: list[ExecutionContext] = []
        with capture_logs() as logs:
            thread = threading.Thread(target=lambda: seen.append(db.current_context()), name="intruder")
            thread.start()
            thread.join()
        assert seen == [ExecutionContext.ASYNC]
        assert logs[0]["event"] == "connection_from_foreign_thread"
        assert logs[0]["thread"] == "intruder"

    def test_repr(self, db: Database):
        assert repr(db) == "Database('test', sqlite, connected, tables=5)"


# =============================================================================
# Async
# =============================================================================


class TestAsync:
    def test_save_async(self, db: Database):
        counts: list[int] = []
        team = Team(name="red")
        assert db.save(team, run_async=True, callback=counts.append) is None
        db.wait_for_async_tasks()
        assert counts == [1]
        assert team.id is not None
        assert db.backlog_size == 0

    def test_work_runs_on_async_slot(self, db: Database):
        seen: list[tuple[str, ExecutionContext, bool]] = []

        def work(conn):
            seen.append(
                (
                    threading.current_thread().name,
                    db.current_context(),
                    conn is db.connection(ExecutionContext.ASYNC),
                )
            )
            return len(seen)

        db.run_async(work)
        db.wait_for_async_tasks()
        assert seen == [("test-async", ExecutionContext.ASYNC, True)]

    def test_callback_dispatcher(self, db_url: str):
        handoffs: list = []
        results: list = []
        with Database(DatabaseConfig(url=db_url), callback_dispatcher=handoffs.append) as db:
            db.execute_query_async("SELECT 1 AS one", results.append)
            db.wait_for_async_tasks()
            assert results == []
            assert len(handoffs) == 1
            handoffs[0]()
            assert results == [[{"one": 1}]]

    def test_failed_task_skips_callback(self, db: Database):
        results: list = []
        with capture_logs() as logs:
            db.execute_query_async("SELECT * FROM `missing`", results.append)
            db.execute_query_async("SELECT 1 AS one", results.append)
            db.wait_for_async_tasks()
        assert results == [[{"one": 1}]]
        assert any(e["event"] == "async_task_failed" for e in logs)

    def test_update_and_delete_async(self, db: Database):
        account = Account(owner="ann", balance=1)
        db.save(account)
        account.balance = 2
        results: list[int] = []
        db.update(account, "balance", run_async=True, callback=results.append)
        db.delete(account, run_async=True, callback=results.append)
        db.wait_for_async_tasks()
        assert results == [1, 1]
        assert db.find(Account).count() == 0

    def test_close_drains_queue(self, db_url: str):
        db = Database(DatabaseConfig(url=db_url))
        db.register_table(Team)
        db.create_all_tables()
        for i in range(20):
            db.save(Team(name=f"t{i}"), run_async=True)
        db.close()
        with Database(DatabaseConfig(url=db_url)) as again:
            again.register_table(Team)
            assert again.find(Team).count() == 20

    def test_memory_database_is_shared_between_slots(self, memory_db: Database):
        memory_db.save(Team(name="red"))
        names: list = []
        memory_db.find(Team).find_values_async("name", names.append)
        memory_db.wait_for_async_tasks()
        assert names == [["red"]]
