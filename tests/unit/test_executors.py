"""
Unit tests for executor adapters.

The adapter contract is checked with an in-memory double; the SQLAlchemy
strategies run for real against a seeded SQLite file; psycopg strategies are
checked for the SQL they send.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from psycopg import sql
from sqlalchemy import bindparam, select

from querybench.exceptions import QueryError
from querybench.executors import close_adapters, create_adapters
from querybench.executors.async_executor import AsyncRawExecutor
from querybench.executors.builder_executor import BuilderExecutor, BuilderPreparedExecutor
from querybench.executors.factory import adapter_class
from querybench.executors.orm_executor import OrmExecutor
from querybench.executors.raw_executor import RawExecutor, RawPreparedExecutor
from querybench.northwind.schema import Customer, customers

from conftest import FakeAdapter


class FailingAdapter(FakeAdapter):
    def _execute(self, query, params):
        raise RuntimeError("server closed the connection")


@pytest.mark.unit
class TestAdapterContract:
    """Test the behaviour every adapter inherits"""

    def test_prepare_memoised(self):
        """Second prepare with the same name returns the same handle"""
        adapter = FakeAdapter()
        first = adapter.prepare("Customers-getInfo", "select 1")
        second = adapter.prepare("Customers-getInfo", "select 1")

        assert first is second
        assert adapter.calls.count(("prepare", "Customers-getInfo")) == 1

    def test_prepare_name_bound_to_other_query(self):
        """Reusing a name for different SQL is rejected"""
        adapter = FakeAdapter()
        adapter.prepare("Customers-getInfo", "select 1")

        with pytest.raises(QueryError):
            adapter.prepare("Customers-getInfo", "select 2")

    def test_prepare_unsupported(self):
        """Strategies without prepared statements raise QueryError"""
        adapter = FakeAdapter()
        adapter.supports_prepared = False

        with pytest.raises(QueryError) as exc_info:
            adapter.prepare("x", "select 1")

        assert exc_info.value.strategy == "raw"

    def test_driver_errors_wrapped(self):
        """Driver exceptions surface as QueryError naming the strategy"""
        adapter = FailingAdapter(strategy="orm")

        with pytest.raises(QueryError) as exc_info:
            adapter.execute("select 1")

        assert exc_info.value.strategy == "orm"
        assert isinstance(exc_info.value.cause, RuntimeError)

    def test_foreign_handle_rejected(self):
        """Handles of another adapter cannot be executed"""
        handle = FakeAdapter().prepare("q", "select 1")

        with pytest.raises(QueryError):
            FakeAdapter().execute_prepared(handle)

    def test_execute_all_returns_row_set_per_input(self):
        adapter = FakeAdapter(rows=2)

        row_sets = adapter.execute_all("q", [(1,), (2,), (3,)])

        assert [len(rows) for rows in row_sets] == [2, 2, 2]

    def test_close_idempotent(self):
        """close() releases once; later calls are no-ops"""
        adapter = FakeAdapter()
        adapter.close()
        adapter.close()

        assert adapter.closed
        assert adapter.close_count == 1
        with pytest.raises(QueryError):
            adapter.execute("select 1")

    def test_context_manager(self):
        with FakeAdapter() as adapter:
            adapter.execute("select 1")

        assert adapter.closed


@pytest.mark.unit
class TestFactory:
    """Test strategy to adapter mapping"""

    def test_adapter_classes(self):
        assert adapter_class("raw") is RawExecutor
        assert adapter_class("raw-prepared") is RawPreparedExecutor
        assert adapter_class("builder-prepared") is BuilderPreparedExecutor
        assert adapter_class("orm") is OrmExecutor

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            adapter_class("jdbc")

    def test_create_adapters_closes_on_failure(self, monkeypatch):
        """Adapters opened before a failure are closed"""
        opened = []

        def fake_create(strategy, instance, connection):
            if strategy == "orm":
                raise RuntimeError("connection refused")
            adapter = FakeAdapter(strategy=strategy)
            opened.append(adapter)
            return adapter

        monkeypatch.setattr("querybench.executors.factory.create_adapter", fake_create)

        with pytest.raises(RuntimeError):
            create_adapters({"raw": object(), "builder": object(), "orm": object()}, None)

        assert [a.strategy for a in opened] == ["raw", "builder"]
        assert all(a.closed for a in opened)

    def test_close_adapters_continues_after_failure(self):
        """One failing close does not stop the others"""
        broken = FakeAdapter(strategy="raw")
        broken._close = MagicMock(side_effect=RuntimeError("boom"))
        healthy = FakeAdapter(strategy="orm")

        close_adapters({"raw": broken, "orm": healthy})

        assert healthy.closed


@pytest.mark.unit
class TestRawExecutors:
    """Test the SQL the psycopg strategies send"""

    def setup_method(self):
        self.connection = MagicMock()
        self.cursor = self.connection.cursor.return_value.__enter__.return_value
        self.cursor.description = [("id",)]
        self.cursor.fetchall.return_value = [(1,), (2,)]

    def test_raw_execute(self):
        """Query and parameters go to the cursor unchanged"""
        adapter = RawExecutor(self.connection)

        rows = adapter.execute('select * from "customers" where "id" = $1', (7,))

        assert rows == [(1,), (2,)]
        self.cursor.execute.assert_called_once_with('select * from "customers" where "id" = $1', (7,))

    def test_raw_statement_without_result(self):
        """Statements without a result set return no rows"""
        self.cursor.description = None

        assert RawExecutor(self.connection).execute("set search_path to public") == []

    def test_raw_does_not_prepare(self):
        with pytest.raises(QueryError):
            RawExecutor(self.connection).prepare("q", "select 1")

    def test_prepared_issues_prepare_once(self):
        """PREPARE is sent on the first prepare() only"""
        adapter = RawPreparedExecutor(self.connection)

        adapter.prepare("Customers-getInfo", 'select * from "customers" where "id" = $1')
        adapter.prepare("Customers-getInfo", 'select * from "customers" where "id" = $1')

        assert self.connection.execute.call_count == 1
        statement = self.connection.execute.call_args[0][0]
        assert isinstance(statement, sql.Composed)

    def test_prepared_execute(self):
        """Executions send EXECUTE with the parameters"""
        adapter = RawPreparedExecutor(self.connection)
        handle = adapter.prepare("Customers-getInfo", 'select * from "customers" where "id" = $1')

        rows = adapter.execute_prepared(handle, (7,))

        assert rows == [(1,), (2,)]
        statement, params = self.cursor.execute.call_args[0]
        assert isinstance(statement, sql.Composed)
        assert params is None

    def test_close(self):
        RawExecutor(self.connection).close()

        self.connection.close.assert_called_once()


@pytest.mark.unit
class TestAsyncRawExecutor:
    """Test pool usage and loop ownership of the asyncpg strategy"""

    def setup_method(self):
        self.loop = asyncio.new_event_loop()
        self.pool = MagicMock()
        self.pool.release = AsyncMock()
        self.pool.close = AsyncMock()

    def teardown_method(self):
        if not self.loop.is_closed():
            self.loop.close()

    def test_execute_passes_parameters(self):
        """Parameters are spread into pool.fetch"""
        self.pool.fetch = AsyncMock(return_value=[(1,)])
        adapter = AsyncRawExecutor(self.pool, self.loop)

        rows = adapter.execute('select * from "orders" where "id" = $1', (10248,))

        assert rows == [(1,)]
        self.pool.fetch.assert_awaited_once_with('select * from "orders" where "id" = $1', 10248)

    def test_execute_all_concurrent_in_input_order(self):
        """Every fetch is in flight at once; results follow the inputs"""
        in_flight = {"now": 0, "peak": 0}

        async def fetch(query, order_id):
            in_flight["now"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
            # Later inputs finish first
            for _ in range(10252 - order_id):
                await asyncio.sleep(0)
            in_flight["now"] -= 1
            return [(order_id,)]

        self.pool.fetch = AsyncMock(side_effect=fetch)
        adapter = AsyncRawExecutor(self.pool, self.loop)
        order_ids = [(10248,), (10249,), (10250,), (10251,)]

        results = adapter.execute_all('select * from "orders" where "id" = $1', order_ids)

        assert results == [[(10248,)], [(10249,)], [(10250,)], [(10251,)]]
        assert in_flight["peak"] == len(order_ids)
        assert self.pool.fetch.await_count == len(order_ids)

    def test_prepare_acquires_one_connection(self):
        """All prepared statements share a single acquired connection"""
        conn = MagicMock()
        conn.prepare = AsyncMock(side_effect=lambda query, name: object())
        self.pool.acquire = AsyncMock(return_value=conn)
        adapter = AsyncRawExecutor(self.pool, self.loop)

        adapter.prepare("Orders-getById", 'select * from "orders" where "id" = $1')
        adapter.prepare("Customers-getInfo", 'select * from "customers" where "id" = $1')
        adapter.prepare("Orders-getById", 'select * from "orders" where "id" = $1')

        self.pool.acquire.assert_awaited_once()
        assert conn.prepare.await_count == 2

    def test_execute_all_with_handle_is_sequential(self):
        """A prepared handle runs one statement at a time on its connection"""
        statement = MagicMock()
        statement.fetch = AsyncMock(side_effect=lambda order_id: [(order_id,)])
        conn = MagicMock()
        conn.prepare = AsyncMock(return_value=statement)
        self.pool.acquire = AsyncMock(return_value=conn)
        self.pool.fetch = AsyncMock()
        adapter = AsyncRawExecutor(self.pool, self.loop)
        handle = adapter.prepare("Orders-getById", 'select * from "orders" where "id" = $1')

        results = adapter.execute_all(None, [(10248,), (10249,)], handle=handle)

        assert results == [[(10248,)], [(10249,)]]
        assert statement.fetch.await_count == 2
        self.pool.fetch.assert_not_awaited()

    def test_close_releases_connection_and_owned_loop_once(self):
        """Statement connection and pool are released; the owned loop closes once"""
        conn = MagicMock()
        conn.prepare = AsyncMock(return_value=MagicMock())
        self.pool.acquire = AsyncMock(return_value=conn)
        self.loop.close = MagicMock(wraps=self.loop.close)
        adapter = AsyncRawExecutor(self.pool, self.loop, owns_loop=True)
        adapter.prepare("Orders-getById", 'select * from "orders" where "id" = $1')

        adapter.close()
        adapter.close()

        self.pool.release.assert_awaited_once_with(conn)
        self.pool.close.assert_awaited_once()
        self.loop.close.assert_called_once()
        assert self.loop.is_closed()
        assert adapter.closed

    def test_close_leaves_borrowed_loop_open(self):
        """A loop the adapter does not own stays usable"""
        adapter = AsyncRawExecutor(self.pool, self.loop)

        adapter.close()

        self.pool.release.assert_not_awaited()
        self.pool.close.assert_awaited_once()
        assert not self.loop.is_closed()


@pytest.mark.unit
class TestSqlAlchemyExecutors:
    """Builder and ORM strategies against seeded SQLite"""

    def test_builder_statement_and_factory(self, sqlite_engine, northwind_inputs):
        """Statements and statement factories both execute"""
        with BuilderExecutor(sqlite_engine) as adapter:
            all_rows = adapter.execute(select(customers))
            one = adapter.execute(
                lambda: select(customers).where(customers.c.id == bindparam("id")), {"id": 3}
            )

        assert len(all_rows) == northwind_inputs.counts["customers"]
        assert len(one) == 1
        assert one[0].id == 3

    def test_builder_prepared_reuses_compiled_statement(self, sqlite_engine, northwind_inputs):
        """A handle executes with different parameters"""
        with BuilderPreparedExecutor(sqlite_engine) as adapter:
            handle = adapter.prepare(
                "Customers-getInfo-B", select(customers).where(customers.c.id == bindparam("id"))
            )
            first = adapter.execute_prepared(handle, {"id": 1})
            second = adapter.execute_prepared(handle, {"id": 2})

        assert handle.statement is not None
        assert [first[0][0], second[0][0]] == [1, 2]

    def test_builder_prepared_without_params(self, sqlite_engine, northwind_inputs):
        with BuilderPreparedExecutor(sqlite_engine) as adapter:
            handle = adapter.prepare("Customers-getAll-B", select(customers))
            rows = adapter.execute_prepared(handle)

        assert len(rows) == northwind_inputs.counts["customers"]

    def test_orm_select_and_callable(self, sqlite_engine, northwind_inputs):
        """ORM selects and (session, params) callables both return rows"""
        with OrmExecutor(sqlite_engine) as adapter:
            rows = adapter.execute(select(Customer))
            found = adapter.execute(lambda session, params: session.get(Customer, params["id"]), {"id": 5})
            missing = adapter.execute(lambda session, params: session.get(Customer, params["id"]), {"id": -1})

        assert len(rows) == northwind_inputs.counts["customers"]
        assert len(found) == 1
        assert found[0].id == 5
        assert missing == []

    def test_orm_identity_map_cleared(self, sqlite_engine, northwind_inputs):
        """Each execution loads from the database"""
        with OrmExecutor(sqlite_engine) as adapter:
            adapter.execute(select(Customer))

            assert len(adapter.session.identity_map) == 0

    def test_orm_errors_wrapped(self, sqlite_engine):
        """Missing table surfaces as QueryError"""
        with OrmExecutor(sqlite_engine) as adapter:
            with pytest.raises(QueryError) as exc_info:
                adapter.execute(select(Customer))

        assert exc_info.value.strategy == "orm"
