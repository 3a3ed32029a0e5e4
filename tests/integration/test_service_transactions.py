"""Integration tests running services against an in-memory SQLite database."""

import pytest
from sqlalchemy import create_engine, text

from service_flow.io.transactions import SqlAlchemyTransactionProvider
from service_flow.services import Argument, Service, step


class InsertNote(Service):
    connection = Argument(object)
    body = Argument(str)

    @step
    def insert(self):
        self.connection.execute(text("INSERT INTO notes (body) VALUES (:body)"), {"body": self.body})

    @step
    def check(self):
        if self.body == "reject":
            self.fail("note rejected")
        elif self.body == "crash":
            raise RuntimeError("lost connection")


@pytest.fixture
def connection():
    engine = create_engine("sqlite:///:memory:")
    with engine.connect() as conn:
        conn.execute(text("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT NOT NULL)"))
        conn.commit()
        yield conn
    engine.dispose()


def _bodies(conn):
    return [row[0] for row in conn.execute(text("SELECT body FROM notes ORDER BY id"))]


@pytest.mark.integration
def test_successful_service_commits(connection):
    provider = SqlAlchemyTransactionProvider(connection)

    result = InsertNote.with_({"transaction_provider": provider}).run(
        connection=connection, body="hello"
    )

    assert result.successful()
    assert not connection.in_transaction()
    assert _bodies(connection) == ["hello"]


@pytest.mark.integration
def test_failed_service_rolls_back(connection):
    provider = SqlAlchemyTransactionProvider(connection)

    result = InsertNote.with_({"transaction_provider": provider}).run(
        connection=connection, body="reject"
    )

    assert result.failed()
    assert _bodies(connection) == []


@pytest.mark.integration
def test_crash_rolls_back(connection):
    provider = SqlAlchemyTransactionProvider(connection)

    with pytest.raises(RuntimeError, match="lost connection"):
        InsertNote.with_({"transaction_provider": provider}).run(
            connection=connection, body="crash"
        )

    assert _bodies(connection) == []


@pytest.mark.integration
def test_without_transactions_changes_are_left_to_the_caller(connection):
    provider = SqlAlchemyTransactionProvider(connection)

    result = InsertNote.with_(
        {"transaction_provider": provider, "use_transactions": False}
    ).run(connection=connection, body="reject")

    assert result.failed()
    # Autobegun transaction is still open and holds the insert
    assert connection.in_transaction()
    assert _bodies(connection) == ["reject"]
    connection.rollback()
