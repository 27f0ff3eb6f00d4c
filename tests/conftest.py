"""
Shared fixtures for sqlsim tests
"""

import pytest

from sqlsim import Database, execute
from api.server import app, reset_sessions


class Runner:
    """Feeds statements through execute() and keeps the latest snapshot"""

    def __init__(self, executor=None):
        self.db = Database.empty()
        self.executor = executor

    def __call__(self, sql):
        self.db, result = execute(sql, self.db, self.executor)
        return result

    def rows(self, table):
        return self.db.rows[table]


@pytest.fixture
def sql():
    return Runner()


@pytest.fixture
def emp(sql):
    sql("CREATE TABLE emp (id INT PRIMARY KEY, name VARCHAR(20), dept INT, salary REAL)")
    sql("INSERT INTO emp VALUES (1, 'Alice', 1, 100), (2, 'Bob', 1, 200), "
        "(3, 'Cara', 2, 150), (4, 'Dan', NULL, 50)")
    return sql


@pytest.fixture
def client():
    app.config['TESTING'] = True
    reset_sessions()
    with app.test_client() as client:
        yield client
