"""
Tests for the REST API
"""

import pytest

from api.server import app, sessions


def run(client, query, db='playground'):
    return client.post(f'/api/databases/{db}/execute', json={'query': query})


# ==================== system ====================

def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    data = response.get_json()
    assert data['status'] == 'healthy'
    assert data['database_count'] == 1


def test_info_lists_statements(client):
    data = client.get('/api/info').get_json()
    assert 'SELECT' in data['statements']
    assert 'POST /api/databases/<db>/execute' in data['endpoints']['queries']


def test_unknown_endpoint(client):
    response = client.get('/api/nothing-here')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'Endpoint not found'


def test_method_not_allowed(client):
    response = client.put('/api/health')
    assert response.status_code == 405
    assert response.get_json()['success'] is False


# ==================== databases ====================

def test_default_database_exists(client):
    data = client.get('/api/databases').get_json()
    assert data['databases'] == ['playground']
    assert data['count'] == 1


def test_create_and_delete_database(client):
    response = client.post('/api/databases', json={'name': 'school'})
    assert response.status_code == 200
    assert 'school' in sessions

    response = client.post('/api/databases', json={'name': 'school'})
    assert response.status_code == 400
    assert 'already exists' in response.get_json()['error']

    response = client.delete('/api/databases/school')
    assert response.status_code == 200
    assert client.delete('/api/databases/school').status_code == 404


def test_create_database_requires_name(client):
    response = client.post('/api/databases', json={})
    assert response.status_code == 400


def test_databases_are_isolated(client):
    client.post('/api/databases', json={'name': 'other'})
    run(client, "CREATE TABLE t (a INT)", db='other')
    assert client.get('/api/databases/other/tables').get_json()['tables'] == ['t']
    assert client.get('/api/databases/playground/tables').get_json()['tables'] == []


def test_database_info(client):
    run(client, "CREATE TABLE t (a INT)")
    run(client, "INSERT INTO t VALUES (1)")
    data = client.get('/api/databases/playground').get_json()
    assert data['database'] == {
        'name': 'playground',
        'active': 't',
        'tables': ['t'],
        'statements': 2,
    }


def test_unknown_database(client):
    response = run(client, "SELECT 1", db='ghost')
    assert response.status_code == 404
    assert response.get_json()['error'] == 'Database ghost not found'


# ==================== execute ====================

def test_execute_roundtrip(client):
    response = run(client, "CREATE TABLE pets (id INT PRIMARY KEY, name VARCHAR(10))")
    assert response.status_code == 200
    assert response.get_json()['active'] == 'pets'

    response = run(client, "INSERT INTO pets VALUES (1, 'Rex')")
    assert response.get_json()['rows'] == [{'id': 1, 'name': 'Rex'}]

    run(client, "INSERT INTO pets VALUES (2, 'Tom')")
    data = run(client, "SELECT name FROM pets WHERE id > 1").get_json()
    assert data['success'] is True
    assert data['columns'] == ['name']
    assert data['rows'] == [{'name': 'Tom'}]


def test_execute_error_payload(client):
    response = run(client, "SELECT * FROM missing")
    assert response.status_code == 400
    data = response.get_json()
    assert data['success'] is False
    assert data['columns'] == ['error']
    assert data['rows'] == [{'error': "Table 'missing' does not exist"}]


def test_execute_requires_query(client):
    response = client.post('/api/databases/playground/execute', json={})
    assert response.status_code == 400
    response = client.post('/api/databases/playground/execute', data='not json')
    assert response.status_code == 400


def test_query_too_long(client, monkeypatch):
    monkeypatch.setitem(app.config, 'MAX_QUERY_LENGTH', 10)
    response = run(client, "SELECT * FROM some_long_table")
    assert response.status_code == 400
    assert 'longer than 10' in response.get_json()['error']


def test_failed_statement_keeps_state(client):
    run(client, "CREATE TABLE t (id INT PRIMARY KEY)")
    run(client, "INSERT INTO t VALUES (1)")
    assert run(client, "INSERT INTO t VALUES (1)").status_code == 400
    data = client.get('/api/databases/playground/tables/t/data').get_json()
    assert data['rows'] == [{'id': 1}]


# ==================== tables ====================

def test_table_schema_and_data(client):
    run(client, "CREATE TABLE t (id INT PRIMARY KEY, price DECIMAL(6,2))")
    run(client, "INSERT INTO t VALUES (1, 2.499)")

    schema = client.get('/api/databases/playground/tables/t/schema').get_json()['schema']
    assert schema['name'] == 't'
    assert [c['name'] for c in schema['columns']] == ['id', 'price']
    assert schema['sql'].startswith('CREATE TABLE t')

    data = client.get('/api/databases/playground/tables/t/data').get_json()
    assert data['columns'] == ['id', 'price']
    assert data['rows'] == [{'id': 1, 'price': 2.5}]
    assert data['count'] == 1


def test_missing_table_endpoints(client):
    assert client.get('/api/databases/playground/tables/nope/schema').status_code == 404
    assert client.get('/api/databases/playground/tables/nope/data').status_code == 404
    assert client.delete('/api/databases/playground/tables/nope').status_code == 404


def test_drop_table_endpoint(client):
    run(client, "CREATE TABLE p (id INT PRIMARY KEY); "
                "CREATE TABLE c (id INT PRIMARY KEY, p_id INT REFERENCES p(id))")

    response = client.delete('/api/databases/playground/tables/p')
    assert response.status_code == 400
    assert response.get_json()['columns'] == ['error']

    response = client.delete('/api/databases/playground/tables/c')
    assert response.status_code == 200
    assert response.get_json()['message'] == 'Dropped table c.'
    assert client.get('/api/databases/playground/tables').get_json()['tables'] == ['p']


# ==================== batch ====================

def test_batch_continues_after_failure(client):
    response = client.post('/api/databases/playground/execute/batch', json={'queries': [
        "CREATE TABLE t (a INT)",
        "INSERT INTO t VALUES (1, 2, 3)",
        "INSERT INTO t VALUES (3)",
        "SELECT a FROM t",
    ]})
    data = response.get_json()
    assert response.status_code == 200
    assert data['success'] is False
    assert data['count'] == 4
    assert [r['success'] for r in data['results']] == [True, False, True, True]
    assert data['results'][3]['rows'] == [{'a': 3}]


def test_batch_requires_list(client):
    response = client.post('/api/databases/playground/execute/batch', json={'queries': 'SELECT 1'})
    assert response.status_code == 400


@pytest.mark.parametrize('queries', [["CREATE TABLE t (a INT)"], ["CREATE TABLE t (a INT)", "SELECT * FROM t"]])
def test_batch_all_succeed(client, queries):
    data = client.post('/api/databases/playground/execute/batch', json={'queries': queries}).get_json()
    assert data['success'] is True


def test_drop_endpoint_takes_name_literally(client):
    run(client, "CREATE TABLE t (a INT)")
    response = client.delete('/api/databases/playground/tables/t%3B%20DROP%20TABLE%20t')
    assert response.status_code == 404
    assert response.get_json()['error'] == "Table 't; DROP TABLE t' does not exist"
    assert client.get('/api/databases/playground/tables').get_json()['tables'] == ['t']


def test_huge_number_is_not_a_server_error(client):
    run(client, "CREATE TABLE r (id INT PRIMARY KEY, x REAL)")
    response = run(client, f"INSERT INTO r VALUES (1, {'9' * 400})")
    assert response.status_code == 200
    response = run(client, f"UPDATE r SET x = {'9' * 400} / 3")
    assert response.status_code == 200
