"""
sqlsim REST API Server
Provides HTTP interface to in-memory SQL sessions
"""

import logging
import threading
import traceback
from typing import Dict

from flask import Flask, jsonify, request
from flask_cors import CORS

import sqlsim
from sqlsim import Session
from sqlsim.errors import SQLSimError, TableNotFoundError
from sqlsim.parser import DropTableQuery

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object('sqlsim.config')
app.config.from_prefixed_env('SQLSIM')
CORS(app)

# Sessions live only as long as the process
sessions: Dict[str, Session] = {}
_sessions_lock = threading.Lock()


def reset_sessions():
    """Drop every session and recreate the default database"""
    with _sessions_lock:
        sessions.clear()
        name = app.config['DEFAULT_DATABASE']
        sessions[name] = Session(name)


reset_sessions()


class DatabaseNotFound(Exception):
    """Unknown database name in the URL"""
    pass


def _get_session(db_name):
    session = sessions.get(db_name)
    if session is None:
        raise DatabaseNotFound(f"Database {db_name} not found")
    return session


def _query_from_body(field='query'):
    data = request.get_json(silent=True)
    if not data:
        return None, (jsonify({'success': False, 'error': 'Request body required'}), 400)
    value = data.get(field)
    if not value:
        return None, (jsonify({'success': False, 'error': f'{field.capitalize()} required'}), 400)
    return value, None


def _too_long(query):
    return len(query) > app.config['MAX_QUERY_LENGTH']

# ==================== DATABASE ENDPOINTS ====================

@app.route('/api/databases', methods=['GET'])
def list_databases():
    """Get list of all databases"""
    names = sorted(sessions)
    return jsonify({
        'success': True,
        'databases': names,
        'count': len(names)
    })

@app.route('/api/databases', methods=['POST'])
def create_database():
    """Create a new, empty database"""
    data = request.get_json(silent=True)
    db_name = data.get('name') if data else None

    if not db_name:
        return jsonify({
            'success': False,
            'error': 'Database name required'
        }), 400

    with _sessions_lock:
        if db_name in sessions:
            return jsonify({
                'success': False,
                'error': f'Database {db_name} already exists'
            }), 400
        sessions[db_name] = Session(db_name)

    logger.info("Created database %s", db_name)
    return jsonify({
        'success': True,
        'message': f'Database {db_name} created'
    })

@app.route('/api/databases/<db_name>', methods=['DELETE'])
def delete_database(db_name):
    """Delete a database (and all its tables)"""
    with _sessions_lock:
        if sessions.pop(db_name, None) is None:
            return jsonify({
                'success': False,
                'error': f'Database {db_name} not found'
            }), 404

    logger.info("Deleted database %s", db_name)
    return jsonify({
        'success': True,
        'message': f'Database {db_name} deleted'
    })

@app.route('/api/databases/<db_name>', methods=['GET'])
def get_database_info(db_name):
    """Active table, table names and statement count"""
    session = _get_session(db_name)
    return jsonify({
        'success': True,
        'database': session.info()
    })

# ==================== TABLE ENDPOINTS ====================

@app.route('/api/databases/<db_name>/tables', methods=['GET'])
def list_tables(db_name):
    """List tables and views in a database"""
    tables = _get_session(db_name).table_names()
    return jsonify({
        'success': True,
        'tables': tables,
        'count': len(tables)
    })

@app.route('/api/databases/<db_name>/tables/<table_name>/schema', methods=['GET'])
def get_table_schema(db_name, table_name):
    """Get table schema, including the regenerated CREATE TABLE statement"""
    schema = _get_session(db_name).schema(table_name)
    return jsonify({
        'success': True,
        'schema': schema
    })

@app.route('/api/databases/<db_name>/tables/<table_name>/data', methods=['GET'])
def get_table_data(db_name, table_name):
    """Get all rows of a table"""
    session = _get_session(db_name)
    schema = session.schema(table_name)
    rows = session.rows(table_name)
    return jsonify({
        'success': True,
        'columns': [col['name'] for col in schema['columns']],
        'rows': rows,
        'count': len(rows)
    })

@app.route('/api/databases/<db_name>/tables/<table_name>', methods=['DELETE'])
def drop_table(db_name, table_name):
    """Drop (delete) a table"""
    session = _get_session(db_name)
    result = session.run_query(DropTableQuery(query_type='DROP_TABLE', table_name=table_name))
    return jsonify({
        'success': True,
        'message': result.rows[0]['message']
    })

# ==================== QUERY EXECUTION ENDPOINTS ====================

@app.route('/api/databases/<db_name>/execute', methods=['POST'])
def execute_query(db_name):
    """Execute SQL query on database"""
    query, error = _query_from_body('query')
    if error:
        return error
    if _too_long(query):
        return jsonify({
            'success': False,
            'error': f"Query longer than {app.config['MAX_QUERY_LENGTH']} characters"
        }), 400

    session = _get_session(db_name)
    result = session.execute(query)

    if result['columns'] == ['error']:
        return jsonify({'success': False, **result}), 400

    return jsonify({
        'success': True,
        'active': session.database.active,
        **result
    })

@app.route('/api/databases/<db_name>/execute/batch', methods=['POST'])
def execute_batch_queries(db_name):
    """Execute multiple SQL queries in order; failures do not stop the batch"""
    queries, error = _query_from_body('queries')
    if error:
        return error
    if not isinstance(queries, list) or not all(isinstance(q, str) for q in queries):
        return jsonify({
            'success': False,
            'error': 'List of queries required'
        }), 400
    if any(_too_long(q) for q in queries):
        return jsonify({
            'success': False,
            'error': f"Query longer than {app.config['MAX_QUERY_LENGTH']} characters"
        }), 400

    session = _get_session(db_name)
    results = []
    for result in session.execute_batch(queries):
        results.append({'success': result['columns'] != ['error'], **result})

    return jsonify({
        'success': all(r['success'] for r in results),
        'results': results,
        'count': len(results)
    })

# ==================== HEALTH & INFO ENDPOINTS ====================

@app.route('/api/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        'status': 'healthy',
        'version': sqlsim.__version__,
        'database_count': len(sessions)
    })

@app.route('/api/info', methods=['GET'])
def api_info():
    """API information"""
    return jsonify({
        'name': 'sqlsim REST API',
        'version': sqlsim.__version__,
        'description': 'In-memory SQL engine for practicing queries',
        'statements': sqlsim.SUPPORTED_STATEMENTS,
        'endpoints': {
            'databases': {
                'GET /api/databases': 'List all databases',
                'POST /api/databases': 'Create new database',
                'GET /api/databases/<name>': 'Database summary',
                'DELETE /api/databases/<name>': 'Delete database',
                'GET /api/databases/<name>/tables': 'List tables in database'
            },
            'tables': {
                'GET /api/databases/<db>/tables/<table>/schema': 'Get table schema',
                'GET /api/databases/<db>/tables/<table>/data': 'Get table data',
                'DELETE /api/databases/<db>/tables/<table>': 'Drop table'
            },
            'queries': {
                'POST /api/databases/<db>/execute': 'Execute SQL query',
                'POST /api/databases/<db>/execute/batch': 'Execute batch queries'
            },
            'system': {
                'GET /api/health': 'Health check',
                'GET /api/info': 'API information'
            }
        }
    })

# ==================== ERROR HANDLERS ====================

@app.errorhandler(DatabaseNotFound)
def database_not_found(error):
    return jsonify({
        'success': False,
        'error': str(error)
    }), 404

@app.errorhandler(TableNotFoundError)
def table_not_found(error):
    return jsonify({
        'success': False,
        'error': str(error)
    }), 404

@app.errorhandler(SQLSimError)
def engine_error(error):
    """Engine errors use the single-column error payload"""
    logger.warning("Rejected request: %s", error)
    return jsonify({
        'success': False,
        'columns': ['error'],
        'rows': [{'error': str(error)}],
        'error': str(error)
    }), 400

@app.errorhandler(404)
def not_found(error):
    """Handle 404 errors"""
    return jsonify({
        'success': False,
        'error': 'Endpoint not found'
    }), 404

@app.errorhandler(405)
def method_not_allowed(error):
    """Handle 405 errors"""
    return jsonify({
        'success': False,
        'error': 'Method not allowed'
    }), 405

@app.errorhandler(500)
def internal_error(error):
    """Handle 500 errors"""
    return jsonify({
        'success': False,
        'error': 'Internal server error',
        'traceback': traceback.format_exc() if app.debug else None
    }), 500
