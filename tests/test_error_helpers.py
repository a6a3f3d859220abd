"""
Route error mapping tests
"""

import pytest
from flask import Flask

from core.drip_api import DripAPIError
from utils.error_helpers import api_error_handler, db_error_handler, json_error, json_success, safe_int


@pytest.fixture
def app():
    app = Flask(__name__)

    @app.route('/raise/<kind>')
    @api_error_handler
    def raise_error(kind):
        errors = {
            'drip': DripAPIError("Drip API timeout after 10s"),
            'value': ValueError("Invalid draw window: 'x'"),
            'permission': PermissionError("nope"),
            'runtime': RuntimeError("boom"),
        }
        raise errors[kind]

    @app.route('/ok')
    def ok():
        return json_success(data=[1], message="done", total=1)

    @app.route('/missing')
    def missing():
        return json_error('Winner not found', 404, code='not_found')

    return app


@pytest.mark.parametrize("kind,status,code", [
    ('drip', 503, 'transient_failure'),
    ('value', 400, 'invalid_request'),
    ('permission', 500, 'internal_error'),
    ('runtime', 500, 'internal_error'),
])
def test_api_error_handler_status(app, kind, status, code):
    response = app.test_client().get(f'/raise/{kind}')
    assert response.status_code == status
    assert response.get_json()['code'] == code
    assert response.get_json()['success'] is False


def test_internal_errors_hide_the_message(app):
    assert app.test_client().get('/raise/runtime').get_json()['error'] == 'Internal server error'


def test_json_helpers(app):
    client = app.test_client()
    assert client.get('/ok').get_json() == {'success': True, 'data': [1], 'message': "done", 'total': 1}
    response = client.get('/missing')
    assert response.status_code == 404
    assert response.get_json() == {'success': False, 'error': 'Winner not found', 'code': 'not_found'}


def test_db_error_handler_reraises():
    @db_error_handler
    def broken():
        raise RuntimeError("database is locked")

    with pytest.raises(RuntimeError):
        broken()


def test_safe_int():
    assert safe_int("12") == 12
    assert safe_int(None, 10) == 10
    assert safe_int("ten", 10) == 10
