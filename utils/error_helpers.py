"""
Error handling helpers and decorators for Flask routes and storage calls
Reduces repetitive try/except patterns and JSON error responses
"""

from functools import wraps
from flask import jsonify
import logging

from core.drip_api import DripAPIError

logger = logging.getLogger(__name__)


def api_error_handler(func):
    """
    Decorator for API endpoints that automatically handles exceptions
    and returns proper JSON error responses

    Usage:
        @app.route('/api/data')
        @api_error_handler
        def get_data():
            # Your code here
            return jsonify({'success': True, 'data': data})
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DripAPIError as e:
            logger.error(f"Drip API error in {func.__name__}: {e}")
            return jsonify({'success': False, 'error': 'Points service unavailable, try again',
                            'code': 'transient_failure'}), 503
        except ValueError as e:
            logger.warning(f"Validation error in {func.__name__}: {e}")
            return jsonify({'success': False, 'error': str(e), 'code': 'invalid_request'}), 400
        except Exception as e:
            logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
            return jsonify({'success': False, 'error': 'Internal server error', 'code': 'internal_error'}), 500
    return wrapper


def db_error_handler(func):
    """
    Decorator specifically for database operations
    Handles common database errors with proper logging

    Usage:
        @db_error_handler
        def save_user(user_data):
            # Database operations here
            return user_id
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Database error in {func.__name__}: {e}", exc_info=True)
            raise  # Re-raise for caller to handle
    return wrapper


def json_success(data=None, message=None, **kwargs):
    """
    Create standardized success JSON response

    Args:
        data: Optional data to include
        message: Optional success message
        **kwargs: Additional fields to include

    Returns:
        JSON response with success=True
    """
    response = {'success': True}
    if data is not None:
        response['data'] = data
    if message:
        response['message'] = message
    response.update(kwargs)
    return jsonify(response)


def json_error(error, status_code=400, **kwargs):
    """
    Create standardized error JSON response

    Args:
        error: Error message string
        status_code: HTTP status code (default 400)
        **kwargs: Additional fields to include, usually code=

    Returns:
        JSON response with success=False and given status code
    """
    response = {'success': False, 'error': str(error)}
    response.update(kwargs)
    return jsonify(response), status_code


def safe_int(value, default=0):
    """Safely convert value to integer with fallback"""
    try:
        return int(value)
    except (ValueError, TypeError):
        return default
