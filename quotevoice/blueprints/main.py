"""Main blueprint with health check endpoints."""
from flask import Blueprint, jsonify
from sqlalchemy import text
from quotevoice.database import get_session
from quotevoice.services.pdf_cache_service import get_pdf_cache
from quotevoice.services.rate_limit_service import get_rate_limiter

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    """
    Health check endpoint that validates database connection.

    Returns:
        200: Healthy (DB connected)
        500: Unhealthy (DB error)

    Redis and the PDF cache are reported but never fail the check.
    """
    limiter = get_rate_limiter()
    extras = {
        'rate_limiter': 'enabled' if limiter and limiter.enabled else 'disabled',
        'pdf_cache': get_pdf_cache().get_stats(),
    }

    try:
        session = get_session()
        row = session.execute(text("SELECT 1 as health_check")).fetchone()

        if row and row[0] == 1:
            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                **extras
            }), 200
        return jsonify({
            'status': 'unhealthy',
            'database': 'error',
            'message': 'Unexpected query result',
            **extras
        }), 500

    except Exception as e:
        return jsonify({
            'status': 'unhealthy',
            'database': 'disconnected',
            'error': str(e),
            'message': 'Failed to connect to database',
            **extras
        }), 500
