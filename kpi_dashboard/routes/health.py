import logging
from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from kpi_dashboard.db import get_engine

logger = logging.getLogger(__name__)

health_bp = Blueprint('health', __name__)


@health_bp.route('/health', methods=['GET'])
def health_check():
    """
    GET /health

    Performs basic health checks for the database and the KPI store.
    """
    try:
        try:
            with get_engine().connect() as conn:
                conn.execute(text("SELECT 1"))
            db_status = 'ok'
        except Exception as e:
            logger.error(f"Database check failed: {e}")
            db_status = f'error: {str(e)}'

        try:
            kpi_count = len(current_app.extensions['kpi_store'])
            store_status = 'ok'
        except Exception as e:
            logger.error(f"KPI store check failed: {e}")
            store_status = f'error: {str(e)}'
            kpi_count = 0

        overall_healthy = db_status == 'ok' and store_status == 'ok'

        result = {
            'status': 'healthy' if overall_healthy else 'unhealthy',
            'database': db_status,
            'kpi_store': store_status,
            'kpi_count': kpi_count
        }

        status_code = 200 if overall_healthy else 503

        return jsonify({'data': result, 'error': None}), status_code

    except Exception as e:
        logger.error(f"Health check error: {e}", exc_info=True)
        return jsonify({
            'data': {'status': 'unhealthy'},
            'error': 'Health check failed'
        }), 503
