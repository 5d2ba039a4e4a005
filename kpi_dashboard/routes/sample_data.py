import logging
from flask import Blueprint, request, jsonify
from kpi_dashboard.catalog import find_machine
from kpi_dashboard.routes.machines import generate_rows

logger = logging.getLogger(__name__)

sample_data_bp = Blueprint('sample_data', __name__)


@sample_data_bp.route('/test-data', methods=['GET'])
def get_test_data():
    """
    GET /test-data

    Query Parameters:
        machineId (str): Machine identifier
        rowCount (int, optional): Number of rows (default: 100)

    Responds with a bare JSON array of rows.
    """
    try:
        machine_id = request.args.get('machineId')

        if not machine_id:
            return jsonify({'error': 'Missing machineId parameter'}), 400

        if find_machine(machine_id) is None:
            return jsonify({'error': f'Machine with ID {machine_id} not found'}), 404

        rows = generate_rows(machine_id, request.args.get('rowCount'))
        return jsonify(rows), 200

    except Exception as e:
        logger.error(f"Error generating test data: {e}", exc_info=True)
        return jsonify({'error': 'Failed to generate test data'}), 500
