import logging
import re
from flask import Blueprint, current_app, request, jsonify
from kpi_dashboard.catalog import find_machine, list_machines
from kpi_dashboard.errors import MachineNotFoundError
from kpi_dashboard.services.data_generator import generate_machine_data

logger = logging.getLogger(__name__)

machines_bp = Blueprint('machines', __name__)

_LEADING_INT_RE = re.compile(r'\s*([+-]?[0-9]+)')


def parse_count(raw: str | None, default: int, maximum: int) -> int:
    """Row count from a query string value; leading digits are read, anything else gives ``default``."""
    if raw is None:
        count = default
    else:
        match = _LEADING_INT_RE.match(raw)
        count = int(match.group(1)) if match else default
    return max(0, min(count, maximum))


def generate_rows(machine_id: str, raw_count: str | None) -> list[dict]:
    data_config = current_app.config['DATA']
    count = parse_count(raw_count, data_config.default_row_count, data_config.max_row_count)
    return generate_machine_data(machine_id, count, interval_ms=data_config.interval_ms)


@machines_bp.route('/machines', methods=['GET'])
def get_machines():
    """
    GET /machines

    Returns the machine catalog with each machine's variables in display order.
    """
    result = [machine.to_json() for machine in list_machines()]
    return jsonify({'data': result, 'error': None}), 200


@machines_bp.route('/machines/<machine_id>', methods=['GET'])
def get_machine_detail(machine_id: str):
    """
    GET /machines/<machine_id>
    """
    machine = find_machine(machine_id)
    if machine is None:
        return jsonify({'data': None, 'error': 'Machine not found'}), 404
    return jsonify({'data': machine.to_json(), 'error': None}), 200


@machines_bp.route('/machines/<machine_id>/data', methods=['GET'])
def get_machine_data(machine_id: str):
    """
    GET /machines/<machine_id>/data

    Query Parameters:
        count (int, optional): Number of rows (default: 100)

    Responds with a bare JSON array of rows.
    """
    try:
        if find_machine(machine_id) is None:
            return jsonify({'error': 'Machine not found'}), 404

        rows = generate_rows(machine_id, request.args.get('count'))
        return jsonify(rows), 200

    except MachineNotFoundError:
        return jsonify({'error': 'Machine not found'}), 404
    except Exception as e:
        logger.error(f"Error generating machine data: {e}", exc_info=True)
        return jsonify({'error': 'Failed to generate machine data'}), 500
