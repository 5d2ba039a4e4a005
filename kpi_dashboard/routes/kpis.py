import logging
from flask import Blueprint, current_app, request, jsonify
from pydantic import ValidationError
from kpi_dashboard.errors import FormulaError, FormulaEvaluationError, KpiNotFoundError, NotFoundError
from kpi_dashboard.routes.formulas import validation_message
from kpi_dashboard.routes.machines import generate_rows
from kpi_dashboard.schemas import KpiCreate, KpiUpdate
from kpi_dashboard.services.kpi_service import ensure_formula_valid, evaluate_kpi
from kpi_dashboard.services.kpi_store import KpiStore

logger = logging.getLogger(__name__)

kpis_bp = Blueprint('kpis', __name__)


def get_store() -> KpiStore:
    return current_app.extensions['kpi_store']


def _not_found(kpi_id: str):
    return jsonify({'data': None, 'error': str(KpiNotFoundError(kpi_id))}), 404


@kpis_bp.route('/kpis', methods=['GET'])
def list_kpis():
    """
    GET /kpis

    Returns every saved KPI definition.
    """
    try:
        result = [kpi.to_json() for kpi in get_store().list_all()]
        return jsonify({'data': result, 'error': None}), 200

    except Exception as e:
        logger.error(f"Failed to list KPIs: {e}", exc_info=True)
        return jsonify({'data': None, 'error': 'Internal server error'}), 500


@kpis_bp.route('/kpis', methods=['POST'])
def create_kpi():
    """
    POST /kpis

    Body:
        name (str): KPI name
        machineId (str): Machine identifier
        formula (str): Formula over the machine's variables
        aggregationType (str): average, median, sum, integration, min or max
        chartType (str, optional): line, bar or stackedArea (default: line)
        thresholds (dict, optional): target, warning, critical
    """
    try:
        data = request.get_json(silent=True)

        if not data:
            return jsonify({'data': None, 'error': 'Request body required'}), 400

        fields = KpiCreate.model_validate(data)
        ensure_formula_valid(fields.formula, fields.machine_id)

        kpi = get_store().create(fields)
        return jsonify({'data': kpi.to_json(), 'error': None}), 201

    except ValidationError as e:
        logger.warning(f"KPI create rejected: {e}")
        return jsonify({'data': None, 'error': validation_message(e)}), 400
    except FormulaError as e:
        logger.warning(f"KPI create rejected, invalid formula: {e}")
        return jsonify({'data': None, 'error': str(e)}), 400
    except NotFoundError as e:
        return jsonify({'data': None, 'error': str(e)}), 404
    except Exception as e:
        logger.error(f"KPI create error: {e}", exc_info=True)
        return jsonify({'data': None, 'error': 'Internal server error'}), 500


@kpis_bp.route('/kpis/<kpi_id>', methods=['GET'])
def get_kpi(kpi_id: str):
    """
    GET /kpis/<kpi_id>
    """
    kpi = get_store().get_by_id(kpi_id)
    if kpi is None:
        return _not_found(kpi_id)
    return jsonify({'data': kpi.to_json(), 'error': None}), 200


@kpis_bp.route('/kpis/<kpi_id>', methods=['PUT', 'PATCH'])
def update_kpi(kpi_id: str):
    """
    PUT|PATCH /kpis/<kpi_id>

    Body: any subset of the fields accepted by POST /kpis. Only supplied
    fields are changed; the formula is re-validated against the resulting
    machine whenever formula or machineId is supplied.
    """
    try:
        data = request.get_json(silent=True)

        if not data:
            return jsonify({'data': None, 'error': 'Request body required'}), 400

        updates = KpiUpdate.model_validate(data)

        store = get_store()
        existing = store.get_by_id(kpi_id)
        if existing is None:
            return _not_found(kpi_id)

        if updates.formula is not None or updates.machine_id is not None:
            ensure_formula_valid(
                updates.formula if updates.formula is not None else existing.formula,
                updates.machine_id if updates.machine_id is not None else existing.machine_id,
            )

        kpi = store.update(kpi_id, updates)
        if kpi is None:
            return _not_found(kpi_id)

        return jsonify({'data': kpi.to_json(), 'error': None}), 200

    except ValidationError as e:
        logger.warning(f"KPI update rejected: {e}")
        return jsonify({'data': None, 'error': validation_message(e)}), 400
    except FormulaError as e:
        logger.warning(f"KPI update rejected, invalid formula: {e}")
        return jsonify({'data': None, 'error': str(e)}), 400
    except NotFoundError as e:
        return jsonify({'data': None, 'error': str(e)}), 404
    except Exception as e:
        logger.error(f"KPI update error: {e}", exc_info=True)
        return jsonify({'data': None, 'error': 'Internal server error'}), 500


@kpis_bp.route('/kpis/<kpi_id>', methods=['DELETE'])
def delete_kpi(kpi_id: str):
    """
    DELETE /kpis/<kpi_id>
    """
    try:
        if not get_store().delete(kpi_id):
            return _not_found(kpi_id)
        return jsonify({'data': {'id': kpi_id, 'deleted': True}, 'error': None}), 200

    except Exception as e:
        logger.error(f"KPI delete error: {e}", exc_info=True)
        return jsonify({'data': None, 'error': 'Internal server error'}), 500


@kpis_bp.route('/kpis/<kpi_id>/evaluate', methods=['GET'])
def evaluate_saved_kpi(kpi_id: str):
    """
    GET /kpis/<kpi_id>/evaluate

    Query Parameters:
        count (int, optional): Number of rows to generate (default: 100)

    Runs the KPI's formula over fresh synthetic data for its machine and
    returns the series, its aggregate and per-point threshold status.
    """
    try:
        kpi = get_store().get_by_id(kpi_id)
        if kpi is None:
            return _not_found(kpi_id)

        rows = generate_rows(kpi.machine_id, request.args.get('count'))

        try:
            result = evaluate_kpi(kpi, rows)
        except FormulaEvaluationError as e:
            return jsonify({'data': {'isValid': False, 'error': str(e)}, 'error': None}), 200

        return jsonify({'data': {'isValid': True, 'error': None, **result}, 'error': None}), 200

    except NotFoundError as e:
        return jsonify({'data': None, 'error': str(e)}), 404
    except Exception as e:
        logger.error(f"KPI evaluation error: {e}", exc_info=True)
        return jsonify({'data': None, 'error': 'Internal server error'}), 500
