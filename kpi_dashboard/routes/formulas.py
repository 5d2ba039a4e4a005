import logging
from flask import Blueprint, request, jsonify
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel
from kpi_dashboard.catalog import find_machine
from kpi_dashboard.errors import FormulaEvaluationError
from kpi_dashboard.routes.machines import generate_rows
from kpi_dashboard.schemas import AGGREGATION_LABELS, AggregationKind
from kpi_dashboard.services.formula_engine import validate_formula
from kpi_dashboard.services.kpi_service import evaluate_series

logger = logging.getLogger(__name__)

formulas_bp = Blueprint('formulas', __name__)


class ValidateFormulaInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    formula: str = ''
    machine_id: str | None = None
    variables: list[str] | None = None


class EvaluateFormulaInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    formula: str = ''
    machine_id: str = Field(..., min_length=1)
    count: int | None = Field(default=None, ge=0)
    aggregation_type: AggregationKind = AggregationKind.AVERAGE


def validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = '.'.join(str(p) for p in item['loc'])
        parts.append(f"{location}: {item['msg']}" if location else item['msg'])
    return '; '.join(parts)


@formulas_bp.route('/aggregations', methods=['GET'])
def list_aggregations():
    """
    GET /aggregations

    Returns the supported aggregation kinds with display labels.
    """
    result = [{'value': kind.value, 'label': label} for kind, label in AGGREGATION_LABELS.items()]
    return jsonify({'data': result, 'error': None}), 200


@formulas_bp.route('/formulas/validate', methods=['POST'])
def validate():
    """
    POST /formulas/validate

    Body:
        formula (str): Formula text
        machineId (str, optional): Validate against this machine's variables
        variables (list[str], optional): Explicit variable names, used when
            machineId is absent
    """
    try:
        data = request.get_json(silent=True)

        if not data:
            return jsonify({'data': None, 'error': 'Request body required'}), 400

        payload = ValidateFormulaInput.model_validate(data)

        if payload.machine_id is not None:
            machine = find_machine(payload.machine_id)
            if machine is None:
                return jsonify({'data': None, 'error': 'Machine not found'}), 404
            variables = machine.variable_names
        elif payload.variables is not None:
            variables = payload.variables
        else:
            return jsonify({
                'data': None,
                'error': 'Missing required fields: machineId or variables'
            }), 400

        result = validate_formula(payload.formula, variables)
        return jsonify({'data': result.to_dict(), 'error': None}), 200

    except ValidationError as e:
        logger.warning(f"Formula validation request rejected: {e}")
        return jsonify({'data': None, 'error': validation_message(e)}), 400
    except Exception as e:
        logger.error(f"Formula validation error: {e}", exc_info=True)
        return jsonify({'data': None, 'error': 'Internal server error'}), 500


@formulas_bp.route('/formulas/evaluate', methods=['POST'])
def evaluate():
    """
    POST /formulas/evaluate

    Body:
        formula (str): Formula text
        machineId (str): Machine whose synthetic data the formula runs over
        count (int, optional): Number of rows to generate (default: 100)
        aggregationType (str, optional): Aggregation kind (default: average)

    Evaluation failures come back as ``{"isValid": false, "error": ...}``.
    """
    try:
        data = request.get_json(silent=True)

        if not data:
            return jsonify({'data': None, 'error': 'Request body required'}), 400

        payload = EvaluateFormulaInput.model_validate(data)

        machine = find_machine(payload.machine_id)
        if machine is None:
            return jsonify({'data': None, 'error': 'Machine not found'}), 404

        check = validate_formula(payload.formula, machine.variable_names)
        if not check.is_valid:
            return jsonify({'data': check.to_dict(), 'error': None}), 200

        raw_count = str(payload.count) if payload.count is not None else None
        rows = generate_rows(machine.id, raw_count)

        try:
            series = evaluate_series(payload.formula, rows, payload.aggregation_type)
        except FormulaEvaluationError as e:
            return jsonify({'data': {'isValid': False, 'error': str(e)}, 'error': None}), 200

        return jsonify({'data': {'isValid': True, 'error': None, **series}, 'error': None}), 200

    except ValidationError as e:
        logger.warning(f"Formula evaluation request rejected: {e}")
        return jsonify({'data': None, 'error': validation_message(e)}), 400
    except Exception as e:
        logger.error(f"Formula evaluation error: {e}", exc_info=True)
        return jsonify({'data': None, 'error': 'Internal server error'}), 500
