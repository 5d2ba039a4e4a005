import logging
import math
from typing import Literal, Mapping, Sequence
from kpi_dashboard.catalog import get_machine
from kpi_dashboard.errors import FormulaEvaluationError
from kpi_dashboard.schemas import AggregationKind, KpiRecord, Thresholds
from kpi_dashboard.services.formula_engine import (
    aggregate_results,
    check_variables,
    evaluate_formula,
    parse_formula,
)

logger = logging.getLogger(__name__)

Status = Literal['critical', 'warning', 'normal']


def json_number(value: float) -> float | None:
    """JSON has no inf/nan; those become null on the wire."""
    return value if math.isfinite(value) else None


def _breaches(value: float, target: float, limit: float | None) -> bool:
    if limit is None:
        return False
    if limit > target:
        return value >= limit
    if limit < target:
        return value <= limit
    return False


def classify_value(value: float, thresholds: Thresholds | None) -> Status:
    """
    Status of one value against a KPI's thresholds.

    A limit counts only relative to ``target``: a critical limit above target
    is breached at or above it, one below target at or below it. Without a
    target every value is normal.
    """
    if thresholds is None or thresholds.target is None or math.isnan(value):
        return 'normal'
    if _breaches(value, thresholds.target, thresholds.critical):
        return 'critical'
    if _breaches(value, thresholds.target, thresholds.warning):
        return 'warning'
    return 'normal'


def ensure_formula_valid(formula: str, machine_id: str) -> None:
    """
    Raise when formula cannot be saved for the machine.

    FormulaSyntaxError for malformed or empty text, FormulaValidationError for
    unknown variables, MachineNotFoundError for an unknown machine.
    """
    machine = get_machine(machine_id)
    check_variables(parse_formula(formula), machine.variable_names)


def evaluate_series(
    formula: str,
    rows: Sequence[Mapping],
    aggregation_type: AggregationKind | str,
    thresholds: Thresholds | None = None,
) -> dict:
    evaluation = evaluate_formula(formula, rows)
    if not evaluation.is_valid:
        raise FormulaEvaluationError(evaluation.error)

    values = evaluation.result
    aggregate = aggregate_results(values, aggregation_type)
    kind = aggregation_type.value if isinstance(aggregation_type, AggregationKind) else aggregation_type

    return {
        'timestamps': [row.get('timestamp') for row in rows],
        'values': [json_number(v) for v in values],
        'aggregationType': kind,
        'aggregate': json_number(aggregate),
        'status': [classify_value(v, thresholds) for v in values],
        'aggregateStatus': classify_value(aggregate, thresholds),
        'rowCount': len(rows),
    }


def evaluate_kpi(kpi: KpiRecord, rows: Sequence[Mapping]) -> dict:
    """Evaluate a saved KPI over ``rows``; raises FormulaEvaluationError on failure."""
    result = evaluate_series(kpi.formula, rows, kpi.aggregation_type, kpi.thresholds)
    result['kpiId'] = kpi.id
    result['machineId'] = kpi.machine_id
    result['thresholds'] = kpi.thresholds.to_json() if kpi.thresholds else None
    logger.debug(f"Evaluated KPI {kpi.id} over {len(rows)} rows: {result['aggregate']}")
    return result
