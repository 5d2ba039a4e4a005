"""
Synthetic telemetry for the machines in the catalog.

Each call yields ``row_count`` rows spaced ``interval_ms`` apart and ending at
"now". Every row carries one value per catalog variable of the machine,
synthesised from a per-variable VariableConfig (base value, jitter span,
clamp range and trend shape) and rounded to 2 decimals.
"""

import logging
import time
from dataclasses import dataclass
from typing import Literal
import numpy as np
from kpi_dashboard.catalog import get_machine

logger = logging.getLogger(__name__)

DEFAULT_ROW_COUNT = 100
DEFAULT_INTERVAL_MS = 60_000

Trend = Literal['stable', 'up', 'down', 'oscillating']


@dataclass(frozen=True)
class VariableConfig:
    base: float
    variation: float
    min: float | None = None
    max: float | None = None
    trend: Trend = 'stable'


FALLBACK_CONFIG = VariableConfig(base=100, variation=20)

VARIABLE_CONFIGS: dict[str, dict[str, VariableConfig]] = {
    'cnc': {
        'spindleSpeed': VariableConfig(base=2000, variation=200, min=1500, max=2500),
        'toolVibration': VariableConfig(base=50, variation=15, min=20, max=100),
        'feedRate': VariableConfig(base=120, variation=30, min=50, max=200),
        'coolantFlowRate': VariableConfig(base=8, variation=2, min=5, max=12),
        'powerConsumption': VariableConfig(base=45, variation=10, min=25, max=70),
    },
    'injection': {
        'injectionPressure': VariableConfig(base=800, variation=100, min=600, max=1000),
        'meltTemperature': VariableConfig(base=200, variation=15, min=180, max=240),
        'cycleTime': VariableConfig(base=30, variation=5, min=20, max=45),
        'clampingForce': VariableConfig(base=500, variation=50, min=400, max=650),
    },
    'packaging': {
        'conveyorSpeed': VariableConfig(base=1.5, variation=0.3, min=0.8, max=2.5),
        'sensorTriggerCount': VariableConfig(base=120, variation=25, min=70, max=180),
        'motorCurrent': VariableConfig(base=15, variation=3, min=10, max=25),
        'packageCount': VariableConfig(base=35, variation=10, min=15, max=60),
    },
}


def clamp_value(value: float, config: VariableConfig) -> float:
    """Clamp to the configured range; open ends are left alone."""
    if config.min is not None and value < config.min:
        value = config.min
    if config.max is not None and value > config.max:
        value = config.max
    return value


def generate_value(config: VariableConfig, index: int, total: int, rng: np.random.Generator) -> float:
    """Value of one variable at position ``index`` of a ``total``-row series."""
    if config.trend == 'up':
        value = config.base + config.variation * 2 * (index / total)
    elif config.trend == 'down':
        value = config.base + config.variation * 2 * (1 - index / total)
    elif config.trend == 'oscillating':
        period = total / 3
        value = config.base + config.variation * np.sin((index / period) * 2 * np.pi)
    else:
        value = config.base + rng.uniform(-1.0, 1.0) * config.variation

    return round(float(clamp_value(value, config)), 2)


def generate_machine_data(
    machine_id: str,
    row_count: int = DEFAULT_ROW_COUNT,
    *,
    interval_ms: int = DEFAULT_INTERVAL_MS,
    now_ms: int | None = None,
    rng: np.random.Generator | None = None,
) -> list[dict]:
    """
    Generate ``row_count`` telemetry rows for a catalog machine.

    Raises MachineNotFoundError for an unknown machine and ValueError for a
    negative row count. Rows are ordered by strictly increasing timestamp and
    all share the machine's variable names as keys.
    """
    machine = get_machine(machine_id)

    if row_count < 0:
        raise ValueError(f"row_count must be >= 0, got {row_count}")
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be > 0, got {interval_ms}")

    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if rng is None:
        rng = np.random.default_rng()

    configs = VARIABLE_CONFIGS.get(machine_id, {})

    rows: list[dict] = []
    for i in range(row_count):
        row: dict = {'timestamp': now_ms - (row_count - 1 - i) * interval_ms}
        for variable in machine.variables:
            config = configs.get(variable.name, FALLBACK_CONFIG)
            row[variable.name] = generate_value(config, i, row_count, rng)
        rows.append(row)

    logger.debug(f"Generated {row_count} rows for machine {machine_id}")
    return rows
