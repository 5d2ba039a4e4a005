"""
Static machine catalog: which named variables each machine exposes.
"""

from kpi_dashboard.errors import MachineNotFoundError
from kpi_dashboard.schemas import MachineDescriptor, VariableDescriptor


def _var(name: str, display_name: str, unit: str, help_text: str) -> VariableDescriptor:
    return VariableDescriptor(name=name, display_name=display_name, unit=unit, help_text=help_text)


MACHINES: tuple[MachineDescriptor, ...] = (
    MachineDescriptor(
        id='cnc',
        name='CNC Machine',
        variables=(
            _var('spindleSpeed', 'Spindle Speed', 'RPM', 'Controls cutting accuracy'),
            _var('toolVibration', 'Tool Vibration', 'Hz', 'Detects tool wear'),
            _var('feedRate', 'Feed Rate', 'mm/s', 'Speed of cutting/milling process'),
            _var('coolantFlowRate', 'Coolant Flow Rate', 'L/min', 'Prevents overheating'),
            _var('powerConsumption', 'Power Consumption', 'kW', 'Monitors efficiency'),
        ),
    ),
    MachineDescriptor(
        id='injection',
        name='Injection Molding Machine',
        variables=(
            _var('injectionPressure', 'Injection Pressure', 'bar', 'Affects material flow and part quality'),
            _var('meltTemperature', 'Melt Temperature', '°C', 'Determines material viscosity'),
            _var('cycleTime', 'Cycle Time', 's', 'Total time to produce one part'),
            _var('clampingForce', 'Clamping Force', 'kN', 'Holds mold closed during injection'),
        ),
    ),
    MachineDescriptor(
        id='packaging',
        name='Packaging Machine',
        variables=(
            _var('conveyorSpeed', 'Conveyor Speed', 'm/s', 'Speed of product movement'),
            _var('sensorTriggerCount', 'Sensor Trigger Count', 'count', 'Number of products detected'),
            _var('motorCurrent', 'Motor Current', 'A', 'Indicates load on motors'),
            _var('packageCount', 'Package Count', 'count/min', 'Packaging production rate'),
        ),
    ),
)

_MACHINES_BY_ID: dict[str, MachineDescriptor] = {machine.id: machine for machine in MACHINES}


def list_machines() -> list[MachineDescriptor]:
    return list(MACHINES)


def find_machine(machine_id: str) -> MachineDescriptor | None:
    return _MACHINES_BY_ID.get(machine_id)


def get_machine(machine_id: str) -> MachineDescriptor:
    machine = find_machine(machine_id)
    if machine is None:
        raise MachineNotFoundError(machine_id)
    return machine


def get_machine_variables(machine_id: str) -> list[VariableDescriptor]:
    """Variables in display order; empty for an unknown machine."""
    machine = find_machine(machine_id)
    return list(machine.variables) if machine else []


def get_variable_names(machine_id: str) -> list[str]:
    return [variable.name for variable in get_machine_variables(machine_id)]
