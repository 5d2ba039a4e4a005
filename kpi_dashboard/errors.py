class FormulaError(Exception):
    """Base class for formula pipeline failures."""


class FormulaSyntaxError(FormulaError):
    """Formula text is not a well-formed arithmetic expression."""

    def __init__(self, message: str, position: int | None = None):
        self.position = position
        super().__init__(message)


class FormulaValidationError(FormulaError):
    """Formula references variables unknown to the selected machine."""

    def __init__(self, unknown: list[str]):
        self.unknown = unknown
        super().__init__(f"Unknown variable(s): {', '.join(unknown)}")


class FormulaEvaluationError(FormulaError):
    """Runtime failure while computing a formula over a row."""


class NotFoundError(Exception):
    pass


class MachineNotFoundError(NotFoundError):
    def __init__(self, machine_id: str):
        self.machine_id = machine_id
        super().__init__(f"Machine with ID {machine_id} not found")


class KpiNotFoundError(NotFoundError):
    def __init__(self, kpi_id: str):
        self.kpi_id = kpi_id
        super().__init__(f"KPI with ID {kpi_id} not found")
