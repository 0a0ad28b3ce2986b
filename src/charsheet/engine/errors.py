from __future__ import annotations
from enum import Enum

class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    METHOD_UNAVAILABLE = "method_unavailable"
    INSUFFICIENT_RESOURCE = "insufficient_resource"
    ACTION_SHORTFALL = "action_shortfall"
    EVALUATION_ERROR = "evaluation_error"

class CharsheetError(Exception):
    kind: ErrorKind = ErrorKind.EVALUATION_ERROR

class DiceFormulaError(CharsheetError, ValueError):
    kind = ErrorKind.EVALUATION_ERROR

    def __init__(self, formula: str, reason: str):
        super().__init__(f"Failed to evaluate dice formula '{formula}': {reason}")
        self.formula = formula
        self.reason = reason

class InsufficientResourceError(CharsheetError):
    kind = ErrorKind.INSUFFICIENT_RESOURCE

    def __init__(self, resource_id: str, requested: int, available: int):
        super().__init__(f"Insufficient {resource_id} ({available}/{requested} required)")
        self.resource_id = resource_id
        self.requested = requested
        self.available = available

class UnknownResourceError(CharsheetError, KeyError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource_id: str):
        super().__init__(resource_id)
        self.resource_id = resource_id

    def __str__(self) -> str:
        return f"Resource {self.resource_id} not found"

class BoundFormulaError(CharsheetError, ValueError):
    kind = ErrorKind.EVALUATION_ERROR

    def __init__(self, expression: str, reason: str):
        super().__init__(f"Failed to evaluate bound '{expression}': {reason}")
        self.expression = expression
        self.reason = reason
