"""
Error taxonomy for the prediction engine.

Simulator-level failures are ordinary exceptions (InvalidAltitude, NoWindData,
InputContractError, ...). The orchestrator converts whatever escapes a phase
into an OrchestrationError, which carries the phase, a machine-readable code
and one structured ErrorDetail variant.
"""
from dataclasses import dataclass, field

__all__ = [
    'HabPredictError', 'InvalidAltitude', 'NoWindData', 'InvalidPhysicalParameters',
    'InvalidSampleCount', 'DeadlineExceeded', 'InputContractError',
    'ValidationIssue', 'ValidationDetail', 'WeatherDetail', 'CalculationDetail',
    'ProcessingDetail', 'OrchestrationError', 'PHASES',
]

PHASES = ('validation', 'weather', 'calculation', 'processing')

class HabPredictError(Exception):
    """Base class for every error raised by habpredict."""

class InvalidAltitude(HabPredictError, ValueError):
    def __init__(self, altitude):
        super().__init__("Altitude cannot be negative")
        self.altitude = altitude

class NoWindData(HabPredictError, ValueError):
    def __init__(self, message="No wind data points provided"):
        super().__init__(message)

class InvalidPhysicalParameters(HabPredictError, ValueError):
    """Raised instead of returning inf/NaN from a force-balance formula."""

class InvalidSampleCount(HabPredictError, ValueError):
    def __init__(self, num_samples):
        super().__init__("Number of samples must be positive")
        self.num_samples = num_samples

class DeadlineExceeded(HabPredictError, TimeoutError):
    """Caller deadline passed while work was still outstanding."""

class InputContractError(HabPredictError, ValueError):
    """
    A simulator input violated its contract.

    Carries the offending field and a stable code so callers can map the
    failure to a form field without parsing the message.
    """
    def __init__(self, field, code, message):
        super().__init__(message)
        self.field = field
        self.code = code
        self.message = message

@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str
    code: str

    def to_dict(self):
        return {'field': self.field, 'message': self.message, 'code': self.code}

# ErrorDetail variants. Each carries a literal `kind` tag so consumers can
# dispatch on it without isinstance checks (e.g. after JSON serialisation).

@dataclass(frozen=True)
class ValidationDetail:
    errors: tuple = ()
    warnings: tuple = ()
    kind: str = field(default='validation', init=False)

    def to_dict(self):
        return {
            'kind': self.kind,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': list(self.warnings),
        }

@dataclass(frozen=True)
class WeatherDetail:
    cause: str
    timeout: float | None = None
    kind: str = field(default='weather', init=False)

    def to_dict(self):
        return {'kind': self.kind, 'cause': self.cause, 'timeout': self.timeout}

@dataclass(frozen=True)
class CalculationDetail:
    cause: str
    stage: str = 'trajectory'
    kind: str = field(default='calculation', init=False)

    def to_dict(self):
        return {'kind': self.kind, 'cause': self.cause, 'stage': self.stage}

@dataclass(frozen=True)
class ProcessingDetail:
    cause: str
    kind: str = field(default='processing', init=False)

    def to_dict(self):
        return {'kind': self.kind, 'cause': self.cause}

class OrchestrationError(HabPredictError):
    """
    Failure of one orchestrator phase.

    Immutable after construction: all fields are exposed as read-only
    properties.
    """
    def __init__(self, message, code, phase, recoverable, details=None):
        if phase not in PHASES:
            raise ValueError(f"Unknown phase: {phase}")
        super().__init__(message)
        self._message = message
        self._code = code
        self._phase = phase
        self._recoverable = bool(recoverable)
        self._details = details

    @property
    def message(self):
        return self._message

    @property
    def code(self):
        return self._code

    @property
    def phase(self):
        return self._phase

    @property
    def recoverable(self):
        return self._recoverable

    @property
    def details(self):
        return self._details

    def to_dict(self):
        return {
            'message': self._message,
            'code': self._code,
            'phase': self._phase,
            'recoverable': self._recoverable,
            'details': self._details.to_dict() if self._details is not None else None,
        }

    def __repr__(self):
        return f"OrchestrationError({self._code!r}, phase={self._phase!r}, recoverable={self._recoverable})"
