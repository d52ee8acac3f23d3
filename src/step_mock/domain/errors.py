from __future__ import annotations


class StepMockError(Exception):
    # Root of every error raised by configuration loading or step execution.
    pass


class ConfigurationError(StepMockError, ValueError):
    # Raised for invalid configuration (fail fast, before serving any invocation).
    pass


class UnknownStepError(ConfigurationError, KeyError):
    def __init__(self, tag: str) -> None:
        super().__init__(f"Unknown step type: {tag}")
        self.tag = tag

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return str(self.args[0])


class DuplicateNameError(ConfigurationError):
    pass


class DurationParseError(ConfigurationError):
    def __init__(self, text: object) -> None:
        super().__init__(f"Invalid duration: {text!r}")
        self.text = text


class EntityKindMismatchError(ConfigurationError):
    def __init__(self, tag: str, kind: object) -> None:
        super().__init__(f"Step '{tag}' is not valid for entity type {kind}")
        self.tag = tag
        self.kind = kind


class ResolutionError(StepMockError):
    # call/send target could not be resolved (unknown entity/handler or missing key).
    pass


class CoercionError(StepMockError, TypeError):
    # A value is present but has the wrong shape for the operation.
    pass


class UnknownVariableError(StepMockError, KeyError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown variable: {name}")
        self.name = name

    def __str__(self) -> str:
        return str(self.args[0])


class HostError(StepMockError):
    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"Host operation '{operation}' failed: {cause}")
        self.operation = operation
        self.cause = cause


class InvocationError(StepMockError):
    # Failure outcome of one handler invocation, as seen at the dispatcher boundary.
    def __init__(self, target: str, error: StepMockError) -> None:
        super().__init__(f"Invocation {target} failed: {error}")
        self.target = target
        self.error = error
