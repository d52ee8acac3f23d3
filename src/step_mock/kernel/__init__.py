from .context import ContextFactory, ExecutionContext
from .interpreter import Interpreter, Return
from .registry import Entity, EntityRegistry, Handler
from .step_registry import StepRegistry, default_step_registry
from .steps import UNBOUNDED_LOOP_COUNT, StepDefinition, StepModel
from .trace import StepTracer, StepTraceRecord

# Kernel exports are minimal and runtime-focused.
__all__ = [
    "ContextFactory",
    "ExecutionContext",
    "Interpreter",
    "Return",
    "Entity",
    "EntityRegistry",
    "Handler",
    "StepRegistry",
    "default_step_registry",
    "UNBOUNDED_LOOP_COUNT",
    "StepDefinition",
    "StepModel",
    "StepTracer",
    "StepTraceRecord",
]
