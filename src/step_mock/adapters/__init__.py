from .log_sinks import JsonlLogSink, MemoryLogSink, StreamLogSink
from .memory_host import InMemoryHost, InMemoryHostRuntime, InvocationRecord, SendOutcome
from .state_store import InMemoryStateStore, KeyedStateStore

# Public adapter exports are optional but make wiring simpler.
__all__ = [
    "JsonlLogSink",
    "MemoryLogSink",
    "StreamLogSink",
    "InMemoryHost",
    "InMemoryHostRuntime",
    "InvocationRecord",
    "SendOutcome",
    "InMemoryStateStore",
    "KeyedStateStore",
]
