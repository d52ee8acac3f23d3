from .host import HostHandle
from .log_sink import LogSink

# Public port exports keep wiring explicit at composition time.
__all__ = [
    "HostHandle",
    "LogSink",
]
