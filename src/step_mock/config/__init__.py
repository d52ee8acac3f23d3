from .loader import ConfigError, load_config, parse_config
from .models import Configuration, EntityConfig, HandlerConfig, StepConfig

__all__ = [
    "ConfigError",
    "load_config",
    "parse_config",
    "Configuration",
    "EntityConfig",
    "HandlerConfig",
    "StepConfig",
]
