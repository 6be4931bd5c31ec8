from .core import (
    AutomaticBuilder,
    BuildError,
    ConfigError,
    Container,
    ContainerError,
    CycleError,
    Definition,
    DefinitionKind,
    DefinitionRegistry,
    DependencyBag,
    NotFoundError,
    Reference,
    Request,
    ResolutionService,
    ServicesProvider,
)
from .config import ConfigLoader, FileConfigLoader, MappingConfigLoader
from .typing_utils import Key, key_of

__all__ = [
    "AutomaticBuilder",
    "BuildError",
    "ConfigError",
    "ConfigLoader",
    "Container",
    "ContainerError",
    "CycleError",
    "Definition",
    "DefinitionKind",
    "DefinitionRegistry",
    "DependencyBag",
    "FileConfigLoader",
    "Key",
    "MappingConfigLoader",
    "NotFoundError",
    "Reference",
    "Request",
    "ResolutionService",
    "ServicesProvider",
    "key_of",
]
