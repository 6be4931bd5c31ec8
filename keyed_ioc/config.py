import json
import logging
import tomllib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .core import ConfigError, Reference
from .typing_utils import locate

if TYPE_CHECKING:
    from .core import Container

logger = logging.getLogger(__name__)


class ConfigLoader(ABC):
    @abstractmethod
    def apply_to(self, container: "Container"): ...


class MappingConfigLoader(ConfigLoader):
    """
    Registers services described by a plain mapping.

    The mapping may hold three sections:
        services: key -> entry, registered with ``Container.set``
        singletons: key -> entry, registered with ``Container.singleton``
        aliases: alias -> target key

    An entry is either a literal value or a table with exactly one of ``value``, ``class`` or ``factory``
    (the last two being dotted import paths) and optionally ``arguments``, ``properties`` and ``calls``.
    String arguments starting with ``@`` refer to other services.

    Example:
        MappingConfigLoader({
            "services": {"db.url": "sqlite://", "db": {"class": "app.db.Database", "arguments": ["@db.url"]}},
            "aliases": {"database": "db"},
        })
    """

    SECTIONS = ("services", "singletons", "aliases")
    ENTRY_SOURCES = ("value", "class", "factory")
    ENTRY_OPTIONS = ("arguments", "properties", "calls")
    REFERENCE_PREFIX = "@"

    def __init__(self, mapping: Mapping[str, Any]):
        unknown = sorted(set(mapping) - set(self.SECTIONS))
        if unknown:
            raise ConfigError(f"Unknown configuration sections: {', '.join(unknown)}")
        self.mapping = mapping

    def apply_to(self, container: "Container"):
        for key, entry in self.mapping.get("services", {}).items():
            self._register(container.set, key, entry)

        for key, entry in self.mapping.get("singletons", {}).items():
            self._register(container.singleton, key, entry)

        for alias, target in self.mapping.get("aliases", {}).items():
            container.alias(alias, target)

    def _register(self, register, key: str, entry: Any):
        if not isinstance(entry, Mapping):
            register(key, entry)
            return

        unknown = sorted(set(entry) - set(self.ENTRY_SOURCES) - set(self.ENTRY_OPTIONS))
        if unknown:
            raise ConfigError(f"Service [{key}] has unknown options: {', '.join(unknown)}")

        register(
            key,
            self._get_concrete(key, entry),
            arguments=[self._get_value(a) for a in entry.get("arguments", ())],
            properties={name: self._get_value(v) for name, v in entry.get("properties", {}).items()},
            method_calls=[(name, [self._get_value(a) for a in args]) for name, args in entry.get("calls", ())],
        )

    def _get_concrete(self, key: str, entry: Mapping[str, Any]) -> Any:
        sources = [s for s in self.ENTRY_SOURCES if s in entry]
        if len(sources) != 1:
            raise ConfigError(f"Service [{key}] must define exactly one of {', '.join(self.ENTRY_SOURCES)}")

        source = sources[0]
        if source == "value":
            return entry["value"]

        path = entry[source]
        located = locate(path) if isinstance(path, str) else None
        if located is None:
            raise ConfigError(f"Cannot locate {source} [{path}] for service [{key}]")
        if source == "class" and not isinstance(located, type):
            raise ConfigError(f"[{path}] for service [{key}] is not a class")
        if source == "factory" and not callable(located):
            raise ConfigError(f"[{path}] for service [{key}] is not callable")

        return located

    def _get_value(self, value: Any) -> Any:
        if isinstance(value, str) and value.startswith(self.REFERENCE_PREFIX):
            return Reference(value[len(self.REFERENCE_PREFIX) :])
        return value


class FileConfigLoader(ConfigLoader):
    """Reads a JSON or TOML file laid out the way ``MappingConfigLoader`` expects."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Mapping[str, Any]:
        suffix = self.path.suffix.lower()
        try:
            if suffix == ".json":
                with self.path.open(encoding="utf-8") as f:
                    return json.load(f)
            if suffix == ".toml":
                with self.path.open("rb") as f:
                    return tomllib.load(f)
        except (json.JSONDecodeError, tomllib.TOMLDecodeError) as ex:
            raise ConfigError(f"Invalid configuration file {self.path}: {ex}") from ex

        raise ConfigError(f"Unsupported configuration file type [{suffix}] for {self.path}")

    def apply_to(self, container: "Container"):
        logger.debug("Loading container configuration from %s", self.path)
        MappingConfigLoader(self.load()).apply_to(container)
