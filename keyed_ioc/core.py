"""Key based IOC container."""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .type_filters import declares_constructor, is_builtin, is_non_instantiable
from .typing_utils import ArgInfo, Key, get_arg_info, get_dependency_type, key_of, locate_type
from .utils import EMPTY

if TYPE_CHECKING:
    from .config import ConfigLoader

logger = logging.getLogger(__name__)

PRIMITIVE_TYPES = (type(None), bool, int, float, complex, str, bytes, list, tuple, dict, set, frozenset)


class ContainerError(Exception):
    pass


class NotFoundError(ContainerError, LookupError):
    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self):
        return f"Service [{self.key}] not found"


class BuildError(ContainerError):
    def __init__(self, message: str, type_name: str | None = None, parameter_name: str | None = None):
        super().__init__(message)
        self.message = message
        self.type_name = type_name
        self.parameter_name = parameter_name

    def __str__(self):
        return self.message


class CycleError(ContainerError):
    def __init__(self, chain: Sequence[str]):
        super().__init__(*chain)
        self.chain = list(chain)

    def __str__(self):
        return f"Circular dependency detected: {' -> '.join(self.chain)}"


class ConfigError(ContainerError):
    pass


class DefinitionKind(Enum):
    OBJECT = "object"
    PRIMITIVE = "primitive"
    FACTORY = "factory"
    CACHED_FACTORY = "cached_factory"
    ALIAS = "alias"
    CLASS = "class"


@dataclass(frozen=True)
class Reference:
    """A value that is looked up in the container at the moment it is used."""

    key: Key


def _resolve_value(value: Any, container: Container) -> Any:
    if isinstance(value, Reference):
        return container.get(value.key)
    return value


@dataclass(frozen=True)
class DependencyBag:
    arguments: tuple = ()
    properties: Mapping[str, Any] = field(default_factory=dict)
    method_calls: tuple[tuple[str, tuple], ...] = ()

    @classmethod
    def create(
        cls,
        arguments: Iterable[Any] = (),
        properties: Mapping[str, Any] | None = None,
        method_calls: Iterable[tuple[str, Iterable[Any]]] = (),
    ) -> DependencyBag:
        return cls(
            arguments=tuple(arguments),
            properties=dict(properties or {}),
            method_calls=tuple((name, tuple(args)) for name, args in method_calls),
        )

    @property
    def is_empty(self) -> bool:
        return not (self.arguments or self.properties or self.method_calls)

    def resolve_arguments(self, container: Container, supplied: Sequence[Any] | None = None) -> list[Any]:
        arguments = supplied if supplied else self.arguments
        return [_resolve_value(a, container) for a in arguments]

    def apply_to(self, instance: Any, container: Container) -> Any:
        for name, value in self.properties.items():
            setattr(instance, name, _resolve_value(value, container))

        for name, args in self.method_calls:
            getattr(instance, name)(*(_resolve_value(a, container) for a in args))

        return instance


EMPTY_BAG = DependencyBag()


@dataclass(frozen=True)
class Definition:
    key: str
    producer: Any
    kind: DefinitionKind
    dependencies: DependencyBag | None = None
    automatic: bool = False

    def __post_init__(self):
        if self.kind is DefinitionKind.ALIAS and self.dependencies is not None:
            raise ValueError(f"Alias [{self.key}] cannot carry dependencies")

    @property
    def bag(self) -> DependencyBag:
        return EMPTY_BAG if self.dependencies is None else self.dependencies

    @property
    def is_singleton_by_default(self) -> bool:
        return self.kind in (DefinitionKind.OBJECT, DefinitionKind.PRIMITIVE)


class DefinitionRegistry:
    def __init__(self):
        self._definitions: dict[str, Definition] = {}

    def add(self, definition: Definition):
        if definition.key in self._definitions:
            logger.debug("Replacing definition for %s", definition.key)
        self._definitions[definition.key] = definition

    def has(self, key: Key) -> bool:
        return key_of(key) in self._definitions

    def get(self, key: Key) -> Definition | None:
        return self._definitions.get(key_of(key))

    def resolve(self, key: Key) -> Definition | None:
        """
        Follow aliases until a concrete definition is found.
        Returns None when the chain ends on a key that has no definition.
        """
        visited: list[str] = []
        name = key_of(key)
        while True:
            if name in visited:
                raise CycleError([*visited[visited.index(name) :], name])
            visited.append(name)

            definition = self._definitions.get(name)
            if definition is None or definition.kind is not DefinitionKind.ALIAS:
                return definition
            name = key_of(definition.producer)

    def remove(self, key: Key) -> bool:
        return self._definitions.pop(key_of(key), None) is not None

    def clear(self):
        self._definitions.clear()

    def __contains__(self, key: Key) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._definitions)


@runtime_checkable
class ServicesProvider(Protocol):
    def has(self, key: Key) -> bool: ...

    def get(self, key: Key) -> Any: ...


@dataclass(frozen=True)
class Request:
    key: str
    target: Key
    registry: DefinitionRegistry
    providers: Sequence[ServicesProvider]
    container: Container
    arguments: Sequence[Any] | None = None
    concrete: type | None = None

    @property
    def definition(self) -> Definition | None:
        return self.registry.get(self.key)

    @property
    def default_bag(self) -> DependencyBag:
        definition = self.definition
        return EMPTY_BAG if definition is None else definition.bag

    @property
    def default_arguments(self) -> tuple:
        return self.default_bag.arguments

    @property
    def default_properties(self) -> Mapping[str, Any]:
        return self.default_bag.properties

    @property
    def default_method_calls(self) -> tuple[tuple[str, tuple], ...]:
        return self.default_bag.method_calls

    def locate_concrete(self) -> type | None:
        if self.concrete is not None:
            return self.concrete
        return locate_type(self.target)

    def for_concrete(self, concrete: type) -> Request:
        return replace(self, concrete=concrete)


class AutomaticBuilder:
    def execute(self, request: Request) -> Any:
        concrete = request.locate_concrete()
        if concrete is None:
            raise NotFoundError(request.key)

        self._guard_against_non_instantiable(concrete)
        container = request.container

        if not declares_constructor(concrete):

            def create_without_arguments(supplied: Sequence[Any] | None = None):
                return concrete()

            bag = DependencyBag(
                arguments=request.default_arguments,
                properties=request.default_properties,
                method_calls=request.default_method_calls,
            )
            instance = create_without_arguments()
            self._cache(request, create_without_arguments, bag)
            return bag.apply_to(instance, container)

        arguments, keyword_arguments = self._get_constructor_arguments(concrete, request)

        def create(supplied: Sequence[Any] | None = None):
            if supplied:
                return concrete(*(_resolve_value(a, container) for a in supplied))
            return concrete(
                *(_resolve_value(a, container) for a in arguments),
                **{name: _resolve_value(v, container) for name, v in keyword_arguments.items()},
            )

        bag = DependencyBag(
            arguments=tuple(arguments),
            properties=request.default_properties,
            method_calls=request.default_method_calls,
        )
        instance = create()
        self._cache(request, create, bag)
        return bag.apply_to(instance, container)

    @staticmethod
    def _guard_against_non_instantiable(concrete: type):
        if is_non_instantiable(concrete):
            raise BuildError(f"Non-instantiable class [{key_of(concrete)}]", type_name=key_of(concrete))

    @staticmethod
    def _cache(request: Request, create: Callable[..., Any], bag: DependencyBag):
        definition = Definition(
            request.key, create, DefinitionKind.CACHED_FACTORY, bag, automatic=request.definition is None
        )
        request.registry.add(definition)
        logger.debug("Cached automatic build recipe for %s", request.key)

    def _get_constructor_arguments(self, concrete: type, request: Request) -> tuple[list[Any], dict[str, Any]]:
        if request.arguments:
            return list(request.arguments), {}
        if request.default_arguments:
            return list(request.default_arguments), {}
        return self._get_dependencies(concrete, request.container)

    def _get_dependencies(self, concrete: type, container: Container) -> tuple[list[Any], dict[str, Any]]:
        try:
            arg_infos = get_arg_info(concrete)
        except (NameError, ValueError) as ex:
            raise BuildError(
                f"Unable to inspect constructor of [{key_of(concrete)}]: {ex}", type_name=key_of(concrete)
            ) from ex

        arguments: list[Any] = []
        keyword_arguments: dict[str, Any] = {}
        for arg_info in arg_infos:
            if arg_info.keyword_only:
                # python fills in keyword only defaults on its own
                if arg_info.has_default and not self._is_registered(arg_info, container):
                    continue
                keyword_arguments[arg_info.name] = self._get_dependency(arg_info, concrete, container)
            else:
                arguments.append(self._get_dependency(arg_info, concrete, container))

        return arguments, keyword_arguments

    @staticmethod
    def _is_registered(arg_info: ArgInfo, container: Container) -> bool:
        dependency_type = get_dependency_type(arg_info.arg_type)
        return dependency_type is not None and container.is_registered(dependency_type)

    def _get_dependency(self, arg_info: ArgInfo, concrete: type, container: Container) -> Any:
        if arg_info.has_default:
            if self._is_registered(arg_info, container):
                return Reference(get_dependency_type(arg_info.arg_type))
            return arg_info.default_value

        dependency_type = get_dependency_type(arg_info.arg_type)
        if dependency_type is None or (is_builtin(dependency_type) and not container.is_registered(dependency_type)):
            raise BuildError(
                f"Unable to resolve [{arg_info.name}] in {key_of(concrete)}",
                type_name=key_of(concrete),
                parameter_name=arg_info.name,
            )

        return Reference(dependency_type)


class ResolutionService:
    def __init__(self, builder: AutomaticBuilder | None = None):
        self.builder = builder or AutomaticBuilder()

    @staticmethod
    def get_kind(concrete: Any) -> DefinitionKind:
        if isinstance(concrete, type):
            return DefinitionKind.CLASS
        if isinstance(concrete, PRIMITIVE_TYPES):
            return DefinitionKind.PRIMITIVE
        if (
            inspect.isfunction(concrete)
            or inspect.ismethod(concrete)
            or inspect.isbuiltin(concrete)
            or isinstance(concrete, functools.partial)
        ):
            return DefinitionKind.FACTORY
        return DefinitionKind.OBJECT

    def assemble(self, key: Key, concrete: Any, dependencies: DependencyBag | None = None) -> Definition:
        return Definition(key_of(key), concrete, self.get_kind(concrete), dependencies)

    def assemble_alias(self, alias: Key, target: Key) -> Definition:
        key_of(target)
        return Definition(key_of(alias), target, DefinitionKind.ALIAS)

    def has(self, request: Request) -> bool:
        definition = request.definition
        if definition is not None:
            if definition.kind is DefinitionKind.ALIAS:
                return request.container.has(definition.producer)
            if definition.kind is DefinitionKind.CLASS:
                return not is_non_instantiable(definition.producer)
            return True

        if any(provider.has(request.target) for provider in request.providers):
            return True

        concrete = request.locate_concrete()
        return concrete is not None and not is_non_instantiable(concrete)

    def build(self, request: Request) -> Any:
        definition = request.definition
        if definition is None:
            return self._build_undefined(request)

        kind = definition.kind
        if kind in (DefinitionKind.OBJECT, DefinitionKind.PRIMITIVE):
            return definition.producer

        if kind is DefinitionKind.ALIAS:
            return request.container.get(definition.producer, arguments=request.arguments)

        if kind is DefinitionKind.CLASS:
            return self.builder.execute(request.for_concrete(definition.producer))

        bag = definition.bag
        if kind is DefinitionKind.FACTORY:
            instance = definition.producer(*bag.resolve_arguments(request.container, request.arguments))
        else:
            instance = definition.producer(request.arguments)

        return bag.apply_to(instance, request.container)

    def _build_undefined(self, request: Request) -> Any:
        for provider in request.providers:
            if provider.has(request.target):
                logger.debug("Resolving %s from provider %r", request.key, provider)
                return provider.get(request.target)

        if request.locate_concrete() is None:
            raise NotFoundError(request.key)

        return self.builder.execute(request)


class Container:
    def __init__(self, config: ConfigLoader | None = None):
        self._initialize()
        if config is not None:
            self.apply_config(config)

    def _initialize(self):
        self._providers: list[ServicesProvider] = []
        self._registry = DefinitionRegistry()
        self._instances: dict[str, Any] = {}
        self._singletons: set[str] = set()
        self._resolving: list[str] = []
        self._checking: set[str] = set()

        self._service = ResolutionService()

        self.set(Container, self)
        self.alias("Container", Container)

    def has(self, key: Key) -> bool:
        name = key_of(key)
        if name in self._instances:
            return True

        # an alias or provider loop leads back here, so the key is not resolvable through it
        if name in self._checking:
            return False

        self._checking.add(name)
        try:
            return self._service.has(self._get_request(key))
        finally:
            self._checking.discard(name)

    def is_registered(self, key: Key) -> bool:
        """True when the key was registered locally, as opposed to cached by an automatic build."""
        definition = self._registry.get(key)
        return definition is not None and not definition.automatic

    def is_singleton(self, key: Key) -> bool:
        return key_of(key) in self._singletons

    def set(
        self,
        key: Key,
        concrete: Any = EMPTY,
        *,
        arguments: Iterable[Any] = (),
        properties: Mapping[str, Any] | None = None,
        method_calls: Iterable[tuple[str, Iterable[Any]]] = (),
    ) -> Container:
        if concrete is EMPTY:
            if not isinstance(key, type):
                raise TypeError(f"A concrete is required when registering [{key}]")
            concrete = key

        bag = DependencyBag.create(arguments, properties, method_calls)
        definition = self._service.assemble(key, concrete, None if bag.is_empty else bag)

        self._forget(definition.key)
        self._registry.add(definition)

        if definition.is_singleton_by_default:
            self._singletons.add(definition.key)

        logger.debug("Registered %s as %s", definition.key, definition.kind.name)
        return self

    def singleton(
        self,
        key: Key,
        concrete: Any = EMPTY,
        *,
        arguments: Iterable[Any] = (),
        properties: Mapping[str, Any] | None = None,
        method_calls: Iterable[tuple[str, Iterable[Any]]] = (),
    ) -> Container:
        self.set(key, concrete, arguments=arguments, properties=properties, method_calls=method_calls)
        self._singletons.add(key_of(key))

        return self

    def alias(self, alias: Key, target: Key) -> Container:
        definition = self._service.assemble_alias(alias, target)

        self._forget(definition.key)
        self._registry.add(definition)

        logger.debug("Registered %s as alias of %s", definition.key, key_of(target))
        return self

    def provider(self, provider: ServicesProvider) -> Container:
        if not isinstance(provider, ServicesProvider):
            raise TypeError(f"{provider!r} does not provide has() and get()")

        self._providers.append(provider)

        return self

    def get(self, key: Key, arguments: Sequence[Any] | None = None) -> Any:
        name = key_of(key)
        if name in self._instances:
            return self._instances[name]

        with self._resolving_key(name):
            value = self._service.build(self._get_request(key, arguments))

        if name in self._singletons:
            self._instances[name] = value

        return value

    def remove(self, key: Key) -> bool:
        """
        Removes a service from the container.
        Aliases pointing at the key and services held by providers are left alone.
        """
        name = key_of(key)
        if not self._registry.remove(name):
            return False

        self._instances.pop(name, None)
        self._singletons.discard(name)

        return True

    def reset(self):
        self._initialize()

    def apply_config(self, config: ConfigLoader) -> Container:
        config.apply_to(self)

        return self

    @contextmanager
    def _resolving_key(self, name: str):
        if name in self._resolving:
            raise CycleError([*self._resolving[self._resolving.index(name) :], name])

        self._resolving.append(name)
        try:
            yield
        finally:
            self._resolving.pop()

    def _forget(self, name: str):
        self._singletons.discard(name)
        if self._instances.pop(name, EMPTY) is not EMPTY:
            logger.warning("Registration of %s replaces an already resolved singleton", name)

    def _get_request(self, key: Key, arguments: Sequence[Any] | None = None) -> Request:
        return Request(
            key=key_of(key),
            target=key,
            registry=self._registry,
            providers=self._providers,
            container=self,
            arguments=arguments,
        )
