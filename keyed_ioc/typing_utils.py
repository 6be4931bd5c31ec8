import importlib
import inspect
import types
from collections.abc import Callable
from typing import Any, Union, get_args, get_origin, get_type_hints

from .utils import EMPTY

Key = Union[str, type]


def key_of(key: Key) -> str:
    """
    Normalise a key to the string it is stored under.
    Types are addressed by their fully qualified name, so ``Foo`` and ``"pkg.mod.Foo"`` are the same key.
    """
    if isinstance(key, str):
        return key
    if isinstance(key, type):
        return f"{key.__module__}.{key.__qualname__}"
    raise TypeError(f"Keys must be strings or types, got {type(key).__name__}: {key!r}")


def locate(path: str) -> Any | None:
    """
    Find the object a dotted path such as ``"pkg.module.Class"`` points to.
    Returns None when nothing importable lives at that path. Bare names without a dot are never imported.
    """
    parts = path.split(".")
    if not all(parts):
        return None

    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        try:
            target = importlib.import_module(module_name)
        except ImportError:
            continue

        try:
            for attribute in parts[split:]:
                target = getattr(target, attribute)
        except AttributeError:
            return None
        return target

    return None


def locate_type(key: Key) -> type | None:
    if isinstance(key, type):
        return key
    located = locate(key)
    return located if isinstance(located, type) else None


def get_dependency_type(annotation: Any) -> type | None:
    """
    Turn a parameter annotation into the type that should be resolved for it.
    ``Optional[X]`` and ``X | None`` unwrap to ``X``; anything that is not a plain class gives None.
    """
    if annotation is EMPTY:
        return None

    if get_origin(annotation) in (Union, types.UnionType):
        members = [a for a in get_args(annotation) if a is not type(None)]
        if len(members) != 1:
            return None
        annotation = members[0]

    if get_origin(annotation) is not None:
        return None

    return annotation if isinstance(annotation, type) else None


class ArgInfo:
    def __init__(self, name: str, arg_type: Any, default_value: Any, keyword_only: bool):
        self.name = name
        self.arg_type = arg_type
        self.default_value = EMPTY if default_value is inspect.Parameter.empty else default_value
        self.keyword_only = keyword_only

    @property
    def has_default(self):
        return self.default_value is not EMPTY


def get_arg_info(subject: Callable, local_ns: dict | None = None, global_ns: dict | None = None) -> list[ArgInfo]:
    arg_spec_fn = subject if inspect.isfunction(subject) else subject.__init__
    hints = get_type_hints(arg_spec_fn, global_ns, local_ns)
    signature = inspect.signature(subject)
    infos: list[ArgInfo] = []
    for name, param in signature.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        infos.append(
            ArgInfo(
                name=name,
                arg_type=hints.get(name, EMPTY),
                default_value=param.default,
                keyword_only=param.kind is inspect.Parameter.KEYWORD_ONLY,
            )
        )
    return infos
