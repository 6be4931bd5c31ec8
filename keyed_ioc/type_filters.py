import inspect

from theutilitybelt.functional.predicate import predicate


def _is_abstract(t: type):
    return inspect.isabstract(t)


def _is_protocol(t: type):
    return bool(getattr(t, "_is_protocol", False))


def _is_builtin(t: type):
    return t.__module__ == "builtins"


def _declares_constructor(t: type):
    return t.__init__ is not object.__init__


is_abstract = predicate(_is_abstract)
is_protocol = predicate(_is_protocol)
is_builtin = predicate(_is_builtin)
declares_constructor = predicate(_declares_constructor)

# abstract classes and protocols can be registered against but never built
is_non_instantiable = is_abstract | is_protocol
