from unittest.mock import Mock

import pytest
from assertive import (
    assert_that,
    is_exact_type,
    is_same_instance_as,
    raises_exception,
    was_called,
)

from keyed_ioc import (
    Container,
    NotFoundError,
    Reference,
    key_of,
)


def test_object_registration_always_returns_the_same_instance():
    class A:
        pass

    instance = A()
    container = Container()
    container.set("a", instance)

    assert_that(container.get("a")).matches(is_same_instance_as(instance))
    assert_that(container.get("a")).matches(is_same_instance_as(instance))
    assert container.is_singleton("a")


@pytest.mark.parametrize("value", ["sqlite://", 42, 1.5, True, None, [1, 2], {"debug": True}])
def test_primitive_registration_is_a_singleton(value):
    container = Container()
    container.set("value", value)

    assert container.get("value") == value
    assert_that(container.get("value")).matches(is_same_instance_as(container.get("value")))
    assert container.is_singleton("value")


def test_factory_is_called_on_every_get():
    class A:
        pass

    spy = Mock()

    def factory():
        spy()
        return A()

    container = Container()
    container.set("a", factory)

    a1 = container.get("a")
    a2 = container.get("a")

    assert_that(a1).matches(is_exact_type(A))
    assert a1 is not a2
    assert spy.call_count == 2
    assert not container.is_singleton("a")


def test_singleton_factory_is_called_once():
    class A:
        pass

    spy = Mock()

    def factory():
        spy()
        return A()

    container = Container()
    container.singleton("a", factory)

    a1 = container.get("a")
    a2 = container.get("a")

    assert_that(a2).matches(is_same_instance_as(a1))
    assert_that(spy).matches(was_called().once())


def test_factory_uses_registered_arguments_and_resolves_references():
    container = Container()
    container.set("name", "Bob")
    container.set("greeting", lambda greeting, name: f"{greeting} {name}", arguments=["Hello", Reference("name")])

    assert container.get("greeting") == "Hello Bob"


def test_factory_override_arguments_replace_registered_arguments():
    container = Container()
    container.set("sum", lambda *numbers: sum(numbers), arguments=[1, 2])

    assert container.get("sum") == 3
    assert container.get("sum", arguments=[10, 20, 30]) == 60


def test_factory_result_receives_properties_and_method_calls():
    class Mailer:
        def __init__(self):
            self.transport = None
            self.headers = {}

        def add_header(self, name, value):
            self.headers[name] = value

    container = Container()
    container.set("transport", "smtp")
    container.set(
        "mailer",
        lambda: Mailer(),
        properties={"transport": Reference("transport")},
        method_calls=[("add_header", ["X-Mailer", "keyed_ioc"])],
    )

    mailer = container.get("mailer")

    assert mailer.transport == "smtp"
    assert mailer.headers == {"X-Mailer": "keyed_ioc"}


def test_type_keys_and_their_dotted_names_are_the_same_key():
    class A:
        pass

    instance = A()
    container = Container()
    container.set(A, instance)

    assert_that(container.get(key_of(A))).matches(is_same_instance_as(instance))


def test_set_without_concrete_registers_the_type_itself():
    class A:
        pass

    container = Container()
    container.set(A)

    assert_that(container.get(A)).matches(is_exact_type(A))
    assert container.get(A) is not container.get(A)


def test_set_without_concrete_requires_a_type_key():
    container = Container()

    with raises_exception(TypeError):
        container.set("a")


def test_unsupported_key_types_are_rejected():
    container = Container()

    with raises_exception(TypeError):
        container.set(42, "value")


def test_alias_resolves_to_target():
    container = Container()
    container.alias("A", "B")
    container.set("B", "value")

    assert container.get("A") == "value"
    assert container.get("A") == container.get("B")


def test_alias_shares_the_target_singleton():
    class A:
        pass

    container = Container()
    container.singleton("a", lambda: A())
    container.alias("also_a", "a")

    assert_that(container.get("also_a")).matches(is_same_instance_as(container.get("a")))


def test_alias_to_a_removed_key_is_not_found():
    container = Container()
    container.alias("A", "B")
    container.set("B", "value")
    assert container.get("A") == "value"

    container.remove("B")

    with raises_exception(NotFoundError):
        container.get("A")
    assert not container.has("A")


def test_alias_to_a_type_builds_the_type():
    class A:
        pass

    container = Container()
    container.alias("a", A)

    assert_that(container.get("a")).matches(is_exact_type(A))


def test_remove_reports_whether_the_key_existed():
    container = Container()
    container.set("a", "value")
    container.alias("alias_of_a", "a")

    assert container.remove("a") is True
    assert container.remove("a") is False
    assert container.remove("never_registered") is False
    assert not container.has("a")


def test_remove_keeps_aliases_pointing_at_the_key():
    container = Container()
    container.set("a", "value")
    container.alias("alias_of_a", "a")

    container.remove("a")

    assert container.is_registered("alias_of_a")


def test_remove_drops_cached_singleton():
    class A:
        pass

    container = Container()
    container.singleton("a", lambda: A())
    first = container.get("a")

    container.remove("a")
    container.set("a", lambda: A())

    assert container.get("a") is not first
    assert not container.is_singleton("a")


def test_re_registration_replaces_a_resolved_singleton():
    container = Container()
    container.set("a", "first")
    assert container.get("a") == "first"

    container.set("a", "second")

    assert container.get("a") == "second"


def test_unknown_key_is_not_found():
    container = Container()

    assert not container.has("missing")
    with raises_exception(NotFoundError):
        container.get("missing")


def test_not_found_error_carries_the_key():
    container = Container()

    with pytest.raises(NotFoundError) as ex:
        container.get("missing.service")

    assert ex.value.key == "missing.service"
    assert "missing.service" in str(ex.value)


def test_container_registers_itself():
    container = Container()

    assert_that(container.get(Container)).matches(is_same_instance_as(container))
    assert_that(container.get("Container")).matches(is_same_instance_as(container))


def test_reset_clears_registrations_but_keeps_self_registration():
    container = Container()
    container.set("a", "value")
    container.provider(Container().set("b", "other"))

    container.reset()

    assert not container.has("a")
    assert not container.has("b")
    assert_that(container.get("Container")).matches(is_same_instance_as(container))


def test_registration_calls_can_be_chained():
    container = Container().set("a", 1).singleton("b", lambda: 2).alias("c", "a")

    assert container.get("a") == 1
    assert container.get("b") == 2
    assert container.get("c") == 1


def test_has_does_not_build_anything():
    spy = Mock()

    def factory():
        spy()
        return "value"

    container = Container()
    container.singleton("a", factory)

    assert container.has("a")
    assert_that(spy).matches(was_called().never())
