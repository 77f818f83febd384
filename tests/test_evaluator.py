"""Tests for pathdsl.evaluator module."""

import logging

import pytest
from models import Address, Bag, Person

from pathdsl.errors import (
    AbandonedWriteError,
    InstantiationError,
    MemberNotFoundError,
    UnsupportedOperationError,
    UnsupportedWriteError,
)
from pathdsl.evaluator import PathEvaluator
from pathdsl.expression import compile  # noqa: A004
from pathdsl.factory import DEFAULT_FACTORY, InstanceFactory


@pytest.fixture
def five_addresses() -> InstanceFactory:
    return InstanceFactory.empty().put(list[Address], lambda _: [None] * 5)


class TestGet:
    """Test reads through instance expressions."""

    def test_nested_read(self) -> None:
        """Test reading through fields, indices and methods."""
        person = Person(addresses=[Address("pe")])
        assert compile("addresses[0].state.upper()").get_value(person) == "PE"

    def test_none_root(self) -> None:
        """Test a None root reads as None."""
        assert compile("name").get_value(None) is None

    def test_none_propagates(self) -> None:
        """Test a None intermediate value ends the read without a factory."""
        person = Person()
        assert compile("addresses[0].state").get_value(person) is None
        assert compile("home.state.upper()").get_value(person) is None
        assert person.addresses is None

    def test_read_with_factory_autovivifies(self, five_addresses: InstanceFactory) -> None:
        """Test a factory fills missing intermediate values during reads."""
        person = Person()
        assert compile("addresses[0].state").get_value(person, factory=five_addresses) is None
        assert person.addresses == [Address(), None, None, None, None]

    def test_raw_nested_array(self) -> None:
        """Test reading and writing [0][2] on nested lists."""
        grid = [[1, 2, 3, 4, 5]]
        expr = compile("[0][2]")
        assert expr.get_value(grid) == 3
        expr.set_value(grid, 77)
        assert grid[0][2] == 77
        assert expr.get_value(grid) == 77

    def test_method_arguments(self) -> None:
        """Test method arguments come from the mapping."""
        expr = compile("greet(greeting).lower()")
        assert expr.get_value(Person(name="Ana"), {"greeting": "Hi"}) == "hi, ana"

    def test_unknown_member(self) -> None:
        """Test undeclared attributes raise MemberNotFoundError."""
        with pytest.raises(MemberNotFoundError):
            compile("missing").get_value(Person())


class TestSet:
    """Test writes through instance expressions."""

    def test_set_get_round_trip(self) -> None:
        """Test a written value reads back."""
        person = Person()
        compile("home.state").set_value(person, "PE")
        assert compile("home.state").get_value(person) == "PE"
        assert person.home == Address("PE")

    def test_autovivified_sequence(self, five_addresses: InstanceFactory) -> None:
        """Test list[Address] and Address are both created on write."""
        person = Person()
        compile("addresses[0].state").set_value(person, "PE", factory=five_addresses)
        assert person.addresses is not None
        assert len(person.addresses) == 5
        assert person.addresses[0] == Address("PE")
        assert compile("addresses[0].state").get_value(person) == "PE"

    def test_default_sequence_is_empty(self) -> None:
        """Test the default factory builds an empty list, so indexing fails before anything is attached."""
        person = Person()
        with pytest.raises(IndexError):
            compile("addresses[0].state").set_value(person, "PE")
        assert person.addresses is None

    def test_write_through_getter(self) -> None:
        """Test get* method nodes are written through set*."""
        person = Person()
        compile("home.get_state()").set_value(person, "PE")
        assert person.home == Address("PE")

    def test_unsupported_write(self) -> None:
        """Test writing through a non-getter method raises."""
        with pytest.raises(UnsupportedWriteError):
            compile("greet(greeting)").set_value(Person(), "x", {"greeting": "Hi"})

    def test_none_root_is_noop(self) -> None:
        """Test writing into a None root does nothing."""
        compile("home.state").set_value(None, "PE")

    def test_abandoned_write_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test a producer returning None abandons the write."""
        factory = InstanceFactory.empty().put(Address, lambda _: None)
        person = Person()
        with caplog.at_level(logging.WARNING, logger="pathdsl.evaluator"):
            compile("home.state").set_value(person, "PE", factory=factory)
        assert person.home is None
        assert "abandoned" in caplog.text

    def test_strict_write_raises(self) -> None:
        """Test strict writes raise instead of abandoning."""
        factory = InstanceFactory.empty().put(Address, lambda _: None)
        with pytest.raises(InstantiationError):
            compile("home.state").set_value(Person(), "PE", factory=factory, strict=True)

    def test_abandoned_sequence_write_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test a sequence producer returning None abandons a write to the last node."""
        factory = InstanceFactory.empty().put(list[Address], lambda _: None)
        person = Person()
        with caplog.at_level(logging.WARNING, logger="pathdsl.evaluator"):
            compile("addresses[0]").set_value(person, Address("PE"), factory=factory)
        assert person.addresses is None
        assert "abandoned" in caplog.text

    def test_strict_sequence_write_raises(self) -> None:
        """Test strict writes raise when the last node's sequence cannot be produced."""
        factory = InstanceFactory.empty().put(list[Address], lambda _: None)
        person = Person()
        with pytest.raises(AbandonedWriteError):
            compile("addresses[0]").set_value(person, Address("PE"), factory=factory, strict=True)
        with pytest.raises(InstantiationError):
            compile("addresses[0].state").set_value(person, "PE", factory=factory, strict=True)
        assert person.addresses is None

    def test_read_ends_when_sequence_cannot_be_produced(self) -> None:
        """Test a read with a factory yields None when a sequence cannot be produced."""
        factory = InstanceFactory.empty().put(list[Address], lambda _: None)
        person = Person()
        assert compile("addresses[0].state").get_value(person, factory=factory) is None
        assert person.addresses is None

    def test_undeclared_type_cannot_be_created(self) -> None:
        """Test an untyped None attribute cannot be autovivified."""
        with pytest.raises(InstantiationError):
            compile("item.name").set_value(Bag(), "x")

    def test_injected_default_factory(self) -> None:
        """Test the evaluator's default factory is used for writes."""
        evaluator = PathEvaluator(
            default_factory=InstanceFactory.empty().put(Address, lambda _: Address(country="BR")),
        )
        person = Person()
        evaluator.set(compile("home.state"), person, "PE")
        assert person.home == Address("PE", "BR")


class TestStatic:
    """Test static evaluation."""

    def test_instance_calls_rejected(self) -> None:
        """Test static expressions refuse instance get/set, even with None."""
        expr = compile("ADDRESS.state", Person)
        with pytest.raises(UnsupportedOperationError, match="do not accept a root object"):
            expr.get_value(None)
        with pytest.raises(UnsupportedOperationError):
            expr.get_value(Person(), {})
        with pytest.raises(UnsupportedOperationError):
            expr.set_value(None, "PE")

    def test_static_read_and_write(self) -> None:
        """Test ADDRESS is created and written on the class."""
        expr = compile("ADDRESS.state", Person)
        assert expr.get_static_value() is None
        expr.set_static_value("PE")
        assert Person.ADDRESS == Address("PE")
        assert expr.get_static_value() == "PE"

    def test_other_type_rejected(self) -> None:
        """Test static expressions only evaluate against their root type."""
        with pytest.raises(UnsupportedOperationError):
            compile("NAME", Person).get_static_value(Address)

    def test_instance_expression_against_type(self) -> None:
        """Test a non-static expression may be evaluated on a given type."""
        expr = compile("NAME")
        assert expr.get_static_value(Person) == "foo"
        expr.set_static_value("bar", Person)
        assert Person.NAME == "bar"

    def test_instance_expression_needs_type(self) -> None:
        """Test static evaluation of a non-static expression needs a type."""
        with pytest.raises(UnsupportedOperationError):
            compile("NAME").get_static_value()

    def test_null_with_and_without_factory(self) -> None:
        """Test NULL.startswith(x) is None, then False once NULL is created."""
        expr = compile("NULL.startswith(x)")
        args = {"x": "foo"}
        assert expr.get_static_value(Person, args) is None
        assert expr.get_static_value(Person, args, DEFAULT_FACTORY) is False
        assert Person.NULL == ""

    def test_write_then_compare(self) -> None:
        """Test NAME.startswith(x) after writing through the sub-path."""
        expr = compile("NULL.startswith(x)")
        expr.move_backward(1).set_static_value(Person.NAME, Person)
        assert expr.get_static_value(Person, {"x": "foo"}) is True

    def test_static_sequence(self) -> None:
        """Test a static list is created by the factory."""
        factory = InstanceFactory.empty().put(list[str], lambda _: [None] * 3)
        compile("TAGS[1]", Person).set_static_value("vip", factory=factory)
        assert Person.TAGS == [None, "vip", None]

    def test_static_sequence_not_produced(self) -> None:
        """Test a static write to an unproducible list is abandoned, or raises when strict."""
        factory = InstanceFactory.empty().put(list[str], lambda _: None)
        expr = compile("TAGS[1]", Person)
        expr.set_static_value("vip", factory=factory)
        assert Person.TAGS is None
        with pytest.raises(AbandonedWriteError):
            expr.set_static_value("vip", factory=factory, strict=True)


class TestBulk:
    """Test the bulk read/write helpers."""

    def test_get_all(self) -> None:
        """Test reading several expressions at once."""
        person = Person(name="Ana", home=Address("PE"))
        values = PathEvaluator().get_all(person, ["name", "home.state", "addresses[0]"])
        assert values == {"name": "Ana", "home.state": "PE", "addresses[0]": None}

    def test_set_all(self) -> None:
        """Test writing several expressions and getting the root back."""
        person = Person()
        result = PathEvaluator().set_all(person, {"name": "Ana", "home.country": "BR"})
        assert result is person
        assert person.name == "Ana"
        assert person.home == Address(country="BR")
