"""Tests for pathdsl.members module."""

from collections import OrderedDict
from typing import Annotated, Any, ClassVar, Literal

import pytest
from models import Address, Broken, Person, Shape, Sparse

from pathdsl.errors import InstantiationError, MemberNotFoundError
from pathdsl.members import (
    FieldMember,
    MemberResolver,
    MethodMember,
    element_type,
    innermost_type,
    is_getter,
    is_setter,
    is_static,
    matches_type,
    normalize_type,
    qualified_name,
)


@pytest.fixture
def resolver() -> MemberResolver:
    return MemberResolver()


class TestTypeNormalisation:
    """Test unwrapping of declared types."""

    def test_optional_is_unwrapped(self) -> None:
        """Test that X | None normalises to X."""
        assert normalize_type(str | None) is str

    def test_classvar_and_annotated_are_unwrapped(self) -> None:
        """Test that ClassVar and Annotated wrappers are stripped."""
        assert normalize_type(ClassVar[int | None]) is int
        assert normalize_type(Annotated[float, "meta"]) is float

    def test_real_unions_are_kept(self) -> None:
        """Test that a union of several types is left alone."""
        assert normalize_type(int | str) == int | str

    def test_element_type_of_list(self) -> None:
        """Test element type extraction from sequences."""
        assert element_type(list[Address] | None) is Address
        assert element_type(tuple[int, ...]) is int

    def test_element_type_of_heterogeneous_tuple(self) -> None:
        """Test that fixed tuples use the index."""
        assert element_type(tuple[int, str], 1) is str
        assert element_type(tuple[int, str]) is None

    def test_element_type_of_non_sequences(self) -> None:
        """Test that strings, mappings and bare types have no element type."""
        assert element_type(str) is None
        assert element_type(dict[str, int]) is None
        assert element_type(list) is None

    def test_innermost_type(self) -> None:
        """Test unwrapping nested sequences."""
        assert innermost_type(list[list[int]]) is int
        assert innermost_type(Address) is Address

    def test_qualified_name(self) -> None:
        """Test importable names, bare for builtins."""
        assert qualified_name(str) == "str"
        assert qualified_name(Person) == f"{Person.__module__}.Person"


class TestMatchesType:
    """Test value-to-annotation compatibility."""

    def test_bool_is_not_an_int(self) -> None:
        """Test that bool is rejected where int is declared."""
        assert matches_type(1, int)
        assert not matches_type(True, int)  # noqa: FBT003

    def test_int_is_a_float(self) -> None:
        """Test numeric widening for float and complex."""
        assert matches_type(1, float)
        assert matches_type(1.5, complex)
        assert not matches_type("1", float)

    def test_none_requires_optional(self) -> None:
        """Test that None only matches annotations allowing it."""
        assert matches_type(None, str | None)
        assert not matches_type(None, str)
        assert matches_type(None, None)
        assert not matches_type("x", None)

    def test_generic_and_literal(self) -> None:
        """Test generics check their origin and literals their members."""
        assert matches_type([1], list[int])
        assert not matches_type((1,), list[int])
        assert matches_type("a", Literal["a", "b"])
        assert not matches_type("c", Literal["a", "b"])

    def test_unconstrained_annotations(self) -> None:
        """Test that Any, object and forward references accept anything."""
        assert matches_type(object(), Any)
        assert matches_type(None, object)
        assert matches_type(3, "SomeForwardRef")


class TestResolveType:
    """Test class lookup by qualified name."""

    def test_builtin(self, resolver: MemberResolver) -> None:
        """Test that bare names resolve against builtins."""
        assert resolver.resolve_type("int") is int

    def test_module_class(self, resolver: MemberResolver) -> None:
        """Test importing the module prefix and walking the rest."""
        assert resolver.resolve_type("collections.OrderedDict") is OrderedDict
        assert resolver.resolve_type(qualified_name(Person)) is Person

    def test_unknown(self, resolver: MemberResolver) -> None:
        """Test that unknown names raise MemberNotFoundError."""
        with pytest.raises(MemberNotFoundError, match="Type not found"):
            resolver.resolve_type("no_such_module.Missing")
        with pytest.raises(MemberNotFoundError):
            resolver.resolve_type("len")

    def test_failing_import(self, resolver: MemberResolver) -> None:
        """Test a module that fails to import is reported as not found, with the cause chained."""
        with pytest.raises(MemberNotFoundError, match="import failed") as exc_info:
            resolver.resolve_type("failing_module.Thing")
        assert isinstance(exc_info.value.__cause__, ImportError)


class TestFields:
    """Test field resolution and access."""

    def test_instance_field(self, resolver: MemberResolver) -> None:
        """Test a dataclass field resolves with its normalised type."""
        member = resolver.resolve_field(Person, "addresses")
        assert isinstance(member, FieldMember)
        assert member.type == list[Address]
        assert not member.is_static

    def test_class_variable_is_static(self, resolver: MemberResolver) -> None:
        """Test that ClassVar fields are static."""
        member = resolver.resolve_field(Person, "NULL")
        assert member.is_static
        assert member.type is str

    def test_property(self, resolver: MemberResolver) -> None:
        """Test that properties resolve with their return type."""
        member = resolver.resolve_field(Person, "initial")
        assert member.is_property
        assert member.type is str

    def test_missing_field(self, resolver: MemberResolver) -> None:
        """Test the error message for unknown fields."""
        with pytest.raises(MemberNotFoundError, match=r"Field not found: .*Person\.missing"):
            resolver.resolve_field(Person, "missing")

    def test_methods_are_not_fields(self, resolver: MemberResolver) -> None:
        """Test that a method name does not resolve as a field."""
        with pytest.raises(MemberNotFoundError):
            resolver.resolve_field(Person, "greet")

    def test_fields_listing(self, resolver: MemberResolver) -> None:
        """Test listing fields with and without a predicate."""
        names = {f.name for f in resolver.fields(Person)}
        assert {"name", "addresses", "NAME", "initial"} <= names
        static_names = {f.name for f in resolver.fields(Person, is_static)}
        assert static_names == {"NAME", "NULL", "ADDRESS", "TAGS"}

    def test_declared_but_unset_reads_none(self, resolver: MemberResolver) -> None:
        """Test reading an annotated attribute that was never assigned."""
        assert resolver.get_field_value(Sparse(), "value") is None

    def test_undeclared_read_raises(self, resolver: MemberResolver) -> None:
        """Test reading an attribute that is neither set nor declared."""
        with pytest.raises(MemberNotFoundError):
            resolver.get_field_value(Address(), "missing")

    def test_set_field_value(self, resolver: MemberResolver) -> None:
        """Test writing declared attributes and rejecting unknown ones."""
        sparse = Sparse()
        resolver.set_field_value(sparse, "value", 3)
        assert sparse.value == 3
        with pytest.raises(MemberNotFoundError):
            resolver.set_field_value(sparse, "other", 1)

    def test_field_type_falls_back_to_value(self, resolver: MemberResolver) -> None:
        """Test that undeclared attributes report the type of their value."""

        class Loose:
            pass

        loose = Loose()
        loose.extra = 1.5  # type: ignore[attr-defined]
        assert resolver.field_type(loose, "extra") is float

    def test_static_field_access(self, resolver: MemberResolver) -> None:
        """Test reading and writing class variables."""
        assert resolver.get_static_field_value(Person, "NAME") == "foo"
        resolver.set_static_field_value(Person, "NAME", "bar")
        assert Person.NAME == "bar"

    def test_property_is_not_static(self, resolver: MemberResolver) -> None:
        """Test that properties cannot be read statically."""
        with pytest.raises(MemberNotFoundError, match="property"):
            resolver.get_static_field_value(Person, "initial")


class TestMethods:
    """Test method resolution and invocation."""

    def test_resolve_method(self, resolver: MemberResolver) -> None:
        """Test return type and receiver-free parameters."""
        member = resolver.resolve_method(Person, "greet", ("Hi",))
        assert isinstance(member, MethodMember)
        assert member.type is str
        assert member.parameters is not None
        assert [p.name for p in member.parameters] == ["greeting"]

    def test_incompatible_arguments(self, resolver: MemberResolver) -> None:
        """Test that values not matching the annotations are rejected."""
        with pytest.raises(MemberNotFoundError, match="No compatible method"):
            resolver.resolve_method(Person, "older_than", (True,))
        with pytest.raises(MemberNotFoundError):
            resolver.resolve_method(Person, "greet", ())

    def test_missing_method(self, resolver: MemberResolver) -> None:
        """Test that unknown and non-callable names are not methods."""
        with pytest.raises(MemberNotFoundError, match="Method not found"):
            resolver.resolve_method(Person, "name")

    def test_static_and_class_methods(self, resolver: MemberResolver) -> None:
        """Test that staticmethods and classmethods are static members."""
        assert resolver.resolve_method(Person, "lowercase_name", (None,)).is_static
        assert resolver.resolve_method(Person, "get_default_name").is_static
        assert not resolver.resolve_method(Person, "get_name").is_static

    def test_builtin_method(self, resolver: MemberResolver) -> None:
        """Test builtin method descriptors resolve."""
        assert resolver.invoke_method("abc", "upper") == "ABC"

    def test_invoke_method(self, resolver: MemberResolver) -> None:
        """Test calling an instance method with positional values."""
        person = Person(name="Ana")
        assert resolver.invoke_method(person, "greet", ("Hi",)) == "Hi, Ana"

    def test_invoke_static_method(self, resolver: MemberResolver) -> None:
        """Test calling static methods and rejecting instance methods."""
        assert resolver.invoke_static_method(Person, "lowercase_name", (Person(name="ANA"),)) == "ana"
        with pytest.raises(MemberNotFoundError, match="not static"):
            resolver.invoke_static_method(Person, "get_name")

    def test_getter_and_setter_predicates(self, resolver: MemberResolver) -> None:
        """Test filtering methods with the member predicates."""
        getters = {m.name for m in resolver.methods(Person, is_getter)}
        setters = {m.name for m in resolver.methods(Person, is_setter)}
        assert {"get_name", "get_default_name"} <= getters
        assert "greet" not in getters
        assert {"set_name", "set_default_name"} <= setters
        assert "full_name" not in setters


class TestConstruct:
    """Test instance construction."""

    def test_plain_class(self, resolver: MemberResolver) -> None:
        """Test constructing a class with no arguments."""
        assert resolver.construct(Address) == Address()

    def test_generic_constructs_origin(self, resolver: MemberResolver) -> None:
        """Test that list[Address] constructs a list."""
        assert resolver.construct(list[Address]) == []

    def test_abstract_and_any(self, resolver: MemberResolver) -> None:
        """Test that abstract classes and Any cannot be constructed."""
        with pytest.raises(InstantiationError):
            resolver.construct(Shape)
        with pytest.raises(InstantiationError, match="undeclared"):
            resolver.construct(Any)

    def test_constructor_failure_is_chained(self, resolver: MemberResolver) -> None:
        """Test that constructor errors are wrapped with their cause."""
        with pytest.raises(InstantiationError) as exc_info:
            resolver.construct(Broken)
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert exc_info.value.cls is Broken
