# Copyright 2021-present Kensho Technologies, LLC.
"""Types shared by the query tree, the declaration tracer and the providers."""
import collections.abc
from enum import Enum, unique
from typing import (
    Any,
    Generic,
    Iterable,
    Optional,
    TypeVar,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from .exceptions import QueryDeclarationError


EntityT = TypeVar("EntityT")


class Queryable(Generic[EntityT]):
    """Marker type for a deferred sequence of entities that a data-access provider can translate.

    Data context classes use it to annotate their collections, for example:

        class ZooContext:
            animals: Queryable[Animal]

    Only sequence operations applied to a Queryable are recognized by the resolution classifier.
    """


class Enumerable(Generic[EntityT]):
    """Marker type for an in-memory sequence of entities.

    Sequence operations on an Enumerable are evaluated by Python code after the data is fetched,
    so a provider never sees them as part of a translatable query.
    """


@unique
class ResolutionKind(Enum):
    """The reduction that must be applied to the result of a field's compiled query."""

    UNMODIFIED = "unmodified"  # the compiled query already produces the field's value
    FIRST = "first"  # take the first element, failing if there is none
    FIRST_OR_DEFAULT = "first_or_default"  # take the first element, or None if there is none
    TO_LIST = "to_list"  # materialize the whole sequence as a list


SEQUENCE_RESOLUTION_KINDS = frozenset(
    {ResolutionKind.FIRST, ResolutionKind.FIRST_OR_DEFAULT, ResolutionKind.TO_LIST}
)

_SEQUENCE_ORIGINS = frozenset(
    {
        Queryable,
        Enumerable,
        collections.abc.Iterable,
        collections.abc.Collection,
        collections.abc.Sequence,
        list,
        tuple,
    }
)


def get_element_type(sequence_type: Any) -> Optional[Any]:
    """Return the element type of the given sequence type, or None if it is not a sequence type."""
    if sequence_type in _SEQUENCE_ORIGINS:
        return Any

    origin = get_origin(sequence_type)
    if origin not in _SEQUENCE_ORIGINS:
        return None

    type_args = get_args(sequence_type)
    if not type_args:
        return Any
    return type_args[0]


def is_sequence_type(candidate_type: Any) -> bool:
    """Return True if values of the given type are sequences of entities."""
    return get_element_type(candidate_type) is not None


def is_queryable_type(candidate_type: Any) -> bool:
    """Return True if the given type is a provider-facing Queryable sequence type."""
    return candidate_type is Queryable or get_origin(candidate_type) is Queryable


def make_sequence_type(element_type: Any) -> Any:
    """Return the general sequence type used as the declared result of sequence-returning fields."""
    return Iterable[element_type]


def is_assignable(source_type: Any, target_type: Any) -> bool:
    """Return True if a value of source_type may be used where target_type is expected."""
    if target_type is Any or target_type is object or source_type is Any:
        return True
    if source_type == target_type:
        return True

    if get_origin(target_type) is Union:
        return any(is_assignable(source_type, option) for option in get_args(target_type))

    source_element = get_element_type(source_type)
    target_element = get_element_type(target_type)
    if source_element is not None and target_element is not None:
        target_origin = get_origin(target_type) or target_type
        source_origin = get_origin(source_type) or source_type
        if target_origin is collections.abc.Iterable or target_origin is source_origin:
            return is_assignable(source_element, target_element)
        return False
    if source_element is not None or target_element is not None:
        return False

    if isinstance(source_type, type) and isinstance(target_type, type):
        return issubclass(source_type, target_type)
    return False


def get_member_type(owner_type: Any, member_name: str) -> Any:
    """Return the declared type of a member of the given type, or Any if it cannot be known.

    Raises:
        QueryDeclarationError: if the owner type declares its members with annotations,
                               and has no member with the given name.
    """
    if not isinstance(owner_type, type) or owner_type is object:
        return Any
    if issubclass(owner_type, collections.abc.Mapping):
        return Any

    type_hints = get_type_hints(owner_type)
    if member_name in type_hints:
        return type_hints[member_name]

    if type_hints and not hasattr(owner_type, member_name):
        raise QueryDeclarationError(
            "Type {} has no member named {}. Known members: {}".format(
                owner_type.__name__, member_name, sorted(type_hints)
            )
        )
    return Any
