# Copyright 2021-present Kensho Technologies, LLC.
from collections.abc import Mapping
import re
from typing import Any, Collection, TypeVar

import funcy


# Names of GraphQL fields, as defined by the GraphQL specification.
VALID_FIELD_NAME_REGEX = re.compile(r"^[_a-zA-Z][_a-zA-Z0-9]*$")

T = TypeVar("T")


def get_only_element_from_collection(one_element_collection: Collection[T]) -> T:
    """Assert that the collection has exactly one element, then return that element."""
    if len(one_element_collection) != 1:
        raise AssertionError(
            "Expected a collection with exactly one element, but got: {}".format(
                one_element_collection
            )
        )
    return funcy.first(one_element_collection)


def read_member(value: Any, member_name: str) -> Any:
    """Return the named member of a mapping (by key) or of any other object (by attribute).

    Raises:
        AttributeError: if the value has no member with the given name
    """
    if isinstance(value, Mapping):
        try:
            return value[member_name]
        except KeyError as e:
            raise AttributeError(
                "Mapping {} has no key {}".format(value, member_name)
            ) from e

    return getattr(value, member_name)


def validate_field_name(name: str) -> None:
    """Ensure the given name can be used as a GraphQL field name."""
    if not isinstance(name, str):
        raise TypeError("Expected string field name, got: {} {}".format(type(name).__name__, name))

    if not VALID_FIELD_NAME_REGEX.match(name):
        raise ValueError("Invalid GraphQL field name: {}".format(name))
    if name.startswith("__"):
        raise ValueError('Names starting with "__" are reserved by GraphQL, got: {}'.format(name))
