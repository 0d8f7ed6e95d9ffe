# Copyright 2021-present Kensho Technologies, LLC.
"""The schema registry that stores the compiled fields of a data context."""
import dataclasses
from dataclasses import dataclass
import logging
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional

from .binding import CompiledFieldQuery
from .exceptions import SchemaRegistrationError
from .helpers import validate_field_name
from .typedefs import SEQUENCE_RESOLUTION_KINDS, ResolutionKind, is_sequence_type


logger = logging.getLogger(__name__)


# Called with the data context and the argument value, before the field's query runs.
MutationCallback = Callable[[Any, Any], None]


@dataclass(frozen=True)
class FieldDescriptor:
    """Everything the execution engine needs to resolve one field of the schema."""

    name: str
    resolution_kind: ResolutionKind
    compiled_query: CompiledFieldQuery
    mutation: Optional[MutationCallback] = None
    description: Optional[str] = None

    @property
    def result_type(self) -> Any:
        """Return the type produced by the field's compiled query, before resolution."""
        return self.compiled_query.result_type


class GraphQLFieldBuilder(object):
    """Handle to a registered field, allowing further configuration of it."""

    def __init__(self, schema: "GraphQLSchema", name: str) -> None:
        """Construct a new GraphQLFieldBuilder for the named field of the schema."""
        self._schema = schema
        self._name = name

    @property
    def descriptor(self) -> FieldDescriptor:
        """Return the current descriptor of the field."""
        return self._schema.get_field(self._name)

    def describe(self, description: str) -> "GraphQLFieldBuilder":
        """Set the human-readable description of the field, and return this builder."""
        # pylint: disable=protected-access
        self._schema._replace_field(dataclasses.replace(self.descriptor, description=description))
        # pylint: enable=protected-access
        return self


class GraphQLSchema(object):
    """Registry of the fields that can be queried against a data context type.

    The schema must be fully built before it is used to serve requests: registering fields is not
    safe to do concurrently with reading them.
    """

    def __init__(self, context_type: Any) -> None:
        """Construct an empty schema for the given data context type."""
        self.context_type = context_type
        self._fields: Dict[str, FieldDescriptor] = {}

    @property
    def fields(self) -> Mapping[str, FieldDescriptor]:
        """Return a read-only view of the registered fields, keyed by name."""
        return MappingProxyType(self._fields)

    def get_field(self, name: str) -> FieldDescriptor:
        """Return the descriptor of the named field, raising KeyError if there is no such field."""
        return self._fields[name]

    def add_unmodified_field_internal(
        self,
        name: str,
        compiled_query: CompiledFieldQuery,
        mutation: Optional[MutationCallback] = None,
    ) -> GraphQLFieldBuilder:
        """Register a field whose compiled query directly produces the field's value."""
        if is_sequence_type(compiled_query.result_type):
            raise SchemaRegistrationError(
                "Field {} has no resolution, but its query produces a sequence of type {}. "
                "Declare it as a list field instead.".format(name, compiled_query.result_type)
            )
        return self._register(
            FieldDescriptor(name, ResolutionKind.UNMODIFIED, compiled_query, mutation)
        )

    def add_field_internal(
        self,
        name: str,
        compiled_query: CompiledFieldQuery,
        resolution_kind: ResolutionKind,
        mutation: Optional[MutationCallback] = None,
    ) -> GraphQLFieldBuilder:
        """Register a field whose compiled query produces a sequence to reduce after fetching."""
        if resolution_kind not in SEQUENCE_RESOLUTION_KINDS:
            raise SchemaRegistrationError(
                "Field {} must be resolved from a sequence, but got resolution kind {}.".format(
                    name, resolution_kind
                )
            )
        if not is_sequence_type(compiled_query.result_type):
            raise SchemaRegistrationError(
                "Field {} is resolved with {}, but its query produces a value of non-sequence "
                "type {}.".format(name, resolution_kind, compiled_query.result_type)
            )
        return self._register(FieldDescriptor(name, resolution_kind, compiled_query, mutation))

    def _register(self, descriptor: FieldDescriptor) -> GraphQLFieldBuilder:
        """Add the descriptor to the schema, ensuring its name is valid and not yet taken."""
        try:
            validate_field_name(descriptor.name)
        except (TypeError, ValueError) as e:
            raise SchemaRegistrationError(str(e)) from e

        if descriptor.name in self._fields:
            raise SchemaRegistrationError(
                "A field named {} is already registered in the schema.".format(descriptor.name)
            )

        self._fields[descriptor.name] = descriptor
        logger.debug(
            "Registered field %s with resolution kind %s",
            descriptor.name,
            descriptor.resolution_kind.value,
        )
        return GraphQLFieldBuilder(self, descriptor.name)

    def _replace_field(self, descriptor: FieldDescriptor) -> None:
        """Replace the descriptor of an already registered field."""
        if descriptor.name not in self._fields:
            raise AssertionError(
                "Cannot replace field {} that is not registered.".format(descriptor.name)
            )
        self._fields[descriptor.name] = descriptor
