"""
Typed, immutable view of a linked set of .proto files.

The loader in ``protojsons.protoloader`` produces these records; the builders in
``protojsons.prototojsons`` only read them.
"""

from dataclasses import dataclass, field
from enum import Enum as PyEnum
from typing import Any, Dict, Iterator, Optional, Tuple

RawOptions = Dict[str, Any]

NUMERIC_TYPES = frozenset([
    'double', 'float',
    'int32', 'int64', 'uint32', 'uint64', 'sint32', 'sint64',
    'fixed32', 'fixed64', 'sfixed32', 'sfixed64',
])
BOOLEAN_TYPES = frozenset(['bool'])
STRING_TYPES = frozenset(['string', 'bytes'])
SCALAR_TYPES = NUMERIC_TYPES | BOOLEAN_TYPES | STRING_TYPES


class FieldKind(PyEnum):
    """The closed set of shapes a field can take in the generated schema."""
    NUMERIC = 'numeric'
    BOOLEAN = 'boolean'
    STRING = 'string'
    ENUM = 'enum'
    MESSAGE = 'message'
    MAP = 'map'


class Cardinality(PyEnum):
    SINGULAR = 'singular'
    REPEATED = 'repeated'
    MAP = 'map'


def scalar_kind(proto_type: str) -> Optional[FieldKind]:
    """Map a protobuf scalar type keyword to its field kind, None for named types."""
    if proto_type in NUMERIC_TYPES:
        return FieldKind.NUMERIC
    if proto_type in BOOLEAN_TYPES:
        return FieldKind.BOOLEAN
    if proto_type in STRING_TYPES:
        return FieldKind.STRING
    return None


@dataclass(frozen=True)
class ElementType:
    """
    The element type of a field: the field type itself for singular fields,
    the item type for repeated fields and the value type for map fields.

    ``type_name`` is the qualified name of the referenced message or enum and
    stays empty for scalars.
    """
    kind: FieldKind
    proto_type: str
    type_name: str = ''

    def fully_qualified_name(self) -> str:
        return self.type_name or self.proto_type

    @property
    def is_named(self) -> bool:
        return self.kind in (FieldKind.ENUM, FieldKind.MESSAGE)


@dataclass(frozen=True)
class Field:
    name: str
    full_name: str
    number: int
    kind: FieldKind
    cardinality: Cardinality
    element: ElementType
    comment: str = ''
    key_type: str = ''
    oneof: Optional[str] = None
    in_real_oneof: bool = False
    has_optional_keyword: bool = False
    raw_options: RawOptions = field(default_factory=dict, compare=False, hash=False)

    def fully_qualified_name(self) -> str:
        return self.full_name

    @property
    def is_repeated(self) -> bool:
        return self.cardinality == Cardinality.REPEATED


@dataclass(frozen=True)
class OneOf:
    """A oneof group. Synthetic groups stand for proto3 ``optional`` fields."""
    name: str
    full_name: str
    field_names: Tuple[str, ...]
    comment: str = ''
    synthetic: bool = False

    def fully_qualified_name(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class EnumValue:
    name: str
    full_name: str
    number: int
    comment: str = ''
    raw_options: RawOptions = field(default_factory=dict, compare=False, hash=False)

    def fully_qualified_name(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class Enum:
    name: str
    full_name: str
    values: Tuple[EnumValue, ...]
    comment: str = ''
    raw_options: RawOptions = field(default_factory=dict, compare=False, hash=False)

    def fully_qualified_name(self) -> str:
        return self.full_name


@dataclass(frozen=True)
class Message:
    name: str
    full_name: str
    fields: Tuple[Field, ...]
    oneofs: Tuple[OneOf, ...] = ()
    messages: Tuple['Message', ...] = ()
    enums: Tuple[Enum, ...] = ()
    comment: str = ''
    raw_options: RawOptions = field(default_factory=dict, compare=False, hash=False)

    def fully_qualified_name(self) -> str:
        return self.full_name

    def get_field(self, name: str) -> Optional[Field]:
        return next((f for f in self.fields if f.name == name), None)


@dataclass(frozen=True)
class ProtoFile:
    name: str
    package: str
    syntax: str
    messages: Tuple[Message, ...]
    enums: Tuple[Enum, ...]
    imports: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DescriptorSet:
    """
    All files of a generation run, dependencies before dependents. ``targets``
    names the files that were asked for; the others are their imports.
    """
    files: Tuple[ProtoFile, ...]
    targets: Tuple[str, ...] = ()

    def target_files(self) -> Tuple[ProtoFile, ...]:
        if not self.targets:
            return self.files
        return tuple(f for f in self.files if f.name in self.targets)

    def all_messages(self, files: Optional[Tuple[ProtoFile, ...]] = None) -> Iterator[Message]:
        def walk(message: Message) -> Iterator[Message]:
            yield message
            for nested in message.messages:
                yield from walk(nested)
        for proto_file in self.files if files is None else files:
            for message in proto_file.messages:
                yield from walk(message)

    def all_enums(self, files: Optional[Tuple[ProtoFile, ...]] = None) -> Iterator[Enum]:
        for proto_file in self.files if files is None else files:
            yield from proto_file.enums
        for message in self.all_messages(files):
            yield from message.enums
