"""
Module to convert Protobuf .proto files to JSON Schema.

Every message, every field and every enum becomes a named definition under
``$defs``. Message properties refer to their field definitions and field
definitions refer to the message and enum definitions they use, so types that
are used in many places are defined once and cycles are never inlined.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Set

from protojsons.common import (DEFINITIONS_KEYWORD, MalformedDescriptorError, definition_ref,
                               is_scalar_type, pascal, to_property_name)
from protojsons.descriptors import DescriptorSet, Enum, Field, FieldKind, Message
from protojsons.options import (ArrayKeywords, EnumOptions, FieldOptions, MappingType, MessageOptions,
                                NumericKeywords, ObjectKeywords, StringKeywords, decode_custom_value,
                                get_enum_options, get_enum_value_options, get_field_options,
                                get_message_options)
from protojsons.protoloader import load_descriptor_set, load_descriptor_set_from_string
from protojsons.schema import SchemaFragment, SchemaProperties

logger = logging.getLogger(__name__)

JSON_SCHEMA_DIALECT = 'https://json-schema.org/draft/2020-12/schema'


def build_from_message(message: Message, mo: MessageOptions) -> SchemaFragment:
    """
    Build the object schema of a message.

    Properties refer to the field definitions. Fields outside real oneofs and
    without an ``optional`` label are required. Every oneof, including the
    synthetic ones of proto3 ``optional`` fields, adds an ``allOf`` entry that
    allows exactly one of its members, or none of them.
    """
    schema = SchemaFragment(type='object', title=pascal(message.name), description=message.comment,
                            properties=SchemaProperties())
    fill_schema_by_object_keywords(schema, mo.object)

    for field in message.fields:
        prop_name = to_property_name(field.name)
        schema.properties.set(prop_name, SchemaFragment(ref=definition_ref(field)))

        if not field.in_real_oneof and not field.has_optional_keyword:
            schema.required.append(prop_name)

    for oneof in message.oneofs:
        property_names = []
        for field_name in oneof.field_names:
            if message.get_field(field_name) is None:
                raise MalformedDescriptorError(f"Oneof {oneof.name} refers to unknown field {field_name}",
                                               context=message.full_name)
            property_names.append(to_property_name(field_name))
        one_of_schemas = [SchemaFragment(required=[name]) for name in property_names]
        negative_schema = SchemaFragment(not_=SchemaFragment(
            any_of=[SchemaFragment(required=[name]) for name in property_names]))
        schema.all_of.append(SchemaFragment(one_of=one_of_schemas + [negative_schema]))
    return schema


def build_from_message_field(field: Field, fo: FieldOptions) -> SchemaFragment:
    """Field whose element type is a message: a reference to that message's definition."""
    schema = SchemaFragment(title=fo.title, description=get_description(field.comment, fo.description))
    schema.ref = definition_ref(field.element)
    if field.is_repeated:
        return wrap_schema_in_array(schema, fo)
    return schema


# TODO: key types and per-entry requiredness are not modelled yet
def build_from_map_field(field: Field, fo: FieldOptions) -> SchemaFragment:
    schema = SchemaFragment(type='object', title=fo.title,
                            description=get_description(field.comment, fo.description))

    value_schema = SchemaFragment()
    value = field.element
    if value.kind in (FieldKind.MESSAGE, FieldKind.ENUM):
        value_schema.ref = definition_ref(value)
    elif value.kind == FieldKind.NUMERIC:
        value_schema.type = 'number'
    elif value.kind == FieldKind.BOOLEAN:
        value_schema.type = 'boolean'
    elif value.kind == FieldKind.STRING:
        value_schema.type = 'string'
    schema.additional_properties = value_schema
    return schema


def build_from_scalar_field(field: Field, fo: FieldOptions) -> SchemaFragment:
    """Numeric, boolean, string/bytes and enum fields."""
    schema = SchemaFragment(title=fo.title, description=get_description(field.comment, fo.description))

    kind = field.element.kind
    if kind == FieldKind.NUMERIC:
        schema.type = 'number'
        fill_schema_by_numeric_keywords(schema, fo.numeric)
    elif kind == FieldKind.BOOLEAN:
        schema.type = 'boolean'
    elif kind == FieldKind.ENUM:
        schema.ref = definition_ref(field.element)
    elif kind == FieldKind.STRING:
        schema.type = 'string'
        fill_schema_by_string_keywords(schema, fo.string)

    if field.is_repeated:
        return wrap_schema_in_array(schema, fo)
    return schema


def build_from_field(field: Field, fo: FieldOptions) -> SchemaFragment:
    """Dispatch a field to the builder for its kind."""
    if field.kind == FieldKind.MAP:
        return build_from_map_field(field, fo)
    if field.kind == FieldKind.MESSAGE:
        return build_from_message_field(field, fo)
    if is_scalar_type(field):
        return build_from_scalar_field(field, fo)
    raise ValueError(f"Unsupported field kind {field.kind} for field {field.full_name}")


def build_from_enum(enum: Enum, eo: EnumOptions) -> SchemaFragment:
    """
    Build the schema of an enum.

    Raises:
        DecodeError: If a custom value payload is not valid JSON.
    """
    schema = SchemaFragment()
    if eo.mapping_type == MappingType.MAP_TO_NUMBER:
        schema.type = 'number'
    else:
        schema.type = 'string'
    schema.title = eo.title
    schema.description = get_description(enum.comment, eo.description)

    for enum_value in enum.values:
        if eo.mapping_type == MappingType.MAP_TO_STRING:
            schema.enum.append(enum_value.name)
        elif eo.mapping_type == MappingType.MAP_TO_NUMBER:
            schema.enum.append(enum_value.number)
        elif eo.mapping_type == MappingType.MAP_TO_CUSTOM:
            evo = get_enum_value_options(enum_value)
            custom_value = decode_custom_value(evo.custom_value, enum_value.full_name)
            if custom_value is None:
                schema.enum.append(enum_value.name)
            else:
                schema.enum.append(custom_value)
    return schema


def wrap_schema_in_array(schema: SchemaFragment, fo: FieldOptions) -> SchemaFragment:
    """
    Wrap an element schema into an array schema. Title and description move
    to the array; the items keep neither.
    """
    repeated_schema = SchemaFragment(type='array', title=schema.title, description=schema.description)
    repeated_schema.items = replace(schema, title=None, description=None)
    fill_schema_by_array_keywords(repeated_schema, fo.array)
    return repeated_schema


def get_description(comment: str, description: str) -> str:
    return description or comment


def fill_schema_by_numeric_keywords(schema: SchemaFragment, keywords: NumericKeywords) -> None:
    schema.minimum = keywords.minimum
    schema.maximum = keywords.maximum
    schema.exclusive_minimum = keywords.exclusive_minimum
    schema.exclusive_maximum = keywords.exclusive_maximum
    schema.multiple_of = keywords.multiple_of


def fill_schema_by_string_keywords(schema: SchemaFragment, keywords: StringKeywords) -> None:
    schema.pattern = keywords.pattern
    schema.min_length = keywords.min_length
    schema.max_length = keywords.max_length


def fill_schema_by_array_keywords(schema: SchemaFragment, keywords: ArrayKeywords) -> None:
    schema.min_items = keywords.min_items
    schema.max_items = keywords.max_items
    schema.unique_items = keywords.unique_items


def fill_schema_by_object_keywords(schema: SchemaFragment, keywords: ObjectKeywords) -> None:
    if keywords.additional_properties is not None:
        schema.additional_properties = keywords.additional_properties
    schema.min_properties = keywords.min_properties
    schema.max_properties = keywords.max_properties


class ProtoToJsonSchemaConverter:
    """Class to assemble the JSON Schema document of a descriptor set."""

    def __init__(self):
        """Initialize ProtoToJsonSchemaConverter."""
        self.definitions: Dict[str, SchemaFragment] = {}
        self.reachable: Optional[Set[str]] = None

    def add_definition(self, name: str, schema: SchemaFragment) -> None:
        if name in self.definitions:
            raise MalformedDescriptorError(f"Duplicate definition {name}")
        self.definitions[name] = schema

    def is_reachable(self, full_name: str) -> bool:
        return self.reachable is None or full_name in self.reachable

    def reachable_names(self, descriptor_set: DescriptorSet, root: Optional[Message] = None) -> Set[str]:
        """
        Collect the qualified names of the messages and enums to emit: every
        type declared in the target files, the root message, and every type
        their fields refer to, transitively. Types of imported files that
        nothing refers to (the ``jsonschema`` options, unused well-known types)
        are left out.
        """
        targets = descriptor_set.target_files()
        messages = {m.full_name: m for m in descriptor_set.all_messages()}
        pending = [m.full_name for m in descriptor_set.all_messages(targets)]
        pending.extend(e.full_name for e in descriptor_set.all_enums(targets))
        if root:
            pending.append(root.full_name)
        reached: Set[str] = set()
        while pending:
            name = pending.pop()
            if name in reached:
                continue
            reached.add(name)
            message = messages.get(name)
            if message is None:
                continue
            for field in message.fields:
                if field.element.is_named:
                    pending.append(field.element.type_name)
        return reached

    def handle_enum(self, enum: Enum) -> None:
        if not self.is_reachable(enum.full_name):
            return
        self.add_definition(enum.full_name, build_from_enum(enum, get_enum_options(enum)))
        logger.debug("Built enum %s", enum.full_name)

    def handle_message(self, message: Message) -> None:
        """Add the definitions of a message, its fields and its nested types."""
        if self.is_reachable(message.full_name):
            self.add_definition(message.full_name, build_from_message(message, get_message_options(message)))
            for field in message.fields:
                self.add_definition(field.full_name, build_from_field(field, get_field_options(field)))
            logger.debug("Built message %s with %d fields", message.full_name, len(message.fields))
        for enum in message.enums:
            self.handle_enum(enum)
        for nested in message.messages:
            self.handle_message(nested)

    def find_message(self, descriptor_set: DescriptorSet, message_type: str) -> Message:
        messages = list(descriptor_set.all_messages())
        match = next((m for m in messages if m.full_name == message_type.lstrip('.')), None)
        if match:
            return match
        candidates = [m for m in messages if m.name == message_type]
        if len(candidates) == 1:
            return candidates[0]
        if candidates:
            raise MalformedDescriptorError(
                f"Message type {message_type} is ambiguous: {', '.join(m.full_name for m in candidates)}")
        raise MalformedDescriptorError(f"Message type {message_type} not found.")

    def convert_descriptor_set(self, descriptor_set: DescriptorSet, message_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Build the JSON Schema document of a descriptor set.

        Args:
            descriptor_set: The linked descriptors.
            message_type: Optional message to reference from the document root.

        Returns:
            dict: The JSON Schema document.
        """
        self.definitions = {}
        root = self.find_message(descriptor_set, message_type) if message_type else None
        self.reachable = self.reachable_names(descriptor_set, root)
        for proto_file in descriptor_set.files:
            for message in proto_file.messages:
                self.handle_message(message)
            for enum in proto_file.enums:
                self.handle_enum(enum)

        json_schema: Dict[str, Any] = {'$schema': JSON_SCHEMA_DIALECT}
        if root:
            json_schema['$ref'] = definition_ref(root)
            json_schema['title'] = pascal(root.name)
        json_schema[DEFINITIONS_KEYWORD] = {name: schema.to_dict() for name, schema in self.definitions.items()}
        logger.info("Generated %d definitions from %d files", len(self.definitions), len(descriptor_set.files))
        return json_schema


def convert_proto_to_json_schema(proto_file_path: str, json_schema_path: str, message_type: Optional[str] = None,
                                 proto_root: Optional[List[str]] = None) -> None:
    """
    Convert a Protobuf .proto file to a JSON Schema file.

    Args:
        proto_file_path (str): Path to the Protobuf .proto file.
        json_schema_path (str): Path to save the JSON Schema file.
        message_type (str): Optional message to use as the document root.
        proto_root (list): Additional directories to search for imports.

    Raises:
        FileNotFoundError: If the proto file does not exist.
        DecodeError: If a custom enum value is not valid JSON. No file is written.
    """
    descriptor_set = load_descriptor_set(proto_file_path, proto_root)
    json_schema = ProtoToJsonSchemaConverter().convert_descriptor_set(descriptor_set, message_type)

    with open(json_schema_path, 'w', encoding='utf-8') as json_file:
        json_file.write(json.dumps(json_schema, indent=2))


def convert_proto_to_json_schema_string(proto_content: str, message_type: Optional[str] = None,
                                        proto_root: Optional[List[str]] = None) -> str:
    """
    Convert Protobuf source text to a JSON Schema string. Imports are looked up
    in the proto roots and among the bundled well-known types.

    Args:
        proto_content (str): The .proto source.
        message_type (str): Optional message to use as the document root.
        proto_root (list): Directories to search for imports.

    Returns:
        str: The JSON Schema document.
    """
    descriptor_set = load_descriptor_set_from_string(proto_content, proto_root)
    json_schema = ProtoToJsonSchemaConverter().convert_descriptor_set(descriptor_set, message_type)
    return json.dumps(json_schema, indent=2)
