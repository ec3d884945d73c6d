"""
Resolve ``(jsonschema.*)`` custom options attached to messages, fields, enums
and enum values into typed option records.

Options may be written in dotted form::

    int32 count = 1 [(jsonschema.field).numeric.minimum = 0];

or as a text-format aggregate::

    option (jsonschema.enum) = { mapping_type: MAP_TO_NUMBER };

Both forms are merged into one nested mapping before the records are built.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum as PyEnum
from typing import Any, Dict, Optional

from protojsons.common import DecodeError, MalformedDescriptorError
from protojsons.descriptors import Enum, EnumValue, Field, Message, RawOptions

logger = logging.getLogger(__name__)

OPTION_PACKAGE = 'jsonschema'
MESSAGE_OPTION = f'({OPTION_PACKAGE}.message)'
FIELD_OPTION = f'({OPTION_PACKAGE}.field)'
ENUM_OPTION = f'({OPTION_PACKAGE}.enum)'
ENUM_VALUE_OPTION = f'({OPTION_PACKAGE}.enum_value)'


class MappingType(PyEnum):
    """How enum values are rendered in the ``enum`` keyword."""
    MAP_TO_STRING = 'MAP_TO_STRING'
    MAP_TO_NUMBER = 'MAP_TO_NUMBER'
    MAP_TO_CUSTOM = 'MAP_TO_CUSTOM'


@dataclass(frozen=True)
class NumericKeywords:
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    multiple_of: Optional[float] = None


@dataclass(frozen=True)
class StringKeywords:
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class ArrayKeywords:
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: Optional[bool] = None


@dataclass(frozen=True)
class ObjectKeywords:
    additional_properties: Optional[bool] = None
    min_properties: Optional[int] = None
    max_properties: Optional[int] = None


@dataclass(frozen=True)
class FieldOptions:
    title: str = ''
    description: str = ''
    numeric: NumericKeywords = field(default_factory=NumericKeywords)
    string: StringKeywords = field(default_factory=StringKeywords)
    array: ArrayKeywords = field(default_factory=ArrayKeywords)


@dataclass(frozen=True)
class MessageOptions:
    object: ObjectKeywords = field(default_factory=ObjectKeywords)


@dataclass(frozen=True)
class EnumOptions:
    title: str = ''
    description: str = ''
    mapping_type: MappingType = MappingType.MAP_TO_STRING


@dataclass(frozen=True)
class EnumValueOptions:
    custom_value: Optional[bytes] = None


def collect_options(raw_options: RawOptions, extension: str) -> Dict[str, Any]:
    """
    Gather every option that belongs to one extension into a nested dict.

    ``raw_options`` maps option names as written (``(jsonschema.field).numeric.minimum``)
    to constants or aggregate dicts.
    """
    collected: Dict[str, Any] = {}
    for name, value in raw_options.items():
        if name == extension:
            path = []
        elif name.startswith(extension + '.'):
            path = name[len(extension) + 1:].split('.')
        else:
            continue
        if not path:
            if not isinstance(value, dict):
                raise MalformedDescriptorError(f"Option {extension} expects an aggregate value", context=name)
            _merge(collected, value)
            continue
        target = collected
        for segment in path[:-1]:
            target = target.setdefault(segment, {})
            if not isinstance(target, dict):
                raise MalformedDescriptorError(f"Option {name} conflicts with a scalar value", context=segment)
        if isinstance(value, dict) and isinstance(target.get(path[-1]), dict):
            _merge(target[path[-1]], value)
        else:
            target[path[-1]] = value
    return collected


def _merge(target: Dict[str, Any], source: Dict[str, Any]) -> None:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value


def _take(values: Dict[str, Any], key: str, expected: type, context: str):
    if key not in values:
        return None
    value = values[key]
    if expected is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise MalformedDescriptorError(f"Option {key} expects a number, got {value!r}", context=context)
        return value
    if expected is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise MalformedDescriptorError(f"Option {key} expects an integer, got {value!r}", context=context)
        return value
    if not isinstance(value, expected):
        raise MalformedDescriptorError(f"Option {key} expects {expected.__name__}, got {value!r}", context=context)
    return value


def _section(values: Dict[str, Any], key: str, context: str) -> Dict[str, Any]:
    section = values.get(key, {})
    if not isinstance(section, dict):
        raise MalformedDescriptorError(f"Option {key} expects an aggregate value", context=context)
    return section


def _warn_unknown(values: Dict[str, Any], known, context: str) -> None:
    for key in values:
        if key not in known:
            logger.debug("Ignoring unknown option %s on %s", key, context)


def get_field_options(field_descriptor: Field) -> FieldOptions:
    """Resolve the ``(jsonschema.field)`` options of a field."""
    context = field_descriptor.full_name
    values = collect_options(field_descriptor.raw_options, FIELD_OPTION)
    _warn_unknown(values, ('title', 'description', 'numeric', 'string', 'array'), context)
    numeric = _section(values, 'numeric', context)
    string = _section(values, 'string', context)
    array = _section(values, 'array', context)
    return FieldOptions(
        title=_take(values, 'title', str, context) or '',
        description=_take(values, 'description', str, context) or '',
        numeric=NumericKeywords(
            minimum=_take(numeric, 'minimum', float, context),
            maximum=_take(numeric, 'maximum', float, context),
            exclusive_minimum=_take(numeric, 'exclusive_minimum', float, context),
            exclusive_maximum=_take(numeric, 'exclusive_maximum', float, context),
            multiple_of=_take(numeric, 'multiple_of', float, context)),
        string=StringKeywords(
            pattern=_take(string, 'pattern', str, context),
            min_length=_take(string, 'min_length', int, context),
            max_length=_take(string, 'max_length', int, context)),
        array=ArrayKeywords(
            min_items=_take(array, 'min_items', int, context),
            max_items=_take(array, 'max_items', int, context),
            unique_items=_take(array, 'unique_items', bool, context)))


def get_message_options(message: Message) -> MessageOptions:
    """Resolve the ``(jsonschema.message)`` options of a message."""
    context = message.full_name
    values = collect_options(message.raw_options, MESSAGE_OPTION)
    _warn_unknown(values, ('object',), context)
    obj = _section(values, 'object', context)
    return MessageOptions(object=ObjectKeywords(
        additional_properties=_take(obj, 'additional_properties', bool, context),
        min_properties=_take(obj, 'min_properties', int, context),
        max_properties=_take(obj, 'max_properties', int, context)))


def get_enum_options(enum: Enum) -> EnumOptions:
    """Resolve the ``(jsonschema.enum)`` options of an enum."""
    context = enum.full_name
    values = collect_options(enum.raw_options, ENUM_OPTION)
    _warn_unknown(values, ('title', 'description', 'mapping_type'), context)
    mapping_type = MappingType.MAP_TO_STRING
    if 'mapping_type' in values:
        try:
            mapping_type = MappingType(values['mapping_type'])
        except ValueError as e:
            raise MalformedDescriptorError(
                f"Unknown enum mapping type {values['mapping_type']!r}", context=context, cause=e) from e
    return EnumOptions(
        title=_take(values, 'title', str, context) or '',
        description=_take(values, 'description', str, context) or '',
        mapping_type=mapping_type)


def get_enum_value_options(enum_value: EnumValue) -> EnumValueOptions:
    """Resolve the ``(jsonschema.enum_value)`` options of an enum value."""
    context = enum_value.full_name
    values = collect_options(enum_value.raw_options, ENUM_VALUE_OPTION)
    _warn_unknown(values, ('custom_value',), context)
    custom_value = _take(values, 'custom_value', str, context)
    return EnumValueOptions(custom_value=custom_value.encode('utf-8') if custom_value is not None else None)


def decode_custom_value(payload: Optional[bytes], qualified_name: str) -> Any:
    """
    Decode the opaque custom value payload of an enum value.

    Args:
        payload: JSON encoded bytes, or None when the value carries no payload.
        qualified_name: Qualified name of the enum value, used in the error.

    Returns:
        The decoded JSON value, or None when there is no payload.

    Raises:
        DecodeError: If the payload is not valid JSON.
    """
    if not payload:
        return None
    try:
        return json.loads(payload)
    except ValueError as e:
        raise DecodeError(qualified_name, cause=e) from e
