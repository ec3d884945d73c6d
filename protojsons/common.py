"""
Common helpers shared by the protojsons modules: naming, comment cleanup,
scalar classification, definition references and the error types.
"""

import re
from typing import Optional, Protocol

from jsonpointer import JsonPointer

from protojsons.descriptors import Field, FieldKind

DEFINITIONS_KEYWORD = '$defs'


class ProtoJsonSchemaError(Exception):
    """
    Base class for errors raised while turning proto descriptors into JSON Schema.

    Attributes:
        message: Human-readable error description
        context: Optional context about where the error occurred
        cause: Optional underlying exception that caused this error
    """

    def __init__(self, message: str, context: Optional[str] = None,
                 cause: Optional[Exception] = None) -> None:
        self.message = message
        self.context = context
        self.cause = cause
        full_message = message
        if context:
            full_message = f"{message} (context: {context})"
        super().__init__(full_message)


class DecodeError(ProtoJsonSchemaError):
    """
    Raised when the custom value payload of an enum value is not valid JSON.

    Attributes:
        qualified_name: Fully qualified name of the offending enum value
    """

    def __init__(self, qualified_name: str, cause: Optional[Exception] = None) -> None:
        self.qualified_name = qualified_name
        detail = f": {cause}" if cause else ''
        super().__init__(f"Custom value of enum value {qualified_name} is not valid JSON{detail}",
                         context=qualified_name, cause=cause)


class MalformedDescriptorError(ProtoJsonSchemaError):
    """Raised when the descriptor model violates an assumption of the builders."""


class ProtoParseError(ProtoJsonSchemaError):
    """Raised when a .proto file cannot be parsed."""


class QualifiedNamed(Protocol):
    """Anything that can report a stable fully qualified name."""

    def fully_qualified_name(self) -> str:
        ...


def definition_ref(resolver: QualifiedNamed) -> str:
    """
    Build the JSON Pointer reference to the shared definition of a type or field.

    Args:
        resolver: Message, enum, field or element type.

    Returns:
        str: Reference of the form ``#/$defs/<qualified name>``.
    """
    return '#' + JsonPointer.from_parts([DEFINITIONS_KEYWORD, resolver.fully_qualified_name()]).path


def is_scalar_type(field: Field) -> bool:
    """Whether the field is rendered by the scalar builder (enums included)."""
    return field.kind in (FieldKind.NUMERIC, FieldKind.BOOLEAN, FieldKind.ENUM, FieldKind.STRING)


def to_property_name(name: str) -> str:
    return name


def pascal(string):
    """
    Convert a string to PascalCase from snake_case, camelCase, or PascalCase.
    The string can contain dots, which are preserved in the output.
    Underscores at the beginning of the string are preserved in the output, but
    underscores in the middle of the string are removed.

    Args:
        string (str): The string to convert.

    Returns:
        str: The string in PascalCase.
    """
    if '.' in string:
        strings = string.split('.')
        return '.'.join(pascal(s) for s in strings)
    if not string or len(string) == 0:
        return string
    words = []
    startswith_under = string[0] == '_'
    if '_' in string:
        # snake_case
        words = re.split(r'_', string)
    elif string[0].isupper():
        # PascalCase
        words = re.findall(r'[A-Z][a-z0-9_]*\.?', string)
    else:
        # camelCase
        words = re.findall(r'[a-z0-9]+\.?|[A-Z][a-z0-9_]*\.?', string)
    result = ''.join(word[:1].upper() + word[1:] for word in words)
    if startswith_under:
        result = '_' + result
    return result


def clean_comment(comment: str) -> str:
    """
    Strip comment markers from a run of // or /* */ comments, keeping line breaks.

    Args:
        comment (str): The raw comment text.

    Returns:
        str: Cleaned comment, empty if there was none.
    """
    if not comment:
        return ''
    lines = []
    for line in comment.splitlines():
        line = line.strip()
        if line.startswith('//'):
            line = line[2:]
        else:
            if line.startswith('/*'):
                line = line[2:]
            if line.endswith('*/'):
                line = line[:-2]
            if line.startswith('*'):
                line = line[1:]
        lines.append(line.strip())
    return '\n'.join(lines).strip()
