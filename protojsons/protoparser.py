"""
Parser for proto2 and proto3 .proto files.

The grammar is written for lark's LALR parser. Comments are ignored by the
grammar and collected through a lexer callback; a declaration's leading comment
is the run of comment lines directly above it.
"""

import re
import typing
from typing import Any, Dict, List, Optional

from lark import Lark, Token, Transformer, v_args
from lark.exceptions import UnexpectedInput, VisitError

from protojsons.common import ProtoParseError, clean_comment

GRAMMAR = r'''
proto: _statement*
_statement: syntax | edition | import_decl | package | option | message | enum | service | extend | empty

syntax: "syntax" "=" STRING ";"
edition: "edition" "=" STRING ";"
import_decl: "import" ("weak" | "public")? STRING ";"
package: "package" full_ident ";"
option: "option" option_name "=" constant ";"
empty: ";"

option_name: option_part ("." IDENT)*
option_part: IDENT              -> simple_option
           | "(" full_ident ")" -> extension_option

full_ident: IDENT ("." IDENT)*
type_ref: full_ident
        | "." full_ident -> absolute_type_ref

message: "message" IDENT message_body
message_body: "{" _message_element* "}"
_message_element: field | map_field | oneof | message | enum | option | reserved | extensions | extend | empty

field: label? type_ref IDENT "=" INT field_options? ";"
!label: "optional" | "required" | "repeated"
map_field: "map" "<" IDENT "," type_ref ">" IDENT "=" INT field_options? ";"
field_options: "[" field_option ("," field_option)* "]"
field_option: option_name "=" constant

oneof: "oneof" IDENT "{" _oneof_element* "}"
_oneof_element: oneof_field | option | empty
oneof_field: type_ref IDENT "=" INT field_options? ";"

enum: "enum" IDENT enum_body
enum_body: "{" _enum_element* "}"
_enum_element: enum_field | option | reserved | empty
enum_field: IDENT "=" SIGN? INT field_options? ";"

reserved: "reserved" (ranges | field_names) ";"
extensions: "extensions" ranges field_options? ";"
ranges: range ("," range)*
range: INT ("to" (INT | "max"))?
field_names: STRING ("," STRING)*

extend: "extend" type_ref "{" (field | empty)* "}"

service: "service" IDENT "{" (option | rpc | empty)* "}"
rpc: "rpc" IDENT "(" STREAM? type_ref ")" "returns" "(" STREAM? type_ref ")" (rpc_body | ";")
rpc_body: "{" (option | empty)* "}"

constant: full_ident                              -> ident_constant
        | SIGN? INT                               -> int_constant
        | SIGN? FLOAT                             -> float_constant
        | STRING+                                 -> string_constant
        | "[" (constant ("," constant)*)? "]"     -> list_constant
        | aggregate
aggregate: "{" aggregate_entry* "}"
aggregate_entry: IDENT ":" constant ("," | ";")?
               | IDENT aggregate ("," | ";")?

STREAM: "stream"
SIGN: /[-+]/
IDENT: /[A-Za-z_][A-Za-z0-9_]*/
FLOAT.2: /(\d+\.\d*|\.\d+)([eE][-+]?\d+)?|\d+[eE][-+]?\d+/
INT: /0[xX][0-9a-fA-F]+|\d+/
STRING: /"([^"\\\n]|\\.)*"|'([^'\\\n]|\\.)*'/
COMMENT: /\/\/[^\n]*/ | /\/\*[\s\S]*?\*\//

%import common.WS
%ignore WS
%ignore COMMENT
'''

FieldLabel = typing.NamedTuple('FieldLabel', [('value', str)])
OptionDecl = typing.NamedTuple('OptionDecl', [('name', str), ('value', Any)])
ImportDecl = typing.NamedTuple('ImportDecl', [('path', str)])
SyntaxDecl = typing.NamedTuple('SyntaxDecl', [('value', str)])
PackageDecl = typing.NamedTuple('PackageDecl', [('name', str)])
FieldDecl = typing.NamedTuple('FieldDecl', [('comment', str), ('label', str), ('type', str), ('key_type', str),
                                            ('name', str), ('number', int), ('options', Dict[str, Any]),
                                            ('oneof', Optional[str])])
OneofDecl = typing.NamedTuple('OneofDecl', [('comment', str), ('name', str), ('fields', List['FieldDecl']),
                                            ('options', Dict[str, Any])])
EnumValueDecl = typing.NamedTuple('EnumValueDecl', [('comment', str), ('name', str), ('number', int),
                                                    ('options', Dict[str, Any])])
EnumDecl = typing.NamedTuple('EnumDecl', [('comment', str), ('name', str), ('values', List['EnumValueDecl']),
                                          ('options', Dict[str, Any])])
MessageBody = typing.NamedTuple('MessageBody', [('fields', List['FieldDecl']), ('oneofs', List['OneofDecl']),
                                                ('messages', List['MessageDecl']), ('enums', List['EnumDecl']),
                                                ('options', Dict[str, Any])])
MessageDecl = typing.NamedTuple('MessageDecl', [('comment', str), ('name', str), ('fields', List['FieldDecl']),
                                                ('oneofs', List['OneofDecl']), ('messages', List['MessageDecl']),
                                                ('enums', List['EnumDecl']), ('options', Dict[str, Any])])
ProtoFile = typing.NamedTuple('ProtoFile', [('name', str), ('syntax', str), ('package', str),
                                            ('imports', List[str]), ('options', Dict[str, Any]),
                                            ('messages', List['MessageDecl']), ('enums', List['EnumDecl'])])


def parse_int(token: str) -> int:
    if token[:2] in ('0x', '0X'):
        return int(token, 16)
    if len(token) > 1 and token.startswith('0'):
        return int(token, 8)
    return int(token)


ESCAPE = re.compile(r'\\(?:([0-7]{1,3})|[xX]([0-9a-fA-F]{1,2})|u([0-9a-fA-F]{4})|U([0-9a-fA-F]{8})|(.))', re.DOTALL)
SIMPLE_ESCAPES = {'a': b'\a', 'b': b'\b', 'f': b'\f', 'n': b'\n', 'r': b'\r', 't': b'\t', 'v': b'\v',
                  '\\': b'\\', "'": b"'", '"': b'"', '?': b'?'}


def decode_string(token: str) -> str:
    """
    Strip the quotes of a string literal and decode its escapes.

    Octal and hex escapes produce single bytes, ``\\u`` and ``\\U`` escapes
    produce UTF-8 encoded code points. The resulting bytes must be valid UTF-8.

    Raises:
        ValueError: On an unknown escape, an octal escape above 255 or bytes
            that are not UTF-8.
    """
    body = token[1:-1]
    result = bytearray()
    position = 0
    for match in ESCAPE.finditer(body):
        result += body[position:match.start()].encode('utf-8')
        octal, hex_byte, short_code, long_code, simple = match.groups()
        if octal is not None:
            value = int(octal, 8)
            if value > 0xff:
                raise ValueError(f"octal escape \\{octal} is out of range")
            result.append(value)
        elif hex_byte is not None:
            result.append(int(hex_byte, 16))
        elif short_code is not None or long_code is not None:
            result += chr(int(short_code or long_code, 16)).encode('utf-8')
        elif simple in SIMPLE_ESCAPES:
            result += SIMPLE_ESCAPES[simple]
        else:
            raise ValueError(f"invalid escape sequence \\{simple}")
        position = match.end()
    result += body[position:].encode('utf-8')
    return result.decode('utf-8')


def _options(items) -> Dict[str, Any]:
    return {item.name: item.value for item in items if isinstance(item, OptionDecl)}


class ProtoTransformer(Transformer):
    '''Converts the syntax tree into NamedTuple declarations'''

    def __init__(self, comments: List[Token], source: str):
        super().__init__()
        self._lines = source.splitlines()
        self._comments_by_end_line: Dict[int, Token] = {}
        for comment in comments:
            self._comments_by_end_line[comment.end_line] = comment

    def _follows_code(self, comment: Token) -> bool:
        line = self._lines[comment.line - 1] if comment.line <= len(self._lines) else ''
        return bool(line[:comment.column - 1].strip())

    def leading_comment(self, line: int) -> str:
        parts = []
        current = line
        while True:
            comment = self._comments_by_end_line.get(current - 1)
            if comment is None or self._follows_code(comment):
                break
            parts.insert(0, comment.value)
            current = comment.line
        return clean_comment('\n'.join(parts))

    def proto(self, items):
        syntax = 'proto2'
        package = ''
        imports = []
        messages = []
        enums = []
        for item in items:
            if isinstance(item, SyntaxDecl):
                syntax = item.value
            elif isinstance(item, PackageDecl):
                package = item.name
            elif isinstance(item, ImportDecl):
                imports.append(item.path)
            elif isinstance(item, MessageDecl):
                messages.append(item)
            elif isinstance(item, EnumDecl):
                enums.append(item)
        return ProtoFile('', syntax, package, imports, _options(items), messages, enums)

    def syntax(self, items):
        return SyntaxDecl(self._string(items[0]))

    def edition(self, items):
        return SyntaxDecl('editions')

    def import_decl(self, items):
        return ImportDecl(self._string(items[-1]))

    def package(self, items):
        return PackageDecl(items[0])

    def option(self, items):
        return OptionDecl(items[0], items[1])

    def empty(self, _):
        return None

    def option_name(self, items):
        return '.'.join(str(item) for item in items)

    def simple_option(self, items):
        return str(items[0])

    def extension_option(self, items):
        return f'({items[0]})'

    def full_ident(self, items):
        return '.'.join(str(item) for item in items)

    def type_ref(self, items):
        return items[0]

    def absolute_type_ref(self, items):
        return '.' + items[0]

    @v_args(meta=True)
    def message(self, meta, items):
        name, body = items
        return MessageDecl(self.leading_comment(meta.line), str(name), body.fields, body.oneofs,
                           body.messages, body.enums, body.options)

    def message_body(self, items):
        fields = []
        oneofs = []
        messages = []
        enums = []
        for item in items:
            if isinstance(item, FieldDecl):
                fields.append(item)
            elif isinstance(item, OneofDecl):
                oneofs.append(item)
                fields.extend(item.fields)
            elif isinstance(item, MessageDecl):
                messages.append(item)
            elif isinstance(item, EnumDecl):
                enums.append(item)
        return MessageBody(fields, oneofs, messages, enums, _options(items))

    def label(self, items):
        return FieldLabel(str(items[0]))

    @v_args(meta=True)
    def field(self, meta, items):
        rest = list(items)
        label = rest.pop(0).value if isinstance(rest[0], FieldLabel) else ''
        options = rest.pop() if isinstance(rest[-1], dict) else {}
        type_name, name, number = rest
        return FieldDecl(self.leading_comment(meta.line), label, type_name, '', str(name), parse_int(number),
                         options, None)

    @v_args(meta=True)
    def map_field(self, meta, items):
        rest = list(items)
        options = rest.pop() if isinstance(rest[-1], dict) else {}
        key_type, value_type, name, number = rest
        return FieldDecl(self.leading_comment(meta.line), '', value_type, str(key_type), str(name),
                         parse_int(number), options, None)

    def field_options(self, items):
        return dict(items)

    def field_option(self, items):
        return (items[0], items[1])

    @v_args(meta=True)
    def oneof(self, meta, items):
        name = str(items[0])
        fields = [f._replace(oneof=name) for f in items[1:] if isinstance(f, FieldDecl)]
        return OneofDecl(self.leading_comment(meta.line), name, fields, _options(items[1:]))

    @v_args(meta=True)
    def oneof_field(self, meta, items):
        rest = list(items)
        options = rest.pop() if isinstance(rest[-1], dict) else {}
        type_name, name, number = rest
        return FieldDecl(self.leading_comment(meta.line), '', type_name, '', str(name), parse_int(number),
                         options, None)

    @v_args(meta=True)
    def enum(self, meta, items):
        name, (values, options) = items
        return EnumDecl(self.leading_comment(meta.line), str(name), values, options)

    def enum_body(self, items):
        return [item for item in items if isinstance(item, EnumValueDecl)], _options(items)

    @v_args(meta=True)
    def enum_field(self, meta, items):
        rest = list(items)
        options = rest.pop() if isinstance(rest[-1], dict) else {}
        name = rest.pop(0)
        sign = rest.pop(0) if len(rest) > 1 else '+'
        number = parse_int(rest[0])
        if sign == '-':
            number = -number
        return EnumValueDecl(self.leading_comment(meta.line), str(name), number, options)

    def reserved(self, _):
        return None

    def extensions(self, _):
        return None

    def extend(self, _):
        return None

    def service(self, _):
        return None

    def ident_constant(self, items):
        value = items[0]
        if value == 'true':
            return True
        if value == 'false':
            return False
        if value in ('inf', 'nan'):
            return float(value)
        return value

    def int_constant(self, items):
        value = parse_int(items[-1])
        return -value if len(items) > 1 and items[0] == '-' else value

    def float_constant(self, items):
        value = float(items[-1])
        return -value if len(items) > 1 and items[0] == '-' else value

    def string_constant(self, items):
        return ''.join(self._string(item) for item in items)

    def list_constant(self, items):
        return list(items)

    def aggregate(self, items):
        return dict(items)

    def aggregate_entry(self, items):
        return (str(items[0]), items[1])

    @staticmethod
    def _string(token: str) -> str:
        return decode_string(str(token))


def parse(data: str, file_name: str = '') -> ProtoFile:
    """
    Parse the text of a .proto file.

    Args:
        data (str): The .proto source.
        file_name (str): Name used in error messages and kept on the result.

    Returns:
        ProtoFile: The parsed declarations.

    Raises:
        ProtoParseError: If the text is not a valid .proto file.
    """
    comments: List[Token] = []
    parser = Lark(GRAMMAR, start='proto', parser='lalr', propagate_positions=True,
                  lexer_callbacks={'COMMENT': comments.append})
    try:
        tree = parser.parse(data)
    except UnexpectedInput as e:
        raise ProtoParseError(f"Syntax error at line {e.line}, column {e.column}",
                              context=file_name or None, cause=e) from e
    try:
        proto_file = ProtoTransformer(comments, data).transform(tree)
    except VisitError as e:
        raise ProtoParseError(f"Invalid {e.rule}: {e.orig_exc}",
                              context=file_name or None, cause=e.orig_exc) from e
    return proto_file._replace(name=file_name)


def parse_from_file(file: str, encoding: str = "utf-8") -> ProtoFile:
    with open(file, 'r', encoding=encoding) as f:
        data = f.read()
    return parse(data, file)
