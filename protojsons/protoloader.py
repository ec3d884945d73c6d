"""
Load .proto files with their imports and link them into a DescriptorSet.
"""

import logging
import os
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from protojsons import protoparser
from protojsons.common import MalformedDescriptorError
from protojsons.descriptors import (Cardinality, DescriptorSet, ElementType, Enum, EnumValue, Field,
                                    FieldKind, Message, OneOf, ProtoFile, scalar_kind)

logger = logging.getLogger(__name__)

BUNDLED_PROTO_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'proto')
# Extended by option declarations only; no schema types come from it.
OPTION_TARGET_IMPORTS = ('google/protobuf/descriptor.proto',)


class ProtoLoader:
    """Parses .proto files, follows their imports and resolves type references."""

    def __init__(self, proto_root: Optional[List[str]] = None):
        if isinstance(proto_root, str):
            proto_root = [proto_root]
        self.proto_roots: List[str] = [os.path.abspath(p) for p in (proto_root or [])]
        self.parsed_files: Dict[str, protoparser.ProtoFile] = {}
        self.symbols: Dict[str, FieldKind] = {}
        self._in_progress: List[str] = []

    def resolve_import(self, import_path: str, importing_dir: Optional[str] = None) -> Optional[str]:
        """
        Find an imported file next to the importing file, under one of the proto
        roots, or among the bundled definitions (well-known types and the
        ``jsonschema`` options).
        """
        bases = ([importing_dir] if importing_dir else []) + self.proto_roots + [BUNDLED_PROTO_DIR]
        for base in bases:
            candidate = os.path.join(base, import_path)
            if os.path.exists(candidate):
                return os.path.abspath(candidate)
        return None

    def load_imports(self, parsed: protoparser.ProtoFile, importing_dir: Optional[str], importer: str) -> None:
        for import_ in parsed.imports:
            import_path = self.resolve_import(import_, importing_dir)
            if import_path is None:
                if import_ in OPTION_TARGET_IMPORTS:
                    logger.debug("Import %s of %s only declares option targets, skipping it", import_, importer)
                else:
                    logger.warning("Import %s of %s not found, skipping it", import_, importer)
                continue
            self.load_file(import_path)

    def load_file(self, proto_file_path: str) -> None:
        """Parse a file and, before it, every file it imports."""
        path = os.path.abspath(proto_file_path)
        if path in self.parsed_files or path in self._in_progress:
            return
        self._in_progress.append(path)
        parsed = protoparser.parse_from_file(path)
        self.load_imports(parsed, os.path.dirname(path), path)
        self._in_progress.remove(path)
        self.parsed_files[path] = parsed
        logger.debug("Loaded %s", path)

    def load_string(self, proto_content: str, file_name: str = '<string>') -> None:
        """Parse source text. Its imports are looked up in the proto roots and the bundled definitions."""
        parsed = protoparser.parse(proto_content, file_name)
        self.load_imports(parsed, None, file_name)
        self.parsed_files[file_name] = parsed

    def _register(self, full_name: str, kind: FieldKind) -> None:
        if full_name in self.symbols:
            raise MalformedDescriptorError(f"Duplicate symbol {full_name}")
        self.symbols[full_name] = kind

    def _register_message(self, message: protoparser.MessageDecl, scope: str) -> None:
        full_name = qualify(scope, message.name)
        self._register(full_name, FieldKind.MESSAGE)
        for nested in message.messages:
            self._register_message(nested, full_name)
        for enum in message.enums:
            self._register(qualify(full_name, enum.name), FieldKind.ENUM)

    def build_symbol_table(self) -> None:
        self.symbols = {}
        for parsed in self.parsed_files.values():
            for message in parsed.messages:
                self._register_message(message, parsed.package)
            for enum in parsed.enums:
                self._register(qualify(parsed.package, enum.name), FieldKind.ENUM)

    def resolve_type(self, type_name: str, scope: str, context: str) -> Tuple[str, FieldKind]:
        """
        Resolve a type reference the way protoc does: a leading dot makes the
        name absolute, otherwise the innermost enclosing scope wins.

        Returns:
            Tuple of qualified name and kind (MESSAGE or ENUM).
        """
        if type_name.startswith('.'):
            candidates = [type_name[1:]]
        else:
            candidates = []
            parts = scope.split('.') if scope else []
            while parts:
                candidates.append('.'.join(parts) + '.' + type_name)
                parts.pop()
            candidates.append(type_name)
        for candidate in candidates:
            if candidate in self.symbols:
                return candidate, self.symbols[candidate]
        raise MalformedDescriptorError(f"Unresolved type reference {type_name}", context=context)

    def element_type(self, proto_type: str, scope: str, context: str) -> ElementType:
        kind = scalar_kind(proto_type)
        if kind is not None:
            return ElementType(kind, proto_type)
        full_name, kind = self.resolve_type(proto_type, scope, context)
        return ElementType(kind, proto_type, full_name)

    def link_field(self, decl: protoparser.FieldDecl, message_name: str) -> Field:
        full_name = qualify(message_name, decl.name)
        element = self.element_type(decl.type, message_name, full_name)
        if decl.key_type:
            kind = FieldKind.MAP
            cardinality = Cardinality.MAP
        else:
            kind = element.kind
            cardinality = Cardinality.REPEATED if decl.label == 'repeated' else Cardinality.SINGULAR
        return Field(
            name=decl.name,
            full_name=full_name,
            number=decl.number,
            kind=kind,
            cardinality=cardinality,
            element=element,
            comment=decl.comment,
            key_type=decl.key_type,
            oneof=decl.oneof,
            in_real_oneof=decl.oneof is not None,
            has_optional_keyword=decl.label == 'optional',
            raw_options=dict(decl.options))

    def link_enum(self, decl: protoparser.EnumDecl, scope: str) -> Enum:
        full_name = qualify(scope, decl.name)
        values = tuple(EnumValue(v.name, qualify(full_name, v.name), v.number, v.comment, dict(v.options))
                       for v in decl.values)
        return Enum(decl.name, full_name, values, decl.comment, dict(decl.options))

    def link_message(self, decl: protoparser.MessageDecl, scope: str, syntax: str) -> Message:
        full_name = qualify(scope, decl.name)
        fields = []
        synthetic_oneofs = []
        for field_decl in decl.fields:
            linked = self.link_field(field_decl, full_name)
            if syntax == 'proto3' and linked.has_optional_keyword and not linked.in_real_oneof:
                synthetic_name = '_' + linked.name
                linked = replace(linked, oneof=synthetic_name)
                synthetic_oneofs.append(OneOf(synthetic_name, qualify(full_name, synthetic_name),
                                              (linked.name,), synthetic=True))
            fields.append(linked)
        oneofs = [OneOf(o.name, qualify(full_name, o.name), tuple(f.name for f in o.fields), o.comment)
                  for o in decl.oneofs]
        return Message(
            name=decl.name,
            full_name=full_name,
            fields=tuple(fields),
            oneofs=tuple(oneofs + synthetic_oneofs),
            messages=tuple(self.link_message(m, full_name, syntax) for m in decl.messages),
            enums=tuple(self.link_enum(e, full_name) for e in decl.enums),
            comment=decl.comment,
            raw_options=dict(decl.options))

    def link(self, targets: Optional[List[str]] = None) -> DescriptorSet:
        """
        Build the descriptor set of every loaded file, imports first.

        Args:
            targets: Names of the files that were asked for. Their imports are
                only linked so that references into them resolve.
        """
        self.build_symbol_table()
        files = []
        for name, parsed in self.parsed_files.items():
            files.append(ProtoFile(
                name=name,
                package=parsed.package,
                syntax=parsed.syntax,
                messages=tuple(self.link_message(m, parsed.package, parsed.syntax) for m in parsed.messages),
                enums=tuple(self.link_enum(e, parsed.package) for e in parsed.enums),
                imports=tuple(parsed.imports)))
        return DescriptorSet(tuple(files), tuple(targets or ()))


def qualify(scope: str, name: str) -> str:
    return f"{scope}.{name}" if scope else name


def load_descriptor_set(proto_file_path: str, proto_root: Optional[List[str]] = None) -> DescriptorSet:
    """
    Load a .proto file and its imports into a linked descriptor set.

    Args:
        proto_file_path (str): Path to the .proto file.
        proto_root (list): Additional directories to search for imports.

    Raises:
        FileNotFoundError: If the proto file does not exist.
        ProtoParseError: If a file cannot be parsed.
        MalformedDescriptorError: If a type reference cannot be resolved.
    """
    if not os.path.exists(proto_file_path):
        raise FileNotFoundError(f'Proto file {proto_file_path} does not exist.')
    loader = ProtoLoader(proto_root)
    loader.load_file(proto_file_path)
    return loader.link([os.path.abspath(proto_file_path)])


def load_descriptor_set_from_string(proto_content: str, proto_root: Optional[List[str]] = None) -> DescriptorSet:
    """Load .proto source text. Imports resolve against the proto roots and the bundled definitions."""
    loader = ProtoLoader(proto_root)
    loader.load_string(proto_content)
    return loader.link(['<string>'])
