"""
JSON Schema fragments as produced by the builders.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union


class SchemaProperties:
    """
    Ordered ``properties`` container: the pair list keeps insertion order, the
    index gives lookups by name.
    """

    def __init__(self) -> None:
        self._pairs: List[Tuple[str, 'SchemaFragment']] = []
        self._index: Dict[str, int] = {}

    def set(self, name: str, schema: 'SchemaFragment') -> None:
        if name in self._index:
            self._pairs[self._index[name]] = (name, schema)
        else:
            self._index[name] = len(self._pairs)
            self._pairs.append((name, schema))

    def get(self, name: str) -> Optional['SchemaFragment']:
        if name not in self._index:
            return None
        return self._pairs[self._index[name]][1]

    def keys(self) -> List[str]:
        return [name for name, _ in self._pairs]

    def items(self) -> List[Tuple[str, 'SchemaFragment']]:
        return list(self._pairs)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __len__(self) -> int:
        return len(self._pairs)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchemaProperties):
            return NotImplemented
        return self._pairs == other._pairs

    def __repr__(self) -> str:
        return f"SchemaProperties({self._pairs!r})"


@dataclass
class SchemaFragment:
    """One JSON Schema subtree. Unset members are left out of ``to_dict``."""
    type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    ref: Optional[str] = None
    properties: Optional[SchemaProperties] = None
    required: List[str] = field(default_factory=list)
    items: Optional['SchemaFragment'] = None
    additional_properties: Optional[Union[bool, 'SchemaFragment']] = None
    enum: List[Any] = field(default_factory=list)
    all_of: List['SchemaFragment'] = field(default_factory=list)
    any_of: List['SchemaFragment'] = field(default_factory=list)
    one_of: List['SchemaFragment'] = field(default_factory=list)
    not_: Optional['SchemaFragment'] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    exclusive_minimum: Optional[float] = None
    exclusive_maximum: Optional[float] = None
    multiple_of: Optional[float] = None
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None
    unique_items: Optional[bool] = None
    min_properties: Optional[int] = None
    max_properties: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Render the fragment with JSON Schema keyword names."""
        result: Dict[str, Any] = {}
        if self.ref:
            result['$ref'] = self.ref
        if self.type:
            result['type'] = self.type
        if self.title:
            result['title'] = self.title
        if self.description:
            result['description'] = self.description
        if self.properties is not None and len(self.properties) > 0:
            result['properties'] = {name: schema.to_dict() for name, schema in self.properties.items()}
        if self.required:
            result['required'] = list(self.required)
        if self.items is not None:
            result['items'] = self.items.to_dict()
        if isinstance(self.additional_properties, SchemaFragment):
            result['additionalProperties'] = self.additional_properties.to_dict()
        elif self.additional_properties is not None:
            result['additionalProperties'] = self.additional_properties
        if self.enum:
            result['enum'] = list(self.enum)
        for keyword, value in (('minimum', self.minimum), ('maximum', self.maximum),
                               ('exclusiveMinimum', self.exclusive_minimum),
                               ('exclusiveMaximum', self.exclusive_maximum),
                               ('multipleOf', self.multiple_of), ('pattern', self.pattern),
                               ('minLength', self.min_length), ('maxLength', self.max_length),
                               ('minItems', self.min_items), ('maxItems', self.max_items),
                               ('uniqueItems', self.unique_items),
                               ('minProperties', self.min_properties),
                               ('maxProperties', self.max_properties)):
            if value is not None:
                result[keyword] = value
        if self.all_of:
            result['allOf'] = [s.to_dict() for s in self.all_of]
        if self.any_of:
            result['anyOf'] = [s.to_dict() for s in self.any_of]
        if self.one_of:
            result['oneOf'] = [s.to_dict() for s in self.one_of]
        if self.not_ is not None:
            result['not'] = self.not_.to_dict()
        return result
