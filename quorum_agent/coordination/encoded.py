"""
Encoded field/value lists.

Free-form process tuning properties are kept inside a single config value as
``field=value`` pairs joined by ``&``, each side URL-encoded, e.g.
``syncLimit=5&tickTime=2000&initLimit=10``.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import quote_plus, unquote_plus


@dataclass(frozen=True)
class FieldValue:
    field: str
    value: str


class EncodedConfigParser:
    """Parses and re-encodes an ``&``-joined list of field/value pairs."""

    def __init__(self, encoded: str = ""):
        self._field_values: List[FieldValue] = []
        for part in (encoded or "").split("&"):
            part = part.strip()
            if not part:
                continue
            name, _, value = part.partition("=")
            name = unquote_plus(name).strip()
            if name:
                self._field_values.append(FieldValue(name, unquote_plus(value).strip()))

    @classmethod
    def from_pairs(cls, pairs: Sequence[Tuple[str, str]]) -> 'EncodedConfigParser':
        parser = cls()
        parser._field_values = [FieldValue(str(name), str(value)) for name, value in pairs]
        return parser

    def get_field_values(self) -> List[FieldValue]:
        return list(self._field_values)

    def get_value(self, field: str) -> Optional[str]:
        for field_value in self._field_values:
            if field_value.field == field:
                return field_value.value
        return None

    def to_encoded(self) -> str:
        return "&".join(
            f"{quote_plus(field_value.field)}={quote_plus(field_value.value)}" for field_value in self._field_values
        )

    def __len__(self) -> int:
        return len(self._field_values)
