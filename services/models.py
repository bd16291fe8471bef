"""
Data model shared by the extraction engine and the cell fact adapters.

Adapters produce CellFact records; the section extractor turns them into
KeyValueEntry records grouped by section name.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional


class CellKind(str, Enum):
    """Type tag of a raw cell as reported by an adapter."""
    EMPTY = 'empty'
    TEXT = 'text'
    NUMBER = 'number'
    BOOLEAN = 'boolean'
    FORMULA = 'formula'
    SHARED_STRING_REF = 'shared_string_ref'
    ERROR = 'error'


@dataclass(frozen=True)
class CellFact:
    """
    Primitive facts about one cell.

    Attributes:
        kind: Type tag of the stored value
        raw_value: Stored value as text (shared string index for
                   SHARED_STRING_REF, error code for ERROR)
        formula_text: Formula without the leading '=' (FORMULA only)
        number_format_id: Number format id from the cell style, if any
        is_date_formatted: True when the number format renders a date
        cached_result: Last calculated result of a formula cell, if the
                       workbook carries one. Never itself a FORMULA.
    """
    kind: CellKind
    raw_value: str = ''
    formula_text: Optional[str] = None
    number_format_id: Optional[int] = None
    is_date_formatted: bool = False
    cached_result: Optional['CellFact'] = None

    @classmethod
    def empty(cls) -> 'CellFact':
        return cls(kind=CellKind.EMPTY)


@dataclass(frozen=True)
class SectionConfig:
    """A named key range / value range pair, e.g. ('Loan', 'A2:A10', 'B2:B10')."""
    name: str
    key_range: str
    value_range: str


@dataclass(frozen=True)
class KeyValueEntry:
    """One extracted key/value pair."""
    key_cell: str
    key: str
    value_cell: str
    value: Optional[str] = None
    formula: str = ''

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Serialize using the field names consumers of the output expect."""
        return {
            'KeyCell': self.key_cell,
            'Key': self.key,
            'ValueCell': self.value_cell,
            'Value': self.value,
            'Formula': self.formula
        }


@dataclass(frozen=True)
class CellUpdate:
    """A single value to write before reading sections back."""
    sheet: str
    cell: str
    value: str


# Section name -> entries, in configuration order
SectionMap = Dict[str, List[KeyValueEntry]]


def section_map_to_dict(sections: SectionMap) -> Dict[str, List[Dict[str, Optional[str]]]]:
    """Convert a SectionMap into plain JSON-serializable structures."""
    return {
        name: [entry.to_dict() for entry in entries]
        for name, entries in sections.items()
    }
