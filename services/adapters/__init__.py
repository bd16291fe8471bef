"""
Cell fact adapters, one per spreadsheet backend.

Use get_adapter() to select a backend by its configured name.
"""

from typing import Dict, Type

from services.adapters.base import CellFactAdapter, SheetSelector
from services.adapters.ooxml_adapter import OoxmlAdapter
from services.adapters.openpyxl_adapter import OpenpyxlAdapter

ADAPTERS: Dict[str, Type[CellFactAdapter]] = {
    OpenpyxlAdapter.name: OpenpyxlAdapter,
    OoxmlAdapter.name: OoxmlAdapter,
}


def get_adapter(name: str) -> CellFactAdapter:
    """
    Create the adapter registered under a backend name.

    Args:
        name: Backend name ('openpyxl' or 'ooxml'), case-insensitive

    Raises:
        ValueError: If no adapter is registered under that name
    """
    try:
        adapter_cls = ADAPTERS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown spreadsheet backend: {name!r} (available: {', '.join(sorted(ADAPTERS))})"
        ) from None
    return adapter_cls()


__all__ = [
    'ADAPTERS',
    'CellFactAdapter',
    'OoxmlAdapter',
    'OpenpyxlAdapter',
    'SheetSelector',
    'get_adapter',
]
