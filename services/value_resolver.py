"""
Value resolver - turn raw cell facts into display text and formula text.
"""

import logging
from typing import Any, Optional, Tuple

from services.address_service import CellAddress
from services.adapters.base import CellFactAdapter
from services.models import CellFact, CellKind
from services.number_format_service import NumberFormatter

logger = logging.getLogger(__name__)


class ValueResolver:
    """Combine adapter facts with number formatting to produce display values."""

    def __init__(self, adapter: CellFactAdapter, formatter: Optional[NumberFormatter] = None):
        self.adapter = adapter
        self.formatter = formatter or NumberFormatter()

    def resolve(self, document: Any, sheet: Any, address: CellAddress) -> Tuple[str, str]:
        """
        Resolve one cell.

        Args:
            document: Document handle from the adapter
            sheet: Sheet handle from the adapter
            address: Cell to resolve

        Returns:
            Tuple of (display_text, formula_text). Missing cells give ("", "").

        Raises:
            IndexOutOfRangeError: If a shared string index is invalid
        """
        fact = self.adapter.get_cell_fact(sheet, address)

        if fact.kind == CellKind.FORMULA:
            formula = fact.formula_text or ''
            if fact.cached_result is None:
                logger.debug(f"No cached result for formula cell {address}: ={formula}")
                return '', formula
            return self.display(document, fact.cached_result, fallback=fact), formula

        return self.display(document, fact), ''

    def display_text(self, document: Any, sheet: Any, address: CellAddress) -> str:
        """Resolve only the display text of a cell (used for key cells)."""
        return self.resolve(document, sheet, address)[0]

    def display(self, document: Any, fact: CellFact, fallback: Optional[CellFact] = None) -> str:
        """
        Render a non-formula fact as display text.

        Args:
            document: Document handle, for shared string lookups
            fact: Fact to render
            fallback: Formula fact whose number format applies when the cached
                      result carries none
        """
        kind = fact.kind

        if kind == CellKind.SHARED_STRING_REF:
            try:
                index = int(fact.raw_value)
            except ValueError:
                logger.debug(f"Shared string reference is not an index: {fact.raw_value!r}")
                return fact.raw_value
            return self.adapter.resolve_shared_string(document, index)

        if kind == CellKind.NUMBER:
            return self._format_number(fact, fallback)

        if kind == CellKind.BOOLEAN:
            return 'True' if fact.raw_value.strip().lower() in ('true', '1') else 'False'

        if kind == CellKind.ERROR:
            return f"#ERROR:{fact.raw_value}"

        if kind == CellKind.FORMULA:
            # Cached results are never formulas; treat a nested one as unevaluated
            return ''

        return fact.raw_value or ''

    def _format_number(self, fact: CellFact, fallback: Optional[CellFact]) -> str:
        try:
            number = float(fact.raw_value)
        except ValueError:
            # Non-numeric content under a numeric format falls back to the raw text
            return fact.raw_value

        format_id = fact.number_format_id
        is_date = fact.is_date_formatted
        if format_id is None and fallback is not None:
            format_id = fallback.number_format_id
            is_date = fallback.is_date_formatted

        return self.formatter.format(number, format_id, is_date)
