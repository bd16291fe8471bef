"""
Section extraction service.

For each configured section, walks the key range and the value range in
parallel and collects the key/value pairs whose key cell is not blank.
"""

import logging
from typing import Any, List, Optional, Sequence

from services.adapters.base import CellFactAdapter
from services.exceptions import CellReferenceError
from services.models import KeyValueEntry, SectionConfig, SectionMap
from services.number_format_service import NumberFormatter
from services.range_service import RangeExpander
from services.value_resolver import ValueResolver

logger = logging.getLogger(__name__)


class SectionExtractor:
    """
    Extract configured key/value sections from one worksheet.

    The extractor holds no state between runs; every call to extract()
    builds a fresh SectionMap.
    """

    def __init__(self, adapter: CellFactAdapter, formatter: Optional[NumberFormatter] = None):
        """
        Initialize section extractor.

        Args:
            adapter: Cell fact adapter for the workbook backend
            formatter: Number formatter (default: NumberFormatter())
        """
        self.adapter = adapter
        self.resolver = ValueResolver(adapter, formatter)

    def extract(self, document: Any, sheet: Any, sections: Sequence[SectionConfig]) -> SectionMap:
        """
        Extract all sections.

        Args:
            document: Document handle from the adapter
            sheet: Sheet handle from the adapter
            sections: Section definitions, in output order

        Returns:
            Mapping of section name to its entries, in configuration order.
            Sections without any non-blank key map to an empty list.

        Raises:
            MalformedAddressError, MalformedRangeError, UnsupportedRangeError:
                If a section's range is invalid; the error names the section
            AdapterError: Propagated unchanged from the adapter
        """
        result: SectionMap = {}

        for section in sections:
            result[section.name] = self.extract_section(document, sheet, section)

        logger.info(f"Extracted {len(result)} sections, "
                    f"{sum(len(entries) for entries in result.values())} entries")
        return result

    def extract_section(self, document: Any, sheet: Any, section: SectionConfig) -> List[KeyValueEntry]:
        """Extract the entries of a single section."""
        key_cells = self._expand(section, section.key_range)
        value_cells = self._expand(section, section.value_range)

        if len(key_cells) != len(value_cells):
            logger.warning(
                f"Section '{section.name}': key range {section.key_range} has {len(key_cells)} cells, "
                f"value range {section.value_range} has {len(value_cells)}; "
                f"using the first {min(len(key_cells), len(value_cells))}"
            )

        entries = []
        for key_address, value_address in zip(key_cells, value_cells):
            key = self.resolver.display_text(document, sheet, key_address)
            if not key or not key.strip():
                continue

            value, formula = self.resolver.resolve(document, sheet, value_address)
            entries.append(KeyValueEntry(
                key_cell=str(key_address),
                key=key.strip(),
                value_cell=str(value_address),
                value=value.strip() if value is not None else None,
                formula=formula or ''
            ))

        logger.debug(f"Section '{section.name}': {len(entries)} entries")
        return entries

    @staticmethod
    def _expand(section: SectionConfig, range_text: str):
        try:
            return RangeExpander.expand(range_text)
        except CellReferenceError as e:
            logger.error(f"Invalid range in section '{section.name}': {range_text!r} ({e})")
            raise e.attach_context(section.name, range_text)
