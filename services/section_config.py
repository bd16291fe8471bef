"""
Section configuration loading.

Sections are defined in a JSON file, in file order:

    {
        "ExcelSections": {
            "Loan": {"KeyRange": "A2:A10", "ValueRange": "B2:B10"},
            "Borrower": {"KeyRange": "D2:D6", "ValueRange": "E2:E6"}
        }
    }

The inner mapping on its own is accepted as well.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from services.exceptions import ConfigurationError
from services.models import SectionConfig

logger = logging.getLogger(__name__)

SECTIONS_KEY = 'ExcelSections'
KEY_RANGE_FIELD = 'KeyRange'
VALUE_RANGE_FIELD = 'ValueRange'


def parse_section_configs(data: Mapping[str, Any]) -> List[SectionConfig]:
    """
    Build SectionConfig objects from a decoded configuration mapping.

    Raises:
        ConfigurationError: If the structure or a section entry is invalid
    """
    if not isinstance(data, Mapping):
        raise ConfigurationError("Section configuration must be a JSON object")

    sections = data.get(SECTIONS_KEY, data)
    if not isinstance(sections, Mapping):
        raise ConfigurationError(f"'{SECTIONS_KEY}' must be a JSON object")

    configs = []
    for name, entry in sections.items():
        if not isinstance(entry, Mapping):
            raise ConfigurationError(f"Section '{name}' must be a JSON object")

        missing = [f for f in (KEY_RANGE_FIELD, VALUE_RANGE_FIELD) if not entry.get(f)]
        if missing:
            raise ConfigurationError(f"Section '{name}' is missing {', '.join(missing)}")

        configs.append(SectionConfig(
            name=name,
            key_range=str(entry[KEY_RANGE_FIELD]).strip(),
            value_range=str(entry[VALUE_RANGE_FIELD]).strip()
        ))

    return configs


def load_section_configs(path: Union[str, Path]) -> List[SectionConfig]:
    """
    Load section definitions from a JSON file.

    Raises:
        ConfigurationError: If the file is missing, not valid JSON, or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Section configuration file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data: Dict[str, Any] = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    configs = parse_section_configs(data)
    logger.info(f"Loaded {len(configs)} sections from {path}")
    return configs
