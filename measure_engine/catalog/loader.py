"""
Loading measure definitions from static JSON configuration.

A definitions file is a JSON array of measure objects, or an object with a
``measures`` array. When no path is configured the bundled catalog
(default_measures.json) is used.
"""

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from measure_engine.core.exceptions import ConfigurationError
from measure_engine.services.registry import MeasureRegistry

logger = logging.getLogger(__name__)

BUNDLED_CATALOG = 'default_measures.json'


def _extract_definitions(payload: Any, origin: str) -> List[Dict[str, Any]]:
    if isinstance(payload, dict):
        payload = payload.get('measures')
    if not isinstance(payload, list):
        raise ConfigurationError(f"{origin}: expected a list of measure definitions")
    return payload


def load_definitions(path: Optional[Union[str, Path]] = None) -> List[Dict[str, Any]]:
    """
    Read raw measure definitions.

    Args:
        path: JSON file to read; the bundled catalog when None.

    Raises:
        ConfigurationError: The file is missing, not JSON, or not a list.
    """
    if path is None:
        origin = f"bundled catalog {BUNDLED_CATALOG}"
        text = resources.files('measure_engine.catalog').joinpath(BUNDLED_CATALOG).read_text(encoding='utf-8')
    else:
        origin = str(path)
        try:
            text = Path(path).read_text(encoding='utf-8')
        except OSError as e:
            raise ConfigurationError(f"Cannot read measure definitions from {origin}: {e}") from e

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {origin}: {e}") from e

    definitions = _extract_definitions(payload, origin)
    logger.info(f"Loaded {len(definitions)} measure definitions from {origin}")
    return definitions


def build_registry(path: Optional[Union[str, Path]] = None) -> MeasureRegistry:
    """Load definitions and return an initialized, finalized registry."""
    registry = MeasureRegistry()
    registry.initialize(load_definitions(path))
    return registry
