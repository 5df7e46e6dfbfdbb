"""Loading the trigger step's output."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Sequence

from pydantic import ValidationError

from .exceptions import ConfigurationError
from .schemas import TriggerResult

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_FILE = Path("trigger-results.json")


def load_trigger_results(path: Path) -> List[TriggerResult]:
    """Read *path* and validate each entry as a ``TriggerResult``."""

    if not path.exists():
        raise ConfigurationError(f"Trigger results file {path} does not exist")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Trigger results file {path} is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise ConfigurationError(f"Trigger results file {path} must contain a JSON array")

    results: List[TriggerResult] = []
    for index, entry in enumerate(payload):
        try:
            results.append(TriggerResult.model_validate(entry))
        except ValidationError as exc:
            raise ConfigurationError(f"Trigger result #{index} in {path} is invalid: {exc}") from exc
    logger.debug("Loaded %d trigger result(s) from %s", len(results), path)
    return results


def triggered_only(results: Sequence[TriggerResult]) -> List[TriggerResult]:
    return [result for result in results if result.triggered]
