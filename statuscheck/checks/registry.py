"""Checker registry: loads checks.yaml (or JSON) into typed checkers.

Each entry under ``checkers`` carries a ``type`` that selects the checker
model; the rest of the entry is that model's configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError

from ..errors import ConfigurationError
from .http_check import HTTPChecker

logger = logging.getLogger(__name__)

CHECKER_TYPES: dict[str, type[BaseModel]] = {
    "http": HTTPChecker,
}


def new_checker(raw: Mapping[str, Any]) -> HTTPChecker:
    """Build a checker from one deserialized config entry."""
    checker_type = raw.get("type", "http")
    model = CHECKER_TYPES.get(checker_type)
    if model is None:
        raise ConfigurationError(f"unknown checker type: {checker_type!r}")
    try:
        return model.model_validate(dict(raw))
    except ValidationError as e:
        name = raw.get("endpoint_name") or raw.get("name") or "<unnamed>"
        raise ConfigurationError(f"invalid {checker_type} checker {name!r}: {e}") from e


def load_checkers(path: Path | str) -> list[HTTPChecker]:
    """Parse a checks file and return its checkers in file order."""
    path = Path(path)
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"cannot read checks file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"cannot parse checks file {path}: {e}") from e

    entries = (raw or {}).get("checkers", []) if isinstance(raw, dict) else None
    if not isinstance(entries, list):
        raise ConfigurationError(f"{path}: 'checkers' must be a list")

    checkers = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"{path}: checker #{i + 1} is not a mapping")
        checkers.append(new_checker(entry))

    logger.info("Loaded %d checkers from %s", len(checkers), path)
    return checkers
