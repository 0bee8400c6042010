"""Regimen loader — reads dose definitions from YAML.

Built-in regimens live next to this package under ``regimens/``; a user
regimen can be loaded from any path with the same shape::

    id: standard
    version: "1.0.0"
    display_name: ...
    description: ...
    doses:
      - id: batch2
        name: Vitamin Batch 2
        min_offset_minutes: 45
        optimal_offset_minutes: 90
        after: batch1
        efficacy: {45: 70, 60: 80, 75: 90, 90: 100}
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from doseclock.domains.medication.domain_logic.dose_models import Dose, Regimen

logger = logging.getLogger(__name__)

REGIMEN_DIR = Path(__file__).resolve().parent.parent / "regimens"

REQUIRED_FIELDS = ["id", "version", "display_name", "doses"]
REQUIRED_DOSE_FIELDS = ["id", "name"]


class RegimenLoadError(Exception):
    """Raised when a regimen file is missing or malformed."""


def list_builtin_regimens() -> list[str]:
    """Names of the regimens shipped with the package."""
    return sorted(p.stem for p in REGIMEN_DIR.glob("*.yaml") if not p.name.startswith("_"))


def load_builtin_regimen(name: str) -> Regimen:
    """Load a shipped regimen by name (e.g. 'standard', 'demo')."""
    path = REGIMEN_DIR / f"{name}.yaml"
    if not path.is_file():
        raise RegimenLoadError(
            f"Unknown regimen {name!r}; available: {', '.join(list_builtin_regimens())}"
        )
    return load_regimen_file(path)


def load_regimen_file(path: str | Path) -> Regimen:
    """Parse a YAML file into a Regimen.

    Raises:
        RegimenLoadError: If the file cannot be read or lacks required fields.
    """
    path = Path(path).expanduser()
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise RegimenLoadError(f"Cannot read regimen file {path}: {exc}") from exc

    regimen = parse_regimen(data, source=str(path))
    logger.info("Loaded regimen: %s (v%s, %d doses)", regimen.id, regimen.version, len(regimen.doses))
    return regimen


def parse_regimen(data: Any, *, source: str = "<data>") -> Regimen:
    """Build a Regimen from already-parsed YAML/JSON data."""
    if not isinstance(data, dict):
        raise RegimenLoadError(f"{source}: regimen must be a mapping")

    missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
    if missing:
        raise RegimenLoadError(f"{source}: missing or empty required field(s) {missing}")
    if not isinstance(data["doses"], list):
        raise RegimenLoadError(f"{source}: 'doses' must be a list")

    return Regimen(
        id=str(data["id"]),
        version=str(data["version"]),
        display_name=data["display_name"],
        description=(data.get("description") or "").strip(),
        doses=[_parse_dose(d, source=source) for d in data["doses"]],
    )


def _parse_dose(data: Any, *, source: str) -> Dose:
    if not isinstance(data, dict):
        raise RegimenLoadError(f"{source}: each dose must be a mapping, got {data!r}")
    missing = [name for name in REQUIRED_DOSE_FIELDS if not data.get(name)]
    if missing:
        raise RegimenLoadError(f"{source}: dose {data.get('id', '?')!r} missing {missing}")

    efficacy = data.get("efficacy")
    if efficacy is not None:
        if not isinstance(efficacy, dict):
            raise RegimenLoadError(f"{source}: dose {data['id']!r} efficacy must be a mapping")
        try:
            efficacy = {float(t): float(v) for t, v in efficacy.items()}
        except (TypeError, ValueError) as exc:
            raise RegimenLoadError(
                f"{source}: dose {data['id']!r} efficacy must map numbers to numbers"
            ) from exc

    return Dose(
        id=str(data["id"]),
        name=data["name"],
        description=data.get("description", ""),
        min_offset_minutes=data.get("min_offset_minutes", 0) or 0,
        optimal_offset_minutes=data.get("optimal_offset_minutes", 0) or 0,
        predecessor_id=data.get("after"),
        efficacy_points=efficacy,
        milestone=bool(data.get("milestone", False)),
    )
