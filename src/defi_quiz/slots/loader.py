"""YAML slot matrix and fallback catalog loader.

Slot matrices live in ``{episode_type}.yaml`` and the fallback catalog in
``fallbacks.yaml``, both in this directory unless another directory is
passed in.

Public API:
    load_slot_matrix(episode_type) -> SlotMatrix
    load_fallback_specs(episode_type) -> list[FallbackSpec]
    validate_matrix(matrix) -> list[str]
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from ..core.difficulty import SLOT_TARGETS
from .schema import ALL_FORMATS, FallbackSpec, SlotMatrix, SlotSpec

logger = logging.getLogger(__name__)

# Directory containing the packaged YAML files (same directory as this module)
_SLOTS_DIR = Path(__file__).parent

FALLBACKS_FILE = "fallbacks.yaml"


def _read_yaml(path: Path) -> dict:
    if not path.is_file():
        raise FileNotFoundError(f"No YAML file found at {path}")
    logger.debug("Loading %s", path)
    with open(path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected YAML dict in {path}, got {type(data).__name__}")
    return data


def _parse_slot(name: str, raw: dict) -> SlotSpec:
    """Parse one slot entry; a bare list is shorthand for the template ids."""
    if isinstance(raw, list):
        raw = {"templates": raw}
    return SlotSpec(
        name=str(name),
        target=str(raw.get("target", SLOT_TARGETS.get(str(name), "medium"))),
        templates=[str(t) for t in raw.get("templates", [])],
        allowed_formats=[str(f) for f in raw.get("allowed_formats", ALL_FORMATS)],
    )


def _parse_matrix(data: dict) -> SlotMatrix:
    slots = data.get("slots")
    if not isinstance(slots, dict):
        raise ValueError("slot matrix needs a 'slots' mapping")
    return SlotMatrix(
        episode_type=str(data["episode_type"]),
        slots=[_parse_slot(name, raw) for name, raw in slots.items()],
    )


def _parse_fallback(raw: dict, episode_type: str) -> FallbackSpec:
    threshold = raw.get("threshold")
    return FallbackSpec(
        id=str(raw["id"]),
        kind=str(raw["kind"]),
        episode_type=episode_type,
        difficulty=str(raw.get("difficulty", "easy")),
        threshold=float(threshold) if threshold is not None else None,
        label=raw.get("label"),
        direction=raw.get("direction"),
        period=raw.get("period"),
        peers=raw.get("peers"),
        prompt=raw.get("prompt"),
        topics=[str(t) for t in raw.get("topics", [])],
    )


def load_slot_matrix(episode_type: str, slots_dir: Path | None = None) -> SlotMatrix:
    """Load the slot matrix for an episode type.

    Args:
        episode_type: "protocol" or "chain"; selects ``{episode_type}.yaml``.
        slots_dir: Override directory. Defaults to the package slots/ directory.

    Returns:
        Parsed SlotMatrix (not yet validated).

    Raises:
        FileNotFoundError: If the YAML file does not exist.
        ValueError: If the YAML cannot be parsed into a slot matrix.
    """
    path = (slots_dir or _SLOTS_DIR) / f"{episode_type}.yaml"
    data = _read_yaml(path)
    try:
        matrix = _parse_matrix(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed slot matrix in {path}: {e}") from e

    if matrix.episode_type != episode_type:
        logger.warning(
            "Requested %s matrix but YAML contains episode_type=%s in %s",
            episode_type, matrix.episode_type, path,
        )
    return matrix


def load_fallback_specs(episode_type: str, slots_dir: Path | None = None) -> list[FallbackSpec]:
    """Load the fallback catalog entries for an episode type.

    Raises:
        FileNotFoundError: If the catalog file does not exist.
        ValueError: If an entry is malformed or fails validation.
    """
    path = (slots_dir or _SLOTS_DIR) / FALLBACKS_FILE
    data = _read_yaml(path)
    entries = data.get(episode_type, [])
    if not isinstance(entries, list):
        raise ValueError(f"Expected a list under '{episode_type}' in {path}")

    specs: list[FallbackSpec] = []
    for raw in entries:
        try:
            spec = _parse_fallback(raw, episode_type)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"Malformed fallback entry in {path}: {e}") from e
        errors = spec.validate()
        if errors:
            raise ValueError(f"Invalid fallback '{spec.id}' in {path}: {'; '.join(errors)}")
        specs.append(spec)

    ids = [spec.id for spec in specs]
    if len(ids) != len(set(ids)):
        raise ValueError(f"Fallback ids must be unique within '{episode_type}' in {path}")
    return specs


def validate_matrix(matrix: SlotMatrix, known_templates: set[str] | None = None) -> list[str]:
    """Validate a slot matrix and return a list of errors.

    Args:
        matrix: SlotMatrix to validate.
        known_templates: Template ids the matrix may reference.

    Returns:
        List of error strings. Empty list means valid.
    """
    return matrix.validate(known_templates)


__all__ = [
    "FALLBACKS_FILE",
    "load_slot_matrix",
    "load_fallback_specs",
    "validate_matrix",
]
