"""Slot matrices and the quantitative fallback catalog.

Public API:
    SlotMatrix, SlotSpec, FallbackSpec
    load_slot_matrix, load_fallback_specs, validate_matrix
    Fallback, build_fallbacks, select_fallback
"""

from __future__ import annotations

from .fallbacks import Fallback, build_fallback, build_fallbacks, select_fallback
from .loader import load_fallback_specs, load_slot_matrix, validate_matrix
from .schema import SLOT_NAMES, FallbackSpec, SlotMatrix, SlotSpec

__all__ = [
    "SLOT_NAMES",
    "SlotMatrix",
    "SlotSpec",
    "FallbackSpec",
    "load_slot_matrix",
    "load_fallback_specs",
    "validate_matrix",
    "Fallback",
    "build_fallback",
    "build_fallbacks",
    "select_fallback",
]
