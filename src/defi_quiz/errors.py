"""Exceptions raised by the episode engine.

Data-dependent declines (a template's prerequisites not being met, an
extraction coming back empty, a slot running out of candidates) are
ordinary values recorded in the build log. Only genuine defects in the
template catalog or its configuration raise.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """A template, fallback or slot matrix violates its own contract."""


__all__ = ["ConfigurationError"]
