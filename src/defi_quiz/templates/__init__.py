"""Question templates and their registries.

Public API:
    TEMPLATES: every template by id
    get_template(template_id) -> Template
    templates_for_type(episode_type) -> list[Template]
    Template, TemplateConfig, Instantiation, PrereqResult
"""

from __future__ import annotations

from ..errors import ConfigurationError
from .chains import CHAIN_TEMPLATE_CONFIGS, CHAIN_TEMPLATES
from .config import Instantiation, PrereqResult, Template, TemplateConfig, create_template
from .protocols import PROTOCOL_TEMPLATE_CONFIGS, PROTOCOL_TEMPLATES

TEMPLATES: dict[str, Template] = {**PROTOCOL_TEMPLATES, **CHAIN_TEMPLATES}


def get_template(template_id: str) -> Template:
    """Look up a template by id.

    Raises:
        ConfigurationError: If no template has this id.
    """
    try:
        return TEMPLATES[template_id]
    except KeyError:
        raise ConfigurationError(f"Unknown template id: {template_id!r}") from None


def templates_for_type(episode_type: str) -> list[Template]:
    return [t for t in TEMPLATES.values() if t.type in (episode_type, "both")]


__all__ = [
    "TEMPLATES",
    "PROTOCOL_TEMPLATES",
    "CHAIN_TEMPLATES",
    "PROTOCOL_TEMPLATE_CONFIGS",
    "CHAIN_TEMPLATE_CONFIGS",
    "get_template",
    "templates_for_type",
    "Template",
    "TemplateConfig",
    "Instantiation",
    "PrereqResult",
    "create_template",
]
