"""Template catalog, rendering and installation.

Key classes:
    TemplateCatalog        - Load and filter the list of available templates
    TemplateRenderer       - Jinja2 in-place rendering of copied files
    NormalInstallStrategy  - Copy + render + whitelisted commands
    CustomInstallStrategy  - Delegate to the template's entry point
"""

from .catalog import (
    TemplateCatalog,
    TemplateMetadata,
    TemplateType,
    filter_by_kind,
    parse_templates,
)
from .renderer import TemplateRenderer

__all__ = [
    "TemplateCatalog",
    "TemplateMetadata",
    "TemplateType",
    "TemplateRenderer",
    "filter_by_kind",
    "parse_templates",
]
