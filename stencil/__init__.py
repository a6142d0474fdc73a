"""stencil -- scaffold projects and components from registry templates.

Key modules:
    pipeline         - ``stencil init`` orchestration and CLI entry point
    registry_client  - Registry access and version resolution
    package          - Versioned template package cache
    templates        - Template catalog, rendering and install strategies
    guard            - Whitelist for template-declared commands
"""

__version__ = "1.0.0"

DIST_NAME = "stencil-cli"
