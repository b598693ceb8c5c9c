"""chartdeck - chart snippets with named datasets and draft/published versions.

This package provides the specification engine behind the snippet editor:
- Spec tree walking and dataset reference resolution
- Data format and column type detection
- Draft/published lifecycle with debounced auto-save and auto-render
"""

__version__ = "0.1.0"
