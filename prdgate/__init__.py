"""
prdgate: PRD analysis, extraction review and artifact gating core.

Turns untrusted model output about a product requirements document into
structured verdicts, gates phase advancement on them, runs a reviewable
entity-extraction workflow, and persists generated artifacts.

Distribution: Python library (no CLI or HTTP surface)
"""

__version__ = "0.1.0"
__all__ = [
    "__version__",
]
