"""
prdgate Services

Service layer for the analysis pipeline, phase sequencing and artifacts.
"""

from importlib import import_module
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prdgate.services.base import Service, ServiceContext
    from prdgate.services.project import ProjectSession
    from prdgate.services.phases import Phase, PhaseController, PhaseStatus
    from prdgate.services.pipeline import PipelineService
    from prdgate.services.artifacts import ArtifactService

__all__ = [
    # Base
    "Service",
    "ServiceContext",
    # Session
    "ProjectSession",
    # Phases
    "Phase",
    "PhaseStatus",
    "PhaseController",
    # Pipeline
    "PipelineService",
    # Artifacts
    "ArtifactService",
]

_EXPORTS = {
    "Service": "prdgate.services.base",
    "ServiceContext": "prdgate.services.base",
    "ProjectSession": "prdgate.services.project",
    "Phase": "prdgate.services.phases",
    "PhaseStatus": "prdgate.services.phases",
    "PhaseController": "prdgate.services.phases",
    "PipelineService": "prdgate.services.pipeline",
    "ArtifactService": "prdgate.services.artifacts",
}


def __getattr__(name: str):
    module_path = _EXPORTS.get(name)
    if not module_path:
        raise AttributeError(f"module {__name__} has no attribute {name}")
    module = import_module(module_path)
    return getattr(module, name)


def __dir__() -> list[str]:
    return sorted(__all__)
