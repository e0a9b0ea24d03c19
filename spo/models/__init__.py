from spo.models.project import (
    ComponentStatus,
    Condition,
    DependencyStatus,
    EndpointsStatus,
    Project,
    ProjectSpec,
    ProjectStatus,
)

__all__ = [
    "ComponentStatus",
    "Condition",
    "DependencyStatus",
    "EndpointsStatus",
    "Project",
    "ProjectSpec",
    "ProjectStatus",
]
