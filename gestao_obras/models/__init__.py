"""ORM model package."""

from gestao_obras.models.entities import (
    Client,
    ClientPortalAccess,
    PortalEvent,
    Project,
    ProjectCost,
    ProjectRevenue,
    Stage,
    User,
    UserRole,
)

__all__ = [
    "Client",
    "ClientPortalAccess",
    "PortalEvent",
    "Project",
    "ProjectCost",
    "ProjectRevenue",
    "Stage",
    "User",
    "UserRole",
]
