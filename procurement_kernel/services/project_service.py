"""
ProjectService -- project registry.

Responsibility:
    Registers projects (idempotently) and records the project supervisor
    once a supervisor contract becomes active.  Projects anchor every
    ownership check: quote requests, supervisor contracts and material
    requests all resolve their homeowner/supervisor through here.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Failure modes:
    - ProjectNotFoundError for an unknown project id.
    - ConflictError when a project id is re-registered with a different
      homeowner.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.exc import IntegrityError

from procurement_kernel.domain.capabilities import Actor, Relation, Role, authorize
from procurement_kernel.domain.dtos import ProjectInfo
from procurement_kernel.exceptions import (
    ConflictError,
    ForbiddenError,
    ProjectNotFoundError,
    ValidationError,
)
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.project import Project
from procurement_kernel.services.base import BaseService

logger = get_logger("services.project")


def project_relations(project: Project) -> dict[Relation, UUID | None]:
    return {
        Relation.PROJECT_HOMEOWNER: project.homeowner_id,
        Relation.PROJECT_SUPERVISOR: project.supervisor_id,
    }


class ProjectService(BaseService[Project]):
    """Project registry."""

    model = Project
    not_found_error = ProjectNotFoundError

    def register(
        self,
        actor: Actor,
        project_id: UUID,
        homeowner_id: UUID,
        title: str,
    ) -> ProjectInfo:
        """
        Register a project, or return it unchanged if already registered.

        Homeowners may only register their own projects; admins may register
        on a homeowner's behalf.
        """
        authorize(actor, "Project", "register")
        if actor.role == Role.HOMEOWNER and actor.actor_id != homeowner_id:
            raise ForbiddenError(
                str(actor.actor_id), actor.role.value, "register", "Project",
                "homeowners may only register their own projects",
            )
        if not title or not title.strip():
            raise ValidationError("Project title must not be empty")

        existing = self.session.get(Project, project_id)
        if existing is not None:
            return self._check_same_owner(existing, homeowner_id).to_dto()

        savepoint = self.session.begin_nested()
        try:
            project = Project(
                id=project_id,
                title=title.strip(),
                homeowner_id=homeowner_id,
                created_by_id=actor.actor_id,
            )
            self.session.add(project)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            # Registered concurrently; fall back to the winner's row.
            savepoint.rollback()
            logger.debug("project_register_race", extra={"project_id": str(project_id)})
            project = self._load(project_id)
            return self._check_same_owner(project, homeowner_id).to_dto()

        logger.info(
            "project_registered",
            extra={
                "project_id": str(project_id),
                "homeowner_id": str(homeowner_id),
            },
        )
        return project.to_dto()

    def _check_same_owner(self, project: Project, homeowner_id: UUID) -> Project:
        if project.homeowner_id != homeowner_id:
            raise ConflictError(
                f"Project {project.id} is already registered to another homeowner"
            )
        return project

    def get(self, project_id: UUID) -> ProjectInfo:
        return self._load(project_id).to_dto()

    def get_model(self, project_id: UUID) -> Project:
        return self._load(project_id)

    def assign_supervisor(
        self,
        project_id: UUID,
        supervisor_id: UUID,
        actor_id: UUID,
    ) -> ProjectInfo:
        """Record the project's supervisor. Called when a supervisor contract activates."""
        project = self._load_for_update(project_id)
        previous = project.supervisor_id
        project.supervisor_id = supervisor_id
        project.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "project_supervisor_assigned",
            extra={
                "project_id": str(project_id),
                "supervisor_id": str(supervisor_id),
                "previous_supervisor_id": str(previous) if previous else None,
            },
        )
        return project.to_dto()
