"""
Module: procurement_kernel.models.project
Responsibility: ORM persistence for projects, the root every quote request,
    supervisor contract and material request hangs off.
Architecture position: Kernel > Models.  May import from db/ and
    domain/dtos.py only.

Invariants enforced:
    - homeowner_id is immutable after registration.
    - supervisor_id is set only when a SupervisorContract becomes Active
      (enforced at service layer).
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import TrackedBase, UUIDString
from procurement_kernel.domain.dtos import ProjectInfo


class Project(TrackedBase):
    """A homeowner's construction project."""

    __tablename__ = "projects"

    __table_args__ = (
        Index("idx_project_homeowner", "homeowner_id"),
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    homeowner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    supervisor_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
        doc="Set when a supervisor contract for the project becomes active",
    )

    def to_dto(self) -> ProjectInfo:
        return ProjectInfo(
            id=self.id,
            title=self.title,
            homeowner_id=self.homeowner_id,
            supervisor_id=self.supervisor_id,
        )

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title}>"
