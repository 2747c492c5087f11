"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, session-handling contract and the
    locked-load helper for every service in the kernel layer.  All concrete
    services inherit from BaseService, receiving a SQLAlchemy ``Session``
    that they use via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (WorkflowCoordinator or a test harness) owns commit/rollback.
    - Every read-modify-write loads its row with SELECT ... FOR UPDATE and
      ``populate_existing`` so the decision is made on the committed row,
      not a stale identity-map copy.

Failure modes:
    - The supplied NotFoundError subclass when a row does not exist.
"""

from __future__ import annotations

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement_kernel.db.base import Base
from procurement_kernel.domain.clock import Clock, SystemClock
from procurement_kernel.exceptions import NotFoundError
from procurement_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

transition_logger = get_logger("services.transitions")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    model: type[ModelType]
    not_found_error: type[NotFoundError] = NotFoundError

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    def _load(self, entity_id: UUID) -> ModelType:
        """Load a row without locking (reads)."""
        entity = self.session.get(self.model, entity_id)
        if entity is None:
            raise self.not_found_error(str(entity_id))
        return entity

    def _load_for_update(self, entity_id: UUID) -> ModelType:
        """Load a row under a row-level lock, refreshing any cached copy."""
        entity = self.session.execute(
            select(self.model)
            .where(self.model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if entity is None:
            raise self.not_found_error(str(entity_id))
        return entity

    def _record_transition(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        from_state: str,
        to_state: str,
        actor_id: UUID | None,
    ) -> None:
        transition_logger.info(
            "status_transition",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action,
                "from_state": from_state,
                "to_state": to_state,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )
