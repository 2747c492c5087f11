"""
Capabilities -- centralized authorization table.

Responsibility:
    Declares, for every (entity type, action) pair, which actor roles may
    perform it and which relation the actor must hold to the entity.
    Services compute the concrete relations for the entity they loaded and
    call ``authorize()``; no service hand-rolls a role check.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Every mutation is checked against exactly one Capability.
    - An unknown (entity type, action) pair is denied, never allowed.
    - A role granted with a relation requires the actor's id to be among the
      ids the caller supplied for that relation.

Failure modes:
    - ForbiddenError when the role is not granted or the relation is missing.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from procurement_kernel.exceptions import ForbiddenError


class Role(str, Enum):
    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"
    SUPERVISOR = "supervisor"
    ADMIN = "admin"
    # Trusted internal caller, e.g. the payment notification handler.
    SYSTEM = "system"


class Relation(str, Enum):
    PROJECT_HOMEOWNER = "project_homeowner"
    PROJECT_SUPERVISOR = "project_supervisor"
    QUOTE_OWNER = "quote_owner"
    QUOTE_INVITEE = "quote_invitee"
    PROPOSAL_CONTRACTOR = "proposal_contractor"
    CONTRACT_HOMEOWNER = "contract_homeowner"
    CONTRACT_CONTRACTOR = "contract_contractor"
    CONTRACT_SUPERVISOR = "contract_supervisor"
    REQUEST_CONTRACTOR = "request_contractor"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a coordinator operation."""

    actor_id: UUID
    role: Role


@dataclass(frozen=True)
class Capability:
    """
    Permission for one action on one entity type.

    ``grants`` maps each allowed role to the relation it must hold, or
    ``None`` when the role alone suffices.
    """

    entity_type: str
    action: str
    grants: Mapping[Role, Relation | None] = field(default_factory=dict)

    def allows_role(self, role: Role) -> bool:
        return role in self.grants


def _cap(entity_type: str, action: str, **grants: Relation | None) -> Capability:
    return Capability(
        entity_type=entity_type,
        action=action,
        grants={Role(name.lower()): rel for name, rel in grants.items()},
    )


_R = Relation

CAPABILITIES: dict[tuple[str, str], Capability] = {
    (c.entity_type, c.action): c
    for c in (
        _cap("Project", "register", HOMEOWNER=None, ADMIN=None),
        # Quote requests
        _cap("QuoteRequest", "create", HOMEOWNER=_R.PROJECT_HOMEOWNER),
        _cap("QuoteRequest", "invite", HOMEOWNER=_R.QUOTE_OWNER),
        _cap("QuoteRequest", "send", HOMEOWNER=_R.QUOTE_OWNER),
        _cap("QuoteRequest", "cancel", HOMEOWNER=_R.QUOTE_OWNER, ADMIN=None),
        # Proposals
        _cap("Proposal", "submit", CONTRACTOR=_R.QUOTE_INVITEE),
        _cap("Proposal", "request_revision", HOMEOWNER=_R.QUOTE_OWNER),
        _cap("Proposal", "resubmit", CONTRACTOR=_R.PROPOSAL_CONTRACTOR),
        _cap("Proposal", "accept", HOMEOWNER=_R.QUOTE_OWNER),
        _cap(
            "Proposal", "reject",
            HOMEOWNER=_R.QUOTE_OWNER, CONTRACTOR=_R.PROPOSAL_CONTRACTOR,
        ),
        # Contracts
        _cap(
            "Contract", "sign",
            HOMEOWNER=_R.CONTRACT_HOMEOWNER, CONTRACTOR=_R.CONTRACT_CONTRACTOR,
        ),
        _cap("Contract", "update_status", HOMEOWNER=_R.CONTRACT_HOMEOWNER, ADMIN=None),
        _cap("SupervisorContract", "create", HOMEOWNER=_R.PROJECT_HOMEOWNER),
        _cap(
            "SupervisorContract", "sign",
            HOMEOWNER=_R.CONTRACT_HOMEOWNER, SUPERVISOR=_R.CONTRACT_SUPERVISOR,
        ),
        _cap(
            "SupervisorContract", "update_status",
            HOMEOWNER=_R.CONTRACT_HOMEOWNER, ADMIN=None,
        ),
        # Escrow
        _cap("Escrow", "credit", SYSTEM=None, ADMIN=None),
        # Materials
        _cap("MaterialRequest", "create", CONTRACTOR=None),
        _cap("MaterialRequest", "import_materials", CONTRACTOR=_R.REQUEST_CONTRACTOR),
        _cap("MaterialRequest", "clear_materials", CONTRACTOR=_R.REQUEST_CONTRACTOR),
        _cap("MaterialRequest", "delete", CONTRACTOR=_R.REQUEST_CONTRACTOR),
        _cap(
            "MaterialRequest", "approve",
            HOMEOWNER=_R.PROJECT_HOMEOWNER, SUPERVISOR=_R.PROJECT_SUPERVISOR,
        ),
        _cap(
            "MaterialRequest", "reject",
            HOMEOWNER=_R.PROJECT_HOMEOWNER, SUPERVISOR=_R.PROJECT_SUPERVISOR,
        ),
        _cap(
            "Material", "record_actual",
            CONTRACTOR=_R.REQUEST_CONTRACTOR, SUPERVISOR=_R.PROJECT_SUPERVISOR,
        ),
        _cap("Material", "record_payment", HOMEOWNER=_R.PROJECT_HOMEOWNER),
    )
}


def get_capability(entity_type: str, action: str) -> Capability | None:
    return CAPABILITIES.get((entity_type, action))


def authorize(
    actor: Actor,
    entity_type: str,
    action: str,
    relations: Mapping[Relation, UUID | Collection[UUID] | None] | None = None,
) -> Capability:
    """
    Check that ``actor`` may perform ``action`` on an entity.

    Args:
        actor: The caller.
        entity_type: Entity type name as used in the capability table.
        action: Action name as used in the capability table.
        relations: For each relation the entity defines, the id (or ids)
            of the actors holding it.

    Returns:
        The matching Capability.

    Raises:
        ForbiddenError: If the action is unknown, the role is not granted,
            or the actor lacks the required relation.
    """
    capability = get_capability(entity_type, action)
    if capability is None:
        raise ForbiddenError(
            str(actor.actor_id), actor.role.value, action, entity_type,
            "no capability defined",
        )
    if not capability.allows_role(actor.role):
        raise ForbiddenError(
            str(actor.actor_id), actor.role.value, action, entity_type,
            f"role {actor.role.value} not permitted",
        )

    required = capability.grants[actor.role]
    if required is None:
        return capability

    holders = (relations or {}).get(required)
    if holders is None:
        allowed = False
    elif isinstance(holders, UUID):
        allowed = holders == actor.actor_id
    else:
        allowed = actor.actor_id in holders
    if not allowed:
        raise ForbiddenError(
            str(actor.actor_id), actor.role.value, action, entity_type,
            f"actor is not {required.value}",
        )
    return capability
