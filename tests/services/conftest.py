"""
Fixtures for kernel-service tests.

Every service here shares the one test ``session``; nothing is committed.
The scenario fixtures override the coordinator-based ones from the root
conftest with flush-only equivalents.
"""

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from procurement_kernel.services import (
    ContractService,
    EscrowService,
    MaterialRequestService,
    PaymentLedgerService,
    ProjectService,
    ProposalService,
    QuoteRequestService,
    SupervisorContractService,
)
from tests.factories import (
    FOUNDATION_ITEMS,
    SAMPLE_ROWS,
    accept_and_form_contract,
    pay_commission,
    pay_registration_fee,
)


@pytest.fixture
def svc(session, deterministic_clock):
    """All kernel services bound to the test session."""
    return SimpleNamespace(
        projects=ProjectService(session, deterministic_clock),
        quotes=QuoteRequestService(session, deterministic_clock),
        proposals=ProposalService(session, deterministic_clock, max_revision_cycles=2),
        contracts=ContractService(session, deterministic_clock),
        supervisor_contracts=SupervisorContractService(session, deterministic_clock),
        escrow=EscrowService(session, deterministic_clock),
        materials=MaterialRequestService(session, deterministic_clock),
        payments=PaymentLedgerService(session, deterministic_clock),
    )


@pytest.fixture
def project(svc, homeowner):
    return svc.projects.register(homeowner, uuid4(), homeowner.actor_id, "Townhouse D2")


@pytest.fixture
def sent_quote(svc, homeowner, contractor, project):
    quote = svc.quotes.create(
        homeowner, project.id, "Foundation work", invitee_ids=[contractor.actor_id],
    )
    return svc.quotes.send(homeowner, quote.id)


@pytest.fixture
def submitted_proposal(svc, contractor, sent_quote):
    return svc.proposals.submit(
        contractor, sent_quote.id, Decimal("50000000"), 30, FOUNDATION_ITEMS,
    )


@pytest.fixture
def contract(svc, homeowner, submitted_proposal):
    return accept_and_form_contract(svc, homeowner, submitted_proposal.id)


@pytest.fixture
def active_contract(svc, homeowner, contractor, contract):
    pay_commission(svc, contract.id)
    svc.contracts.sign(homeowner, contract.id, "homeowner-signature")
    return svc.contracts.sign(contractor, contract.id, "contractor-signature")


@pytest.fixture
def supervised_project(svc, homeowner, supervisor, project):
    sc = svc.supervisor_contracts.create(
        homeowner, project.id, supervisor.actor_id, Decimal("2000000"),
    )
    pay_registration_fee(svc, sc.id)
    svc.supervisor_contracts.sign(homeowner, sc.id, "h")
    svc.supervisor_contracts.sign(supervisor, sc.id, "s")
    return svc.projects.get(project.id)


@pytest.fixture
def pending_material_request(svc, contractor, supervised_project):
    request = svc.materials.create(contractor, supervised_project.id)
    return svc.materials.import_materials(contractor, request.id, SAMPLE_ROWS)
