"""
End-to-end procurement flow through the WorkflowCoordinator.

Each coordinator call is its own committed transaction; reads go through
fresh sessions, so these tests observe exactly what was persisted.
"""

from decimal import Decimal

import pytest

from procurement_kernel.domain.capabilities import Role
from procurement_kernel.domain.dtos import (
    ContractStatus,
    MaterialRequestStatus,
    ProposalItem,
    ProposalStatus,
    QuoteRequestStatus,
)
from procurement_kernel.domain.variance import VarianceDirection
from procurement_kernel.exceptions import PaymentRequiredError, QuoteRequestNotSentError
from tests.factories import FOUNDATION_ITEMS, SAMPLE_ROWS, momo_payload


def test_foundation_work_from_quote_to_actuals(
    coordinator, recording_notifier, homeowner, contractor, supervisor,
    supervised_project, deterministic_clock,
):
    # Quote request, invited and sent.
    quote = coordinator.create_quote_request(
        homeowner, supervised_project.id, "Foundation work", invitee_ids=[contractor.actor_id],
    )
    assert quote.status == QuoteRequestStatus.DRAFT
    quote = coordinator.send_quote_request(homeowner, quote.id)
    assert quote.status == QuoteRequestStatus.SENT
    sent = recording_notifier.of_kind("quote_request.sent")
    assert [n.recipients for n in sent] == [(contractor.actor_id,)]

    # Proposal with one revision round.
    proposal = coordinator.submit_proposal(
        contractor, quote.id, "50000000", 30, FOUNDATION_ITEMS, terms_summary="50% upfront",
    )
    assert recording_notifier.of_kind("proposal.submitted")[0].recipients == (homeowner.actor_id,)

    coordinator.request_revision(homeowner, proposal.id)
    deterministic_clock.advance(3600)
    revised = coordinator.resubmit_proposal(
        contractor, proposal.id,
        [
            ProposalItem(name="Excavation", price=Decimal("18000000")),
            ProposalItem(name="Concrete footing", price=Decimal("30000000"), notes="M250"),
        ],
        "48000000",
    )
    assert revised.status == ProposalStatus.RESUBMITTED
    assert revised.revision_count == 1

    # Acceptance forms the contract and closes the request together.
    contract = coordinator.accept_proposal(homeowner, proposal.id)
    assert contract.status == ContractStatus.PENDING_SIGNATURES
    assert contract.total_price == Decimal("48000000")
    assert contract.items[0].price == Decimal("18000000")
    assert coordinator.get_proposal(proposal.id).status == ProposalStatus.ACCEPTED
    closed = coordinator.get_quote_request(quote.id)
    assert closed.status == QuoteRequestStatus.CLOSED
    assert coordinator.get_contract_for_proposal(proposal.id).id == contract.id

    # The contractor signs only after the platform commission is paid.
    assert contract.commission_due == Decimal("480000")
    coordinator.sign_contract(homeowner, contract.id, "homeowner-signature")
    with pytest.raises(PaymentRequiredError):
        coordinator.sign_contract(contractor, contract.id, "contractor-signature")
    coordinator.handle_payment_notification(
        momo_payload("COMM-1001", contract.id, amount=480_000, purpose="commission"),
    )
    assert len(recording_notifier.of_kind("contract.commission_paid")) == 1

    # Signing activates.
    active = coordinator.sign_contract(contractor, contract.id, "contractor-signature")
    assert active.status == ContractStatus.ACTIVE
    assert len(recording_notifier.of_kind("contract.signed")) == 2
    assert len(recording_notifier.of_kind("contract.activated")) == 1

    # Escrow funded by the payment gateway.
    outcome = coordinator.handle_payment_notification(
        momo_payload("ORDER-1001", contract.id, amount=24_000_000),
    )
    assert outcome.applied is True
    assert coordinator.get_escrow_balance(contract.id) == Decimal("24000000")

    # Materials: import, dual approval, actuals.
    request = coordinator.create_material_request(contractor, supervised_project.id)
    request = coordinator.import_materials(contractor, request.id, SAMPLE_ROWS)
    imported = recording_notifier.of_kind("material_request.imported")[0]
    assert set(imported.recipients) == {homeowner.actor_id, supervisor.actor_id}

    partial = coordinator.approve_material_request(supervisor, request.id)
    assert partial.status == MaterialRequestStatus.PARTIALLY_APPROVED
    approved = coordinator.approve_material_request(homeowner, request.id)
    assert approved.status == MaterialRequestStatus.APPROVED
    assert recording_notifier.kinds().count("material_request.approved") == 1

    cement = approved.materials[0]
    recorded = coordinator.record_actual_quantity(contractor, cement.id, "110")
    assert recorded.variance == Decimal("10")
    assert recorded.variance_direction == VarianceDirection.OVER
    assert [m.code for m in coordinator.authoritative_materials(supervised_project.id)] == [
        "XM-01", "TH-02",
    ]
    assert len(coordinator.quantity_history(cement.id)) == 1


def test_committed_operations_emit_workflow_trace(coordinator, homeowner, sent_quote,
                                                  contractor, captured_logs):
    proposal = coordinator.submit_proposal(contractor, sent_quote.id, "1000", 10)
    coordinator.accept_proposal(homeowner, proposal.id)

    traces = [r for r in captured_logs() if r["message"] == "workflow_transition"]
    accept = next(t for t in traces if t["action"] == "accept_proposal")
    assert accept["trace_type"] == "WORKFLOW_TRANSITION"
    assert accept["entity_type"] == "Proposal"
    assert accept["traced_entity_id"] == str(proposal.id)
    assert accept["from_state"] == "submitted"
    assert accept["outcome"] == "committed"
    assert accept["duration_ms"] >= 0
    assert accept["actor_role"] == "homeowner"
    assert "correlation_id" in accept


def test_repeated_actions_notify_once(coordinator, recording_notifier, homeowner, contract,
                                      pending_material_request):
    coordinator.sign_contract(homeowner, contract.id, "homeowner-signature")
    coordinator.sign_contract(homeowner, contract.id, "homeowner-signature-again")
    coordinator.approve_material_request(homeowner, pending_material_request.id)
    coordinator.approve_material_request(homeowner, pending_material_request.id)

    assert len(recording_notifier.of_kind("contract.signed")) == 1
    assert len(recording_notifier.of_kind("material_request.partially_approved")) == 1


def test_rejected_operation_persists_nothing(coordinator, recording_notifier, homeowner,
                                             submitted_proposal, captured_logs):
    coordinator.cancel_quote_request(homeowner, submitted_proposal.quote_request_id)
    before = len(recording_notifier.notifications)
    with pytest.raises(QuoteRequestNotSentError):
        coordinator.accept_proposal(homeowner, submitted_proposal.id)

    assert coordinator.get_proposal(submitted_proposal.id).status == ProposalStatus.SUBMITTED
    assert recording_notifier.kinds()[before:] == []
    rejected = [
        r for r in captured_logs()
        if r["message"] == "workflow_transition" and r["outcome"] == "rejected"
    ]
    assert rejected[-1]["reason"] == "QUOTE_REQUEST_NOT_SENT"
    assert rejected[-1]["to_state"] is None


def test_sibling_proposals_after_acceptance(coordinator, homeowner, make_actor, sent_quote,
                                            submitted_proposal):
    rival = make_actor(Role.CONTRACTOR)
    coordinator.invite_contractor(homeowner, sent_quote.id, rival.actor_id)
    sibling = coordinator.submit_proposal(rival, sent_quote.id, "45000000", 28)

    coordinator.accept_proposal(homeowner, submitted_proposal.id)

    assert coordinator.get_proposal(sibling.id).status == ProposalStatus.SUBMITTED
    with pytest.raises(QuoteRequestNotSentError):
        coordinator.accept_proposal(homeowner, sibling.id)
    declined = coordinator.reject_proposal(homeowner, sibling.id, "another bid won")
    assert declined.status == ProposalStatus.REJECTED


def test_invite_after_send_notifies_new_contractor_once(coordinator, recording_notifier,
                                                        homeowner, make_actor, sent_quote):
    late = make_actor(Role.CONTRACTOR)
    coordinator.invite_contractor(homeowner, sent_quote.id, late.actor_id)
    coordinator.invite_contractor(homeowner, sent_quote.id, late.actor_id)

    invited = recording_notifier.of_kind("quote_request.invited")
    assert [n.recipients for n in invited] == [(late.actor_id,)]
    assert coordinator.get_quote_request(sent_quote.id).invitee_ids[-1] == late.actor_id


def test_material_rejection_round_trip(coordinator, recording_notifier, homeowner, supervisor,
                                       contractor, pending_material_request):
    coordinator.approve_material_request(homeowner, pending_material_request.id)
    rejected = coordinator.reject_material_request(
        supervisor, pending_material_request.id, "Rebar must be D12",
    )
    assert rejected.status == MaterialRequestStatus.REJECTED
    notice = recording_notifier.of_kind("material_request.rejected")[0]
    assert notice.recipients == (contractor.actor_id,)
    assert notice.payload["reason"] == "Rebar must be D12"

    cleared = coordinator.clear_imported_materials(contractor, pending_material_request.id)
    assert cleared.status == MaterialRequestStatus.REJECTED
    assert cleared.material_count == 0

    fresh = coordinator.import_materials(contractor, pending_material_request.id, SAMPLE_ROWS)
    assert fresh.status == MaterialRequestStatus.PENDING
    assert not fresh.homeowner_approved

    history = coordinator.approval_history(pending_material_request.id)
    assert len(history) == 2
    assert coordinator.authoritative_materials(fresh.project_id) == []


def test_withdrawn_request_notifies_reviewers(coordinator, recording_notifier, homeowner,
                                             supervisor, contractor, pending_material_request):
    coordinator.delete_material_request(contractor, pending_material_request.id)

    notice = recording_notifier.of_kind("material_request.deleted")[0]
    assert set(notice.recipients) == {homeowner.actor_id, supervisor.actor_id}
    assert coordinator.list_material_requests(pending_material_request.project_id) == []


def test_material_payments_reach_contractor(coordinator, recording_notifier, homeowner,
                                            supervisor, contractor, pending_material_request):
    coordinator.approve_material_request(homeowner, pending_material_request.id)
    coordinator.approve_material_request(supervisor, pending_material_request.id)
    cement = pending_material_request.materials[0]

    coordinator.record_material_payment(homeowner, cement.id, "1900000", notes="first lot")

    notice = recording_notifier.of_kind("material.payment_recorded")[0]
    assert notice.recipients == (contractor.actor_id,)
    assert Decimal(notice.payload["remaining_amount"]) == Decimal("7600000")
    [payment] = coordinator.list_material_payments(cement.id)
    assert payment.paid_quantity == Decimal("20")
    assert coordinator.list_project_material_payments(cement.project_id) == [payment]
    assert coordinator.get_material(cement.id).paid_amount == Decimal("1900000")
