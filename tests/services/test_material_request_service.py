"""
Tests for MaterialRequestService -- the dual-approval engine.

Covers:
- Import validation and wholesale replacement
- Order-independent homeowner + supervisor approval
- Rejection (reason required, wins over a prior approval)
- Immutability of Approved requests
- Actual quantities, variance and quantity history
- Withdrawal of requests that are not Approved
- Per-material payment ledger
"""

from dataclasses import replace
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from procurement_kernel.domain.capabilities import Role
from procurement_kernel.domain.dtos import (
    ApprovalDecision,
    ApproverRole,
    MaterialRequestStatus,
    MaterialRow,
)
from procurement_kernel.domain.variance import VarianceDirection
from procurement_kernel.exceptions import (
    ForbiddenError,
    InvalidAmountError,
    InvalidMaterialRowError,
    InvalidQuantityError,
    InvalidTransitionError,
    MaterialNotFoundError,
    MaterialRequestImmutableError,
    MaterialRequestNotApprovedError,
    MaterialRequestNotFoundError,
    MissingRejectionReasonError,
    ProjectNotFoundError,
)
from tests.factories import SAMPLE_ROWS

_S = MaterialRequestStatus


@pytest.fixture
def approved_request(svc, homeowner, supervisor, pending_material_request, deterministic_clock):
    svc.materials.approve(homeowner, pending_material_request.id)
    deterministic_clock.advance(60)
    return svc.materials.approve(supervisor, pending_material_request.id)


class TestImport:
    def test_create_is_empty_and_pending(self, svc, contractor, supervised_project):
        request = svc.materials.create(contractor, supervised_project.id)
        assert request.status == _S.PENDING
        assert request.material_count == 0
        assert request.contractor_id == contractor.actor_id

    def test_create_requires_known_project(self, svc, contractor):
        with pytest.raises(ProjectNotFoundError):
            svc.materials.create(contractor, uuid4())

    def test_homeowner_cannot_create(self, svc, homeowner, supervised_project):
        with pytest.raises(ForbiddenError):
            svc.materials.create(homeowner, supervised_project.id)

    def test_import_computes_contract_amounts(self, pending_material_request):
        materials = pending_material_request.materials
        assert [(m.line_number, m.code) for m in materials] == [(1, "XM-01"), (2, "TH-02")]
        assert materials[0].contract_amount == Decimal("9500000")
        assert materials[1].contract_amount == Decimal("9000000")
        assert all(m.actual_quantity is None for m in materials)
        assert materials[0].variance_direction == VarianceDirection.UNDEFINED

    def test_reimport_replaces_list(self, svc, contractor, pending_material_request):
        updated = svc.materials.import_materials(
            contractor, pending_material_request.id, SAMPLE_ROWS[1:],
        )
        assert [(m.line_number, m.code) for m in updated.materials] == [(1, "TH-02")]

    @pytest.mark.parametrize("row", [
        replace(SAMPLE_ROWS[0], code=" "),
        replace(SAMPLE_ROWS[0], unit=""),
        replace(SAMPLE_ROWS[0], unit_price=Decimal("-1")),
        replace(SAMPLE_ROWS[0], contract_quantity=Decimal("-5")),
        replace(SAMPLE_ROWS[0], contract_quantity=1.5),
    ])
    def test_invalid_row(self, svc, contractor, pending_material_request, row):
        with pytest.raises(InvalidMaterialRowError) as exc_info:
            svc.materials.import_materials(
                contractor, pending_material_request.id, [SAMPLE_ROWS[1], row],
            )
        assert exc_info.value.row_index == 1
        assert svc.materials.get(pending_material_request.id).material_count == 2

    def test_other_contractor_cannot_import(self, svc, make_actor, pending_material_request):
        with pytest.raises(ForbiddenError):
            svc.materials.import_materials(
                make_actor(Role.CONTRACTOR), pending_material_request.id, SAMPLE_ROWS,
            )

    def test_clear_keeps_request(self, svc, contractor, pending_material_request):
        cleared = svc.materials.clear_materials(contractor, pending_material_request.id)
        assert cleared.status == _S.PENDING
        assert cleared.material_count == 0


class TestApproval:
    def test_homeowner_first(self, svc, homeowner, supervisor, pending_material_request):
        partial = svc.materials.approve(homeowner, pending_material_request.id, notes="ok")
        assert partial.status == _S.PARTIALLY_APPROVED
        assert partial.homeowner_approved and not partial.supervisor_approved
        assert partial.homeowner_approved_by == homeowner.actor_id

        approved = svc.materials.approve(supervisor, pending_material_request.id)
        assert approved.status == _S.APPROVED
        assert approved.supervisor_approved_by == supervisor.actor_id

    def test_supervisor_first(self, svc, homeowner, supervisor, pending_material_request):
        assert svc.materials.approve(supervisor, pending_material_request.id).status == (
            _S.PARTIALLY_APPROVED
        )
        assert svc.materials.approve(homeowner, pending_material_request.id).status == _S.APPROVED

    def test_reapproval_is_noop(self, svc, homeowner, pending_material_request):
        first = svc.materials.approve(homeowner, pending_material_request.id)
        again = svc.materials.approve(homeowner, pending_material_request.id)
        assert again == first
        assert len(svc.materials.approval_history(pending_material_request.id)) == 1

    def test_reapproval_after_approved_is_noop(self, svc, homeowner, approved_request):
        again = svc.materials.approve(homeowner, approved_request.id)
        assert again.status == _S.APPROVED
        assert len(svc.materials.approval_history(approved_request.id)) == 2

    @settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(order=st.lists(st.sampled_from(["homeowner", "supervisor"]), min_size=1, max_size=6))
    def test_approval_order_independent(
        self, svc, homeowner, supervisor, contractor, supervised_project, order,
    ):
        actors = {"homeowner": homeowner, "supervisor": supervisor}
        request = svc.materials.create(contractor, supervised_project.id)
        svc.materials.import_materials(contractor, request.id, SAMPLE_ROWS)

        for name in order:
            result = svc.materials.approve(actors[name], request.id)

        roles = set(order)
        expected = _S.APPROVED if len(roles) == 2 else _S.PARTIALLY_APPROVED
        assert result.status == expected
        assert result.homeowner_approved == ("homeowner" in roles)
        assert result.supervisor_approved == ("supervisor" in roles)
        history = svc.materials.approval_history(request.id)
        assert sorted(r.approver_role.value for r in history) == sorted(roles)

    def test_unrelated_reviewers_forbidden(self, svc, make_actor, pending_material_request):
        with pytest.raises(ForbiddenError):
            svc.materials.approve(make_actor(Role.HOMEOWNER), pending_material_request.id)
        with pytest.raises(ForbiddenError):
            svc.materials.approve(make_actor(Role.SUPERVISOR), pending_material_request.id)

    def test_contractor_cannot_approve(self, svc, contractor, pending_material_request):
        with pytest.raises(ForbiddenError):
            svc.materials.approve(contractor, pending_material_request.id)

    def test_supervisor_needs_assignment(self, svc, supervisor, contractor, project):
        request = svc.materials.create(contractor, project.id)
        with pytest.raises(ForbiddenError):
            svc.materials.approve(supervisor, request.id)

    def test_history_records_decisions(self, svc, approved_request,
                                       pending_material_request):
        history = svc.materials.approval_history(pending_material_request.id)
        assert [(r.approver_role, r.decision) for r in history] == [
            (ApproverRole.HOMEOWNER, ApprovalDecision.APPROVE),
            (ApproverRole.SUPERVISOR, ApprovalDecision.APPROVE),
        ]


class TestRejection:
    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, svc, homeowner, pending_material_request, reason):
        with pytest.raises(MissingRejectionReasonError):
            svc.materials.reject(homeowner, pending_material_request.id, reason)

    def test_reject_after_partial_approval(self, svc, homeowner, supervisor,
                                           pending_material_request):
        svc.materials.approve(homeowner, pending_material_request.id)
        rejected = svc.materials.reject(
            supervisor, pending_material_request.id, " Rebar grade too low ",
        )
        assert rejected.status == _S.REJECTED
        assert rejected.rejection_reason == "Rebar grade too low"
        assert rejected.rejected_by_role == ApproverRole.SUPERVISOR
        assert rejected.homeowner_approved is True

    def test_rejected_cannot_be_approved(self, svc, homeowner, supervisor,
                                         pending_material_request):
        svc.materials.reject(homeowner, pending_material_request.id, "too expensive")
        with pytest.raises(InvalidTransitionError):
            svc.materials.approve(supervisor, pending_material_request.id)

    def test_clear_keeps_rejected_status(self, svc, homeowner, contractor,
                                         pending_material_request):
        svc.materials.reject(homeowner, pending_material_request.id, "too expensive")
        cleared = svc.materials.clear_materials(contractor, pending_material_request.id)
        assert cleared.status == _S.REJECTED
        assert cleared.material_count == 0

    def test_reimport_starts_new_round(self, svc, homeowner, supervisor, contractor,
                                       pending_material_request):
        svc.materials.approve(homeowner, pending_material_request.id)
        svc.materials.reject(supervisor, pending_material_request.id, "wrong rebar")

        fresh = svc.materials.import_materials(contractor, pending_material_request.id, SAMPLE_ROWS)
        assert fresh.status == _S.PENDING
        assert not fresh.homeowner_approved
        assert not fresh.supervisor_approved
        assert fresh.rejection_reason is None
        assert fresh.rejected_by_role is None

        svc.materials.approve(supervisor, pending_material_request.id)
        assert svc.materials.approve(homeowner, pending_material_request.id).status == _S.APPROVED
        assert len(svc.materials.approval_history(pending_material_request.id)) == 4


class TestApprovedIsImmutable:
    def test_reject(self, svc, homeowner, approved_request):
        with pytest.raises(MaterialRequestImmutableError) as exc_info:
            svc.materials.reject(homeowner, approved_request.id, "changed my mind")
        assert isinstance(exc_info.value, InvalidTransitionError)

    def test_import(self, svc, contractor, approved_request):
        with pytest.raises(MaterialRequestImmutableError):
            svc.materials.import_materials(contractor, approved_request.id, SAMPLE_ROWS)

    def test_clear(self, svc, contractor, approved_request):
        with pytest.raises(MaterialRequestImmutableError):
            svc.materials.clear_materials(contractor, approved_request.id)
        assert svc.materials.get(approved_request.id).material_count == 2

    def test_delete(self, svc, contractor, approved_request):
        with pytest.raises(MaterialRequestImmutableError):
            svc.materials.delete_request(contractor, approved_request.id)
        assert svc.materials.get(approved_request.id).status == _S.APPROVED


class TestDeletion:
    def test_delete_pending(self, svc, contractor, pending_material_request):
        cement = pending_material_request.materials[0]
        deleted = svc.materials.delete_request(contractor, pending_material_request.id)

        assert deleted.id == pending_material_request.id
        assert deleted.material_count == 2
        with pytest.raises(MaterialRequestNotFoundError):
            svc.materials.get(pending_material_request.id)
        with pytest.raises(MaterialNotFoundError):
            svc.materials.get_material(cement.id)

    def test_delete_rejected_with_history(self, svc, homeowner, supervisor, contractor,
                                          pending_material_request):
        svc.materials.approve(homeowner, pending_material_request.id)
        svc.materials.reject(supervisor, pending_material_request.id, "wrong grade")

        deleted = svc.materials.delete_request(contractor, pending_material_request.id)

        assert deleted.status == _S.REJECTED
        with pytest.raises(MaterialRequestNotFoundError):
            svc.materials.approval_history(pending_material_request.id)

    def test_only_own_contractor(self, svc, make_actor, homeowner, pending_material_request):
        with pytest.raises(ForbiddenError):
            svc.materials.delete_request(make_actor(Role.CONTRACTOR), pending_material_request.id)
        with pytest.raises(ForbiddenError):
            svc.materials.delete_request(homeowner, pending_material_request.id)


class TestActuals:
    def test_over_and_under(self, svc, contractor, supervisor, approved_request):
        cement, rebar = approved_request.materials

        over = svc.materials.record_actual_quantity(contractor, cement.id, "120")
        assert over.actual_quantity == Decimal("120")
        assert over.actual_amount == Decimal("11400000")
        assert over.variance == Decimal("20")
        assert over.variance_amount == Decimal("1900000")
        assert over.variance_direction == VarianceDirection.OVER

        under = svc.materials.record_actual_quantity(supervisor, rebar.id, 450, notes="site count")
        assert under.variance == Decimal("-10")
        assert under.variance_amount == Decimal("-900000")
        assert under.variance_direction == VarianceDirection.UNDER

    def test_history_keeps_every_change(self, svc, contractor, approved_request,
                                        deterministic_clock):
        cement = approved_request.materials[0]
        svc.materials.record_actual_quantity(contractor, cement.id, "90")
        deterministic_clock.advance(60)
        svc.materials.record_actual_quantity(contractor, cement.id, "100", notes="recount")

        history = svc.materials.quantity_history(cement.id)
        assert [(h.old_quantity, h.new_quantity) for h in history] == [
            (None, Decimal("90")),
            (Decimal("90"), Decimal("100")),
        ]
        assert history[1].notes == "recount"
        assert svc.materials.get_material(cement.id).variance_direction == (
            VarianceDirection.ON_TARGET
        )

    def test_zero_contract_quantity(self, svc, homeowner, supervisor, contractor,
                                    supervised_project):
        request = svc.materials.create(contractor, supervised_project.id)
        svc.materials.import_materials(
            contractor, request.id,
            [MaterialRow("PH-01", "Extra fittings", "set", Decimal("5000"), Decimal("0"))],
        )
        svc.materials.approve(homeowner, request.id)
        approved = svc.materials.approve(supervisor, request.id)

        material = svc.materials.record_actual_quantity(contractor, approved.materials[0].id, 4)
        assert material.variance is None
        assert material.variance_amount == Decimal("20000")
        assert material.variance_direction == VarianceDirection.UNDEFINED

    def test_requires_approved_request(self, svc, contractor, pending_material_request):
        with pytest.raises(MaterialRequestNotApprovedError):
            svc.materials.record_actual_quantity(
                contractor, pending_material_request.materials[0].id, "10",
            )

    @pytest.mark.parametrize("quantity", ["-1", "many", 2.5])
    def test_invalid_quantity(self, svc, contractor, approved_request, quantity):
        with pytest.raises(InvalidQuantityError):
            svc.materials.record_actual_quantity(
                contractor, approved_request.materials[0].id, quantity,
            )

    def test_homeowner_cannot_record(self, svc, homeowner, approved_request):
        with pytest.raises(ForbiddenError):
            svc.materials.record_actual_quantity(
                homeowner, approved_request.materials[0].id, "10",
            )

    def test_unknown_material(self, svc, contractor):
        with pytest.raises(MaterialNotFoundError):
            svc.materials.record_actual_quantity(contractor, uuid4(), "10")
        with pytest.raises(MaterialNotFoundError):
            svc.materials.quantity_history(uuid4())


def test_authoritative_materials_only_from_approved(
    svc, contractor, supervised_project, approved_request,
):
    pending = svc.materials.create(contractor, supervised_project.id)
    svc.materials.import_materials(contractor, pending.id, SAMPLE_ROWS[:1])

    authoritative = svc.materials.authoritative_materials(supervised_project.id)
    assert {m.material_request_id for m in authoritative} == {approved_request.id}
    assert [m.code for m in authoritative] == ["XM-01", "TH-02"]
    assert len(svc.materials.list_by_project(supervised_project.id)) == 2


class TestPayments:
    def test_running_totals(self, svc, homeowner, approved_request, deterministic_clock):
        cement = approved_request.materials[0]
        first = svc.materials.record_payment(homeowner, cement.id, "4750000", notes="deposit")
        deterministic_clock.advance(60)
        second = svc.materials.record_payment(homeowner, cement.id, 4750000)

        assert (first.paid_quantity, first.paid_amount) == (Decimal("50"), Decimal("4750000"))
        assert (first.remaining_quantity, first.remaining_amount) == (
            Decimal("50"), Decimal("4750000"),
        )
        assert second.remaining_amount == Decimal("0")
        assert second.remaining_quantity == Decimal("0")

        material = svc.materials.get_material(cement.id)
        assert material.paid_amount == Decimal("9500000")
        assert material.remaining_amount == Decimal("0")
        assert [p.id for p in svc.materials.list_payments(cement.id)] == [first.id, second.id]

    def test_overpayment_rejected(self, svc, homeowner, approved_request):
        cement = approved_request.materials[0]
        with pytest.raises(InvalidAmountError):
            svc.materials.record_payment(homeowner, cement.id, "9500001")
        assert svc.materials.list_payments(cement.id) == []

    def test_payable_follows_actual_quantity(self, svc, homeowner, contractor, approved_request):
        cement = approved_request.materials[0]
        svc.materials.record_actual_quantity(contractor, cement.id, "120")

        payment = svc.materials.record_payment(homeowner, cement.id, "10000000")

        assert payment.remaining_amount == Decimal("1400000")
        assert payment.paid_quantity == Decimal("105.2632")
        assert payment.remaining_quantity == Decimal("14.7368")

    def test_requires_approved_request(self, svc, homeowner, pending_material_request):
        with pytest.raises(MaterialRequestNotApprovedError):
            svc.materials.record_payment(
                homeowner, pending_material_request.materials[0].id, "1000",
            )

    @pytest.mark.parametrize("amount", ["0", "-1", "lots", 2.5])
    def test_invalid_amount(self, svc, homeowner, approved_request, amount):
        with pytest.raises(InvalidAmountError):
            svc.materials.record_payment(homeowner, approved_request.materials[0].id, amount)

    def test_only_project_homeowner_pays(self, svc, contractor, supervisor, approved_request):
        material_id = approved_request.materials[0].id
        with pytest.raises(ForbiddenError):
            svc.materials.record_payment(contractor, material_id, "1000")
        with pytest.raises(ForbiddenError):
            svc.materials.record_payment(supervisor, material_id, "1000")

    def test_project_ledger(self, svc, homeowner, supervised_project, approved_request):
        cement, rebar = approved_request.materials
        svc.materials.record_payment(homeowner, cement.id, "1000000")
        svc.materials.record_payment(homeowner, rebar.id, "2000000")

        ledger = svc.materials.list_project_payments(supervised_project.id)
        assert sorted(p.amount for p in ledger) == [Decimal("1000000"), Decimal("2000000")]

    def test_unknown_material(self, svc, homeowner):
        with pytest.raises(MaterialNotFoundError):
            svc.materials.record_payment(homeowner, uuid4(), "1000")
        with pytest.raises(MaterialNotFoundError):
            svc.materials.list_payments(uuid4())
