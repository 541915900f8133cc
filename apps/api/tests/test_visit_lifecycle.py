"""
Tests for the visit lifecycle state machine.

States: registered -> waiting -> in_examination -> ready_for_billing -> completed,
cancelled from any non-terminal state (reason required), pending for quick
emergency registration. Completion is gated on settlement.
"""
import uuid
from decimal import Decimal

import pytest

from apps.core.errors import InvalidTransition, InvalidVisitType, NotFound, PreconditionFailed
from apps.billing import services as billing_services
from apps.visits import services
from apps.visits.models import Visit, VisitStatusChoices, VisitTypeChoices


@pytest.mark.django_db
class TestRegistration:

    def test_register_outpatient(self, patient, nurse_user):
        visit = services.register_visit(patient, VisitTypeChoices.OUTPATIENT, actor=nurse_user)
        assert visit.status == VisitStatusChoices.REGISTERED
        assert visit.visit_number.startswith('VST/')

    def test_quick_emergency_starts_pending(self, patient):
        visit = services.register_visit(patient, VisitTypeChoices.EMERGENCY, quick=True)
        assert visit.status == VisitStatusChoices.PENDING

    def test_quick_flag_ignored_for_outpatient(self, patient):
        visit = services.register_visit(patient, VisitTypeChoices.OUTPATIENT, quick=True)
        assert visit.status == VisitStatusChoices.REGISTERED

    def test_visit_numbers_are_sequential(self, patient):
        first = services.register_visit(patient, VisitTypeChoices.OUTPATIENT)
        second = services.register_visit(patient, VisitTypeChoices.OUTPATIENT)
        assert first.visit_number.endswith('000001')
        assert second.visit_number.endswith('000002')


@pytest.mark.django_db
class TestTransitions:

    def test_forward_path_to_examination(self, patient, nurse_user):
        visit = services.register_visit(patient, VisitTypeChoices.OUTPATIENT)

        services.transition_visit(visit.id, VisitStatusChoices.WAITING, actor=nurse_user)
        visit = services.transition_visit(visit.id, VisitStatusChoices.IN_EXAMINATION, actor=nurse_user)

        assert visit.status == VisitStatusChoices.IN_EXAMINATION
        assert Visit.objects.get(id=visit.id).status == VisitStatusChoices.IN_EXAMINATION

    def test_registered_to_completed_is_illegal(self, patient, nurse_user):
        visit = services.register_visit(patient, VisitTypeChoices.OUTPATIENT)

        with pytest.raises(InvalidTransition):
            services.transition_visit(visit.id, VisitStatusChoices.COMPLETED, actor=nurse_user)

        visit.refresh_from_db()
        assert visit.status == VisitStatusChoices.REGISTERED

    def test_model_rejects_skipping_states(self, patient):
        visit = services.register_visit(patient, VisitTypeChoices.OUTPATIENT)
        with pytest.raises(InvalidTransition) as exc:
            visit.transition_to(VisitStatusChoices.IN_EXAMINATION)
        assert exc.value.details['from_status'] == VisitStatusChoices.REGISTERED

    def test_cancel_requires_reason(self, patient, nurse_user):
        visit = services.register_visit(patient, VisitTypeChoices.OUTPATIENT)

        with pytest.raises(InvalidTransition):
            services.transition_visit(visit.id, VisitStatusChoices.CANCELLED, actor=nurse_user)

        visit = services.transition_visit(
            visit.id, VisitStatusChoices.CANCELLED, actor=nurse_user, reason='Patient left'
        )
        assert visit.status == VisitStatusChoices.CANCELLED
        assert visit.cancellation_reason == 'Patient left'
        assert visit.end_at is not None

    def test_terminal_states_have_no_exit(self, patient, nurse_user):
        visit = services.register_visit(patient, VisitTypeChoices.OUTPATIENT)
        services.transition_visit(visit.id, VisitStatusChoices.CANCELLED, actor=nurse_user, reason='Duplicate')

        with pytest.raises(InvalidTransition):
            services.transition_visit(visit.id, VisitStatusChoices.WAITING, actor=nurse_user)

    def test_ready_for_billing_only_via_record_lock(self, outpatient_visit, doctor_user):
        with pytest.raises(InvalidTransition):
            services.transition_visit(outpatient_visit.id, VisitStatusChoices.READY_FOR_BILLING, actor=doctor_user)

    def test_reopen_only_via_record_unlock(self, ready_outpatient_visit, doctor_user):
        with pytest.raises(InvalidTransition):
            services.transition_visit(
                ready_outpatient_visit.id, VisitStatusChoices.IN_EXAMINATION, actor=doctor_user
            )

    def test_examination_back_to_waiting(self, outpatient_visit, nurse_user):
        visit = services.transition_visit(outpatient_visit.id, VisitStatusChoices.WAITING, actor=nurse_user)
        assert visit.status == VisitStatusChoices.WAITING

    def test_unknown_visit(self, nurse_user):
        with pytest.raises(NotFound):
            services.transition_visit(uuid.uuid4(), VisitStatusChoices.WAITING, actor=nurse_user)


@pytest.mark.django_db
class TestCompletion:

    def test_complete_settled_outpatient(self, outpatient_billing, cashier_user, pay_in_full):
        pay_in_full(outpatient_billing)

        visit = services.complete_visit(outpatient_billing.visit_id, actor=cashier_user)

        assert visit.status == VisitStatusChoices.COMPLETED
        assert visit.end_at is not None

    def test_complete_via_transition(self, outpatient_billing, cashier_user, pay_in_full):
        pay_in_full(outpatient_billing)
        visit = services.transition_visit(
            outpatient_billing.visit_id, VisitStatusChoices.COMPLETED, actor=cashier_user
        )
        assert visit.status == VisitStatusChoices.COMPLETED

    def test_unsettled_balance_blocks_completion(self, outpatient_billing, cashier_user):
        with pytest.raises(PreconditionFailed) as exc:
            services.complete_visit(outpatient_billing.visit_id, actor=cashier_user)

        assert exc.value.details['reason'] == 'unsettled balance'
        assert Visit.objects.get(id=outpatient_billing.visit_id).status == VisitStatusChoices.READY_FOR_BILLING

    def test_missing_billing_blocks_completion(self, ready_outpatient_visit, cashier_user):
        with pytest.raises(PreconditionFailed) as exc:
            services.complete_visit(ready_outpatient_visit.id, actor=cashier_user)
        assert exc.value.details['reason'] == 'billing not created'

    def test_inpatient_completes_through_discharge(self, inpatient_visit, cashier_user):
        with pytest.raises(InvalidVisitType):
            services.complete_visit(inpatient_visit.id, actor=cashier_user)

    def test_allowed_transitions_hide_completion_until_settled(
        self, outpatient_billing, pay_in_full
    ):
        visit = Visit.objects.get(id=outpatient_billing.visit_id)
        assert VisitStatusChoices.COMPLETED not in services.get_allowed_transitions(visit)

        pay_in_full(outpatient_billing)
        assert VisitStatusChoices.COMPLETED in services.get_allowed_transitions(visit)

    def test_completed_visit_cannot_be_cancelled(self, outpatient_billing, cashier_user, pay_in_full):
        pay_in_full(outpatient_billing)
        services.complete_visit(outpatient_billing.visit_id, actor=cashier_user)

        with pytest.raises(InvalidTransition):
            services.transition_visit(
                outpatient_billing.visit_id, VisitStatusChoices.CANCELLED, actor=cashier_user, reason='Oops'
            )


@pytest.mark.django_db
class TestCancellationWithBilling:
    """A visit may not go terminal while its billing still has money owed."""

    def test_partly_paid_visit_cannot_be_cancelled(self, outpatient_billing, cashier_user):
        billing_services.process_payment(
            outpatient_billing.id, {'amount': '50000', 'payment_method': 'transfer'}, actor=cashier_user
        )

        with pytest.raises(PreconditionFailed) as exc:
            services.transition_visit(
                outpatient_billing.visit_id, VisitStatusChoices.CANCELLED, actor=cashier_user, reason='Left'
            )

        assert exc.value.details['reason'] == 'unsettled balance'
        assert exc.value.details['remaining_amount'] == Decimal('100000.00')
        visit = Visit.objects.get(id=outpatient_billing.visit_id)
        assert visit.status == VisitStatusChoices.READY_FOR_BILLING
        assert visit.end_at is None

    def test_unpaid_billing_blocks_cancellation(self, outpatient_billing, cashier_user):
        with pytest.raises(PreconditionFailed):
            services.transition_visit(
                outpatient_billing.visit_id, VisitStatusChoices.CANCELLED, actor=cashier_user, reason='Left'
            )

    def test_settled_billing_allows_cancellation(self, outpatient_billing, cashier_user, pay_in_full):
        pay_in_full(outpatient_billing)

        visit = services.transition_visit(
            outpatient_billing.visit_id, VisitStatusChoices.CANCELLED, actor=cashier_user, reason='Left'
        )

        assert visit.status == VisitStatusChoices.CANCELLED

    def test_visit_without_billing_cancels(self, outpatient_visit, nurse_user):
        visit = services.transition_visit(
            outpatient_visit.id, VisitStatusChoices.CANCELLED, actor=nurse_user, reason='Left'
        )
        assert visit.status == VisitStatusChoices.CANCELLED
