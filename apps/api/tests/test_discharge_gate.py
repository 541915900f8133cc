"""
Tests for the discharge gate and inpatient discharge.

Gate reasons, in order: billing not created, unsettled balance,
medical record not locked, visit not ready for discharge.
"""
import uuid

import pytest

from apps.billing import discharge
from apps.billing import services as billing_services
from apps.billing.models import DischargeSummary
from apps.clinical import services as clinical_services
from apps.clinical.models import BedAssignment
from apps.core.errors import AlreadyExists, InvalidVisitType, NotFound, PreconditionFailed
from apps.visits.models import Visit, VisitStatusChoices

SUMMARY = {
    'admission_diagnosis': 'Community acquired pneumonia',
    'discharge_diagnosis': 'Pneumonia, resolved',
    'clinical_summary': 'IV antibiotics for two days, afebrile for 24h.',
    'discharge_instructions': 'Finish oral antibiotics. Return if fever recurs.',
}


@pytest.mark.django_db
class TestCanDischarge:

    def test_unknown_visit(self):
        with pytest.raises(NotFound):
            discharge.can_discharge(uuid.uuid4())

    def test_billing_not_created(self, ready_outpatient_visit):
        decision = discharge.can_discharge(ready_outpatient_visit.id)
        assert decision == {
            'allowed': False,
            'reason': 'billing not created',
            'billing_id': None,
            'remaining_amount': None,
        }

    def test_unsettled_balance(self, outpatient_billing, cashier_user):
        """Remaining 5,000 on a locked record is an unsettled balance."""
        billing_services.process_payment(
            outpatient_billing.id, {'amount': '145000', 'payment_method': 'transfer'}, actor=cashier_user
        )

        decision = discharge.can_discharge(outpatient_billing.visit_id)

        assert decision['allowed'] is False
        assert decision['reason'] == 'unsettled balance'
        assert str(decision['remaining_amount']) == '5000.00'
        assert outpatient_billing.visit.medical_record.is_locked

    def test_record_not_locked(self, outpatient_billing, admin_user, pay_in_full):
        pay_in_full(outpatient_billing)
        clinical_services.unlock_medical_record(outpatient_billing.visit.medical_record.id, actor=admin_user)

        decision = discharge.can_discharge(outpatient_billing.visit_id)
        assert decision['reason'] == 'medical record not locked'

    def test_visit_not_ready(self, outpatient_billing, pay_in_full):
        pay_in_full(outpatient_billing)
        Visit.objects.filter(id=outpatient_billing.visit_id).update(status=VisitStatusChoices.WAITING)

        decision = discharge.can_discharge(outpatient_billing.visit_id)
        assert decision['reason'] == 'visit not ready for discharge'

    def test_allowed_when_settled_and_locked(self, outpatient_billing, pay_in_full):
        pay_in_full(outpatient_billing)

        decision = discharge.can_discharge(outpatient_billing.visit_id)

        assert decision['allowed'] is True
        assert decision['reason'] is None
        assert decision['billing_id'] == outpatient_billing.id

    def test_insurance_settled_counts_as_settled(self, outpatient_billing, cashier_user):
        billing_services.process_payment(
            outpatient_billing.id,
            {'amount': '10000', 'payment_method': 'insurance', 'insurance_coverage': '140000'},
            actor=cashier_user,
        )
        assert discharge.can_discharge(outpatient_billing.visit_id)['allowed'] is True


@pytest.mark.django_db
class TestDischargeSummary:

    @pytest.fixture
    def billed_inpatient(self, inpatient_visit, doctor_user, cashier_user):
        billing = billing_services.create_discharge_billing(inpatient_visit.id, actor=cashier_user)
        clinical_services.lock_medical_record(inpatient_visit.medical_record.id, actor=doctor_user)
        return billing

    def test_discharge_completes_visit_and_releases_beds(self, billed_inpatient, doctor_user, pay_in_full):
        pay_in_full(billed_inpatient)

        summary = discharge.create_discharge_summary(billed_inpatient.visit_id, SUMMARY, actor=doctor_user)

        visit = Visit.objects.get(id=billed_inpatient.visit_id)
        assert visit.status == VisitStatusChoices.COMPLETED
        assert visit.end_at is not None
        assert summary.discharged_by == doctor_user
        assert not BedAssignment.objects.filter(visit=visit, released_at__isnull=True).exists()
        assert discharge.get_discharge_summary(visit.id).id == summary.id

    def test_unsettled_discharge_refused(self, billed_inpatient, doctor_user):
        with pytest.raises(PreconditionFailed) as exc:
            discharge.create_discharge_summary(billed_inpatient.visit_id, SUMMARY, actor=doctor_user)

        assert exc.value.details['reason'] == 'unsettled balance'
        assert not DischargeSummary.objects.exists()
        visit = Visit.objects.get(id=billed_inpatient.visit_id)
        assert visit.status == VisitStatusChoices.READY_FOR_BILLING
        assert BedAssignment.objects.filter(visit=visit, released_at__isnull=True).exists()

    def test_second_summary_rejected(self, billed_inpatient, doctor_user, pay_in_full):
        pay_in_full(billed_inpatient)
        discharge.create_discharge_summary(billed_inpatient.visit_id, SUMMARY, actor=doctor_user)

        with pytest.raises(AlreadyExists):
            discharge.create_discharge_summary(billed_inpatient.visit_id, SUMMARY, actor=doctor_user)
        assert DischargeSummary.objects.count() == 1

    def test_outpatient_has_no_discharge_summary(self, outpatient_billing, doctor_user, pay_in_full):
        pay_in_full(outpatient_billing)
        with pytest.raises(InvalidVisitType):
            discharge.create_discharge_summary(outpatient_billing.visit_id, SUMMARY, actor=doctor_user)

    def test_missing_summary(self, inpatient_visit):
        with pytest.raises(NotFound):
            discharge.get_discharge_summary(inpatient_visit.id)
