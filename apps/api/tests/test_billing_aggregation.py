"""
Tests for charge aggregation and billing creation/refresh.

Business Rules:
- Consultation and administration fees are charged once per visit
- Only fulfilled prescriptions are billed, at the dispensed quantity
- Procedures are billed at their service price; unpriced ones are skipped
- Room stays: whole days, partial days round up, minimum one day
- Lab orders are billed once verified
- preview writes nothing; one billing per visit
"""
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.billing import services
from apps.billing.aggregation import aggregate
from apps.billing.models import Billing, BillingItem
from apps.clinical.models import (
    BedAssignment,
    Diagnosis,
    LabOrder,
    LabOrderStatusChoices,
    MaterialUsage,
    Prescription,
    Procedure,
)
from apps.clinical.services import fulfill_prescription
from apps.core.errors import AlreadyExists, InvalidVisitType, NotFound, PreconditionFailed
from apps.visits.models import Visit, VisitStatusChoices, VisitTypeChoices


def _prescribe(record, drug, quantity, fulfilled=False, dispensed=None):
    prescription = Prescription(medical_record=record, drug=drug, quantity=quantity)
    prescription.save()
    if fulfilled:
        fulfill_prescription(prescription.id, dispensed_quantity=dispensed)
    return prescription


@pytest.mark.django_db
class TestChargeSources:

    def test_fees_charged_once_per_visit(self, outpatient_visit):
        Diagnosis(
            medical_record=outpatient_visit.medical_record,
            icd10_code='R50.9',
            diagnosis_name='Fever',
        ).save()

        draft = aggregate(outpatient_visit.id)

        assert draft['variant'] == 'checkout'
        assert draft['counts']['consultation'] == 1
        assert draft['counts']['administration'] == 1
        assert draft['subtotal'] == Decimal('150000.00')

    def test_missing_fee_service_is_skipped(self, make_visit):
        draft = aggregate(make_visit().id)
        assert draft['item_count'] == 0
        assert draft['subtotal'] == Decimal('0.00')

    def test_only_fulfilled_prescriptions_at_dispensed_quantity(self, outpatient_visit, drug):
        record = outpatient_visit.medical_record
        _prescribe(record, drug, quantity=10, fulfilled=True, dispensed=8)
        _prescribe(record, drug, quantity=5, fulfilled=False)

        draft = aggregate(outpatient_visit.id)
        drugs = [item for item in draft['items'] if item['category'] == 'drugs']

        assert len(drugs) == 1
        assert drugs[0]['quantity'] == 8
        assert drugs[0]['total_price'] == Decimal('40000.00')
        assert draft['breakdown']['drugs'] == Decimal('40000.00')

    def test_procedure_priced_by_service_and_unpriced_skipped(self, outpatient_visit, procedure_service):
        record = outpatient_visit.medical_record
        Procedure(medical_record=record, service=procedure_service, procedure_name='Suturing').save()
        Procedure(medical_record=record, procedure_name='Counselling').save()

        draft = aggregate(outpatient_visit.id)
        procedures = [item for item in draft['items'] if item['category'] == 'procedures']

        assert len(procedures) == 1
        assert procedures[0]['total_price'] == Decimal('200000.00')

    def test_materials(self, outpatient_visit):
        MaterialUsage.objects.create(
            visit=outpatient_visit,
            material_name='Gauze',
            quantity=4,
            unit='pcs',
            unit_price=Decimal('2500.00'),
        )
        draft = aggregate(outpatient_visit.id)
        assert draft['breakdown']['materials'] == Decimal('10000.00')

    def test_room_days_round_up_with_one_day_minimum(self, make_visit, fee_services, room):
        visit = make_visit(visit_type=VisitTypeChoices.INPATIENT)
        as_of = timezone.now()
        BedAssignment.objects.create(
            visit=visit, room=room, bed_number='A', assigned_at=as_of - timedelta(hours=30)
        )
        BedAssignment.objects.create(
            visit=visit,
            room=room,
            bed_number='B',
            assigned_at=as_of - timedelta(hours=50),
            released_at=as_of - timedelta(hours=47),
        )

        draft = aggregate(visit.id, as_of=as_of)
        rooms = sorted(
            (item for item in draft['items'] if item['category'] == 'rooms'),
            key=lambda item: item['quantity'],
        )

        assert draft['variant'] == 'discharge'
        assert [item['quantity'] for item in rooms] == [1, 2]
        assert draft['breakdown']['rooms'] == Decimal('900000.00')

    def test_only_verified_lab_orders(self, outpatient_visit):
        LabOrder.objects.create(
            visit=outpatient_visit, order_number='LAB-1', test_name='CBC',
            price=Decimal('75000.00'), status=LabOrderStatusChoices.VERIFIED,
        )
        LabOrder.objects.create(
            visit=outpatient_visit, order_number='LAB-2', test_name='Lipid panel',
            price=Decimal('120000.00'), status=LabOrderStatusChoices.COMPLETED,
        )

        draft = aggregate(outpatient_visit.id)
        assert draft['counts']['laboratory'] == 1
        assert draft['breakdown']['laboratory'] == Decimal('75000.00')

    def test_subtotal_is_sum_of_items(self, outpatient_visit, drug):
        _prescribe(outpatient_visit.medical_record, drug, quantity=3, fulfilled=True)
        draft = aggregate(outpatient_visit.id)
        assert draft['subtotal'] == sum(item['total_price'] for item in draft['items'])


@pytest.mark.django_db
class TestAggregationPreconditions:

    def test_unknown_visit(self):
        with pytest.raises(NotFound):
            aggregate(uuid.uuid4())

    def test_cancelled_visit(self, make_visit):
        visit = make_visit()
        Visit.objects.filter(id=visit.id).update(
            status=VisitStatusChoices.CANCELLED, cancellation_reason='Left'
        )
        with pytest.raises(PreconditionFailed):
            aggregate(visit.id)

    def test_visit_without_medical_record(self, make_visit):
        visit = make_visit(with_record=False)
        with pytest.raises(PreconditionFailed):
            aggregate(visit.id)

    def test_discharge_variant_requires_inpatient(self, outpatient_visit):
        with pytest.raises(InvalidVisitType):
            aggregate(outpatient_visit.id, variant='discharge')

    def test_checkout_variant_rejected_for_inpatient(self, make_visit, fee_services):
        visit = make_visit(visit_type=VisitTypeChoices.INPATIENT)
        with pytest.raises(InvalidVisitType):
            aggregate(visit.id, variant='checkout')

    def test_unknown_variant(self, outpatient_visit):
        with pytest.raises(InvalidVisitType):
            aggregate(outpatient_visit.id, variant='express')


@pytest.mark.django_db
class TestCreateBilling:

    def test_preview_writes_nothing(self, outpatient_visit):
        services.preview_billing(outpatient_visit.id)
        assert Billing.objects.count() == 0
        assert BillingItem.objects.count() == 0

    def test_create_persists_items_and_totals(self, ready_outpatient_visit, cashier_user):
        billing = services.create_billing(ready_outpatient_visit.id, actor=cashier_user)

        assert billing.items.count() == 2
        assert billing.subtotal == Decimal('150000.00')
        assert billing.total_amount == Decimal('150000.00')
        assert billing.remaining_amount == Decimal('150000.00')
        assert billing.payment_status == 'unpaid'
        assert billing.version == 1
        assert billing.created_by == cashier_user

    def test_second_billing_rejected(self, outpatient_billing, cashier_user):
        with pytest.raises(AlreadyExists):
            services.create_billing(outpatient_billing.visit_id, actor=cashier_user)
        assert Billing.objects.count() == 1

    def test_discharge_billing_for_inpatient(self, inpatient_visit, cashier_user):
        billing = services.create_discharge_billing(inpatient_visit.id, actor=cashier_user)
        item_types = set(billing.items.values_list('item_type', flat=True))

        assert {'service', 'drug', 'room'} <= item_types
        # 150,000 fees + 10 x 5,000 drugs + 2 days x 300,000
        assert billing.subtotal == Decimal('800000.00')

    def test_created_billing_matches_preview(self, ready_outpatient_visit, cashier_user):
        draft = services.preview_billing(ready_outpatient_visit.id)
        billing = services.create_billing(ready_outpatient_visit.id, actor=cashier_user)

        assert sorted(billing.items.values_list('source_key', 'total_price')) == sorted(
            (item['source_key'], item['total_price']) for item in draft['items']
        )
        assert billing.subtotal == draft['subtotal']

    def test_discharge_billing_matches_preview_at_same_cutoff(self, inpatient_visit, cashier_user):
        as_of = timezone.now() + timedelta(days=1)
        draft = services.preview_billing(inpatient_visit.id, variant='discharge', as_of=as_of)
        billing = services.create_discharge_billing(inpatient_visit.id, actor=cashier_user, as_of=as_of)

        assert sorted(billing.items.values_list('source_key', 'total_price')) == sorted(
            (item['source_key'], item['total_price']) for item in draft['items']
        )
        # 54 hours in bed bill as 3 days
        assert draft['subtotal'] == Decimal('1100000.00')
        assert billing.subtotal == draft['subtotal']

    def test_discharge_billing_rejected_for_outpatient(self, ready_outpatient_visit, cashier_user):
        with pytest.raises(InvalidVisitType):
            services.create_discharge_billing(ready_outpatient_visit.id, actor=cashier_user)
        assert Billing.objects.count() == 0


@pytest.mark.django_db
class TestRefreshBilling:

    def test_refresh_without_payments_replaces_items(self, inpatient_visit, cashier_user, drug):
        billing = services.create_discharge_billing(inpatient_visit.id, actor=cashier_user)
        _prescribe(inpatient_visit.medical_record, drug, quantity=2, fulfilled=True)

        billing = services.refresh_billing(billing.id, actor=cashier_user)

        assert billing.subtotal == Decimal('810000.00')
        assert billing.items.filter(item_type='drug').count() == 2
        assert billing.version == 2

    def test_refresh_after_payment_only_appends(self, inpatient_visit, cashier_user, drug):
        billing = services.create_discharge_billing(inpatient_visit.id, actor=cashier_user)
        services.process_payment(
            billing.id, {'amount': '100000', 'payment_method': 'transfer'}, actor=cashier_user
        )
        original_ids = set(billing.items.values_list('id', flat=True))
        _prescribe(inpatient_visit.medical_record, drug, quantity=2, fulfilled=True)

        billing = services.refresh_billing(billing.id, actor=cashier_user)

        assert original_ids < set(billing.items.values_list('id', flat=True))
        assert billing.items.count() == len(original_ids) + 1
        assert billing.paid_amount == Decimal('100000.00')
        assert billing.remaining_amount == billing.subtotal - Decimal('100000.00')

    def test_refresh_reapplies_stored_percentage(self, inpatient_visit, cashier_user, drug):
        billing = services.create_discharge_billing(inpatient_visit.id, actor=cashier_user)
        services.process_payment(
            billing.id,
            {'amount': '10000', 'payment_method': 'transfer', 'discount_percentage': '10'},
            actor=cashier_user,
        )
        _prescribe(inpatient_visit.medical_record, drug, quantity=2, fulfilled=True)

        billing = services.refresh_billing(billing.id, actor=cashier_user)

        assert billing.subtotal == Decimal('810000.00')
        assert billing.discount == Decimal('81000.00')

    def test_refresh_closed_visit_rejected(self, outpatient_billing, cashier_user, pay_in_full):
        from apps.visits.services import complete_visit

        pay_in_full(outpatient_billing)
        complete_visit(outpatient_billing.visit_id, actor=cashier_user)

        with pytest.raises(PreconditionFailed):
            services.refresh_billing(outpatient_billing.id, actor=cashier_user)

    def test_refresh_unknown_billing(self, cashier_user):
        from apps.core.errors import BillingNotFound

        with pytest.raises(BillingNotFound):
            services.refresh_billing(uuid.uuid4(), actor=cashier_user)
