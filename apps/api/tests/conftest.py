"""
Global test fixtures for pytest.

Provides reusable fixtures for billing and visit lifecycle tests:
- Users and authenticated API clients by role
- Master data (fee services, drugs, rooms)
- Visit / medical record / billing builders
"""
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.test import APIClient

from apps.authz.models import Role, RoleChoices, User, UserRole
from apps.billing import services as billing_services
from apps.billing.models import Service, ServiceTypeChoices
from apps.clinical import services as clinical_services
from apps.clinical.models import BedAssignment, Diagnosis, Drug, MedicalRecord, Prescription, Room
from apps.core.numbering import next_daily_number
from apps.visits.models import Patient, Visit, VisitStatusChoices, VisitTypeChoices


def create_user_with_role(email, role, **extra_fields):
    user = User.objects.create_user(
        email=email,
        password='testpass123',
        is_active=True,
        **extra_fields
    )
    role_obj, _ = Role.objects.get_or_create(name=role)
    UserRole.objects.create(user=user, role=role_obj)
    return user


def client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def admin_user(db):
    return create_user_with_role('admin@test.com', RoleChoices.ADMIN, is_staff=True, is_superuser=True)


@pytest.fixture
def doctor_user(db):
    return create_user_with_role('doctor@test.com', RoleChoices.DOCTOR, first_name='Dana', last_name='Doctor')


@pytest.fixture
def other_doctor_user(db):
    return create_user_with_role('doctor2@test.com', RoleChoices.DOCTOR)


@pytest.fixture
def nurse_user(db):
    return create_user_with_role('nurse@test.com', RoleChoices.NURSE)


@pytest.fixture
def cashier_user(db):
    return create_user_with_role('cashier@test.com', RoleChoices.CASHIER)


@pytest.fixture
def pharmacist_user(db):
    return create_user_with_role('pharmacist@test.com', RoleChoices.PHARMACIST)


# ============================================================================
# API Clients
# ============================================================================

@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)


@pytest.fixture
def doctor_client(doctor_user):
    return client_for(doctor_user)


@pytest.fixture
def nurse_client(nurse_user):
    return client_for(nurse_user)


@pytest.fixture
def cashier_client(cashier_user):
    return client_for(cashier_user)


@pytest.fixture
def pharmacist_client(pharmacist_user):
    return client_for(pharmacist_user)


# ============================================================================
# Master data
# ============================================================================

@pytest.fixture
def fee_services(db):
    """Consultation 100,000 + administration 50,000 = 150,000 per visit."""
    return {
        'consultation': Service.objects.create(
            code='CONS-GP',
            name='General consultation',
            service_type=ServiceTypeChoices.CONSULTATION,
            price=Decimal('100000.00'),
        ),
        'administration': Service.objects.create(
            code='ADM-01',
            name='Administration fee',
            service_type=ServiceTypeChoices.ADMINISTRATION,
            price=Decimal('50000.00'),
        ),
    }


@pytest.fixture
def procedure_service(db):
    return Service.objects.create(
        code='PRC-SUTURE',
        name='Wound suturing',
        service_type=ServiceTypeChoices.PROCEDURE,
        price=Decimal('200000.00'),
    )


@pytest.fixture
def drug(db):
    return Drug.objects.create(code='AMX500', name='Amoxicillin 500mg', price=Decimal('5000.00'))


@pytest.fixture
def room(db):
    return Room.objects.create(room_number='301', daily_rate=Decimal('300000.00'))


@pytest.fixture
def patient(db):
    return Patient.objects.create(mr_number='MR-000001', full_name='Test Patient')


# ============================================================================
# Builders
# ============================================================================

@pytest.fixture
def make_visit(patient, doctor_user):
    """
    Build a visit already in ``status`` with an open medical record.

    Status is written directly; lifecycle tests drive transitions themselves.
    """
    def _make(visit_type=VisitTypeChoices.OUTPATIENT, status=VisitStatusChoices.IN_EXAMINATION,
              with_record=True, with_diagnosis=True, doctor=None):
        visit = Visit(
            visit_number=next_daily_number(Visit, 'visit_number', 'VST'),
            patient=patient,
            visit_type=visit_type,
            status=status,
            doctor=doctor or doctor_user,
        )
        visit.save()
        if with_record:
            record = MedicalRecord.objects.create(visit=visit, doctor=doctor or doctor_user)
            if with_diagnosis:
                Diagnosis(
                    medical_record=record,
                    icd10_code='J06.9',
                    diagnosis_name='Acute upper respiratory infection',
                ).save()
        return visit
    return _make


@pytest.fixture
def outpatient_visit(make_visit, fee_services):
    """Outpatient in examination, record open with one diagnosis."""
    return make_visit()


@pytest.fixture
def ready_outpatient_visit(outpatient_visit, doctor_user):
    """Outpatient whose record is locked (visit ready_for_billing)."""
    clinical_services.lock_medical_record(outpatient_visit.medical_record.id, actor=doctor_user)
    outpatient_visit.refresh_from_db()
    return outpatient_visit


@pytest.fixture
def outpatient_billing(ready_outpatient_visit, cashier_user):
    """Checkout billing of 150,000 (consultation + administration), unpaid."""
    return billing_services.create_billing(ready_outpatient_visit.id, actor=cashier_user)


@pytest.fixture
def inpatient_visit(make_visit, fee_services, room, drug):
    """
    Inpatient in examination with a 30-hour open bed stay and one fulfilled
    prescription (10 x 5,000).
    """
    visit = make_visit(visit_type=VisitTypeChoices.INPATIENT)
    BedAssignment.objects.create(
        visit=visit,
        room=room,
        bed_number='A',
        assigned_at=timezone.now() - timedelta(hours=30),
    )
    prescription = Prescription(
        medical_record=visit.medical_record,
        drug=drug,
        quantity=10,
        dosage='500mg',
        frequency='3x daily',
    )
    prescription.save()
    clinical_services.fulfill_prescription(prescription.id)
    return visit


@pytest.fixture
def pay_in_full(cashier_user):
    """Settle whatever remains on a billing by transfer."""
    def _pay(billing):
        billing.refresh_from_db()
        return billing_services.process_payment(
            billing.id,
            {'amount': billing.remaining_amount, 'payment_method': 'transfer'},
            actor=cashier_user,
        )
    return _pay
