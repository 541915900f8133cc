"""
API tests for billing, visit and medical record endpoints.

Checks status codes, role permissions and the error payload shape
({'error', 'error_type', 'details'}).
"""
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework import status

from apps.billing import services as billing_services
from apps.billing.models import Billing, Payment
from apps.visits.models import Visit, VisitStatusChoices


def billing_url(billing_id, action=''):
    return f'/api/v1/billing/billings/{billing_id}/{action}'


def visit_billing_url(visit_id, action):
    return f'/api/v1/billing/visits/{visit_id}/{action}/'


@pytest.mark.django_db
class TestBillingEndpoints:

    def test_requires_authentication(self, api_client, outpatient_billing):
        response = api_client.get(billing_url(outpatient_billing.id))
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_preview_is_read_only(self, cashier_client, ready_outpatient_visit):
        response = cashier_client.get(visit_billing_url(ready_outpatient_visit.id, 'preview'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['subtotal'] == '150000.00'
        assert response.data['variant'] == 'checkout'
        assert len(response.data['items']) == 2
        assert not Billing.objects.exists()

    def test_create_then_duplicate(self, cashier_client, ready_outpatient_visit):
        url = visit_billing_url(ready_outpatient_visit.id, 'create')

        response = cashier_client.post(url, {}, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['total_amount'] == '150000.00'
        assert response.data['payment_status'] == 'unpaid'
        assert len(response.data['items']) == 2

        response = cashier_client.post(url, {}, format='json')
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error_type'] == 'already_exists'

    def test_create_for_missing_record_is_unprocessable(self, cashier_client, make_visit):
        visit = make_visit(with_record=False)
        response = cashier_client.post(visit_billing_url(visit.id, 'create'), {}, format='json')
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data['error_type'] == 'precondition_failed'

    def test_cash_payment(self, cashier_client, outpatient_billing):
        response = cashier_client.post(billing_url(outpatient_billing.id, 'payments/'), {
            'amount': '135000.00',
            'payment_method': 'cash',
            'amount_received': '150000.00',
            'discount_percentage': '10',
            'expected_version': 1,
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['change_given'] == '15000.00'
        assert response.data['billing']['payment_status'] == 'paid'
        assert response.data['billing']['remaining_amount'] == '0.00'
        assert response.data['billing']['version'] == 2
        assert response.data['payment']['receipt_number'].startswith('RCP/')

    def test_overpayment(self, cashier_client, outpatient_billing):
        response = cashier_client.post(billing_url(outpatient_billing.id, 'payments/'), {
            'amount': '999999.00',
            'payment_method': 'transfer',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error_type'] == 'over_payment'
        assert response.data['details']['remaining_amount'] == '150000.00'
        assert not Payment.objects.exists()

    def test_stale_version_conflict(self, cashier_client, outpatient_billing):
        payload = {'amount': '1000.00', 'payment_method': 'card', 'expected_version': 1}
        assert cashier_client.post(
            billing_url(outpatient_billing.id, 'payments/'), payload, format='json'
        ).status_code == status.HTTP_201_CREATED

        response = cashier_client.post(billing_url(outpatient_billing.id, 'payments/'), payload, format='json')
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error_type'] == 'concurrent_modification'

    def test_invalid_payment_body(self, cashier_client, outpatient_billing):
        response = cashier_client.post(billing_url(outpatient_billing.id, 'payments/'), {
            'amount': 'lots',
            'payment_method': 'cash',
        }, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_nurse_reads_but_cannot_pay(self, nurse_client, outpatient_billing):
        assert nurse_client.get(billing_url(outpatient_billing.id)).status_code == status.HTTP_200_OK

        response = nurse_client.post(billing_url(outpatient_billing.id, 'payments/'), {
            'amount': '1000.00', 'payment_method': 'card',
        }, format='json')
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_list_filtered_by_status(self, cashier_client, outpatient_billing):
        response = cashier_client.get('/api/v1/billing/billings/', {'payment_status': 'unpaid'})
        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1

        response = cashier_client.get('/api/v1/billing/billings/', {'payment_status': 'paid'})
        assert response.data['count'] == 0

    def test_refresh(self, cashier_client, outpatient_billing):
        response = cashier_client.post(billing_url(outpatient_billing.id, 'refresh/'), {}, format='json')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['version'] == 2

    def test_statistics(self, cashier_client, outpatient_billing):
        response = cashier_client.get('/api/v1/billing/billings/statistics/')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['total_billings'] == 1
        assert response.data['unpaid_billings'] == 1


@pytest.mark.django_db
class TestDischargeEndpoints:

    def test_eligibility(self, nurse_client, outpatient_billing):
        response = nurse_client.get(visit_billing_url(outpatient_billing.visit_id, 'discharge-eligibility'))
        assert response.status_code == status.HTTP_200_OK
        assert response.data['allowed'] is False
        assert response.data['reason'] == 'unsettled balance'

    def test_summary_refused_until_settled(self, doctor_client, outpatient_billing):
        response = doctor_client.post(
            visit_billing_url(outpatient_billing.visit_id, 'discharge-summary'),
            {
                'admission_diagnosis': 'A',
                'discharge_diagnosis': 'B',
                'clinical_summary': 'C',
                'discharge_instructions': 'D',
            },
            format='json',
        )
        # Outpatient visits are closed at checkout, not discharge
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error_type'] == 'invalid_visit_type'

    def test_summary_missing(self, doctor_client, inpatient_visit):
        response = doctor_client.get(visit_billing_url(inpatient_visit.id, 'discharge-summary'))
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestMedicalRecordEndpoints:

    def test_lock_twice(self, doctor_client, outpatient_visit):
        url = f'/api/v1/clinical/medical-records/{outpatient_visit.medical_record.id}/lock/'

        response = doctor_client.post(url)
        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_locked'] is True
        assert response.data['visit_status'] == VisitStatusChoices.READY_FOR_BILLING

        response = doctor_client.post(url)
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error_type'] == 'record_locked'

    def test_unlock_is_admin_only(self, doctor_client, admin_client, ready_outpatient_visit):
        url = f'/api/v1/clinical/medical-records/{ready_outpatient_visit.medical_record.id}/unlock/'

        assert doctor_client.post(url).status_code == status.HTTP_403_FORBIDDEN

        response = admin_client.post(url)
        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_locked'] is False

    def test_add_diagnosis_to_locked_record(self, doctor_client, ready_outpatient_visit):
        url = f'/api/v1/clinical/medical-records/{ready_outpatient_visit.medical_record.id}/diagnoses/'
        response = doctor_client.post(url, {'icd10_code': 'R51', 'diagnosis_name': 'Headache'}, format='json')
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error_type'] == 'record_locked'

    def test_pharmacist_fulfils_prescription(self, doctor_client, pharmacist_client, outpatient_visit, drug):
        record_url = f'/api/v1/clinical/medical-records/{outpatient_visit.medical_record.id}/prescriptions/'
        response = doctor_client.post(record_url, {'drug': str(drug.id), 'quantity': 10}, format='json')
        assert response.status_code == status.HTTP_201_CREATED

        response = pharmacist_client.post(
            f"/api/v1/clinical/prescriptions/{response.data['id']}/fulfill/",
            {'dispensed_quantity': 7},
            format='json',
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data['is_fulfilled'] is True
        assert response.data['dispensed_quantity'] == 7


@pytest.mark.django_db
class TestVisitEndpoints:

    def test_transition_and_cancel_validation(self, nurse_client, make_visit):
        visit = make_visit(status=VisitStatusChoices.REGISTERED)
        url = f'/api/v1/visits/{visit.id}/transition/'

        response = nurse_client.post(url, {'new_status': 'waiting'}, format='json')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['status'] == 'waiting'

        response = nurse_client.post(url, {'new_status': 'cancelled'}, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_illegal_transition(self, nurse_client, make_visit):
        visit = make_visit(status=VisitStatusChoices.REGISTERED)
        response = nurse_client.post(
            f'/api/v1/visits/{visit.id}/transition/', {'new_status': 'completed'}, format='json'
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data['error_type'] == 'invalid_transition'

    def test_complete_blocked_by_balance(self, cashier_client, outpatient_billing):
        response = cashier_client.post(f'/api/v1/visits/{outpatient_billing.visit_id}/complete/')
        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data['details']['reason'] == 'unsettled balance'
        assert Visit.objects.get(id=outpatient_billing.visit_id).status == VisitStatusChoices.READY_FOR_BILLING

    def test_allowed_transitions(self, nurse_client, outpatient_visit):
        response = nurse_client.get(f'/api/v1/visits/{outpatient_visit.id}/transitions/')
        assert response.status_code == status.HTTP_200_OK
        assert 'ready_for_billing' in response.data['allowed_transitions']

    def test_retrieve(self, nurse_client, outpatient_visit):
        response = nurse_client.get(f'/api/v1/visits/{outpatient_visit.id}/')
        assert response.status_code == status.HTTP_200_OK
        assert response.data['visit_number'] == outpatient_visit.visit_number


PAYMENTS_URL = '/api/v1/billing/payments/'


@pytest.mark.django_db
class TestPaymentHistory:

    @pytest.fixture
    def payments(self, outpatient_billing, inpatient_visit, cashier_user):
        inpatient_billing = billing_services.create_discharge_billing(inpatient_visit.id, actor=cashier_user)
        cash = billing_services.process_payment(
            outpatient_billing.id,
            {'amount': '50000', 'payment_method': 'cash', 'amount_received': '50000'},
            actor=cashier_user,
        )['payment']
        transfer = billing_services.process_payment(
            inpatient_billing.id, {'amount': '100000', 'payment_method': 'transfer'}, actor=cashier_user
        )['payment']
        return cash, transfer

    def test_list_newest_first(self, cashier_client, payments):
        cash, transfer = payments
        response = cashier_client.get(PAYMENTS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 2
        assert [row['receipt_number'] for row in response.data['results']] == [
            transfer.receipt_number, cash.receipt_number,
        ]

    def test_filter_by_method_and_visit_type(self, cashier_client, payments):
        cash, transfer = payments

        response = cashier_client.get(PAYMENTS_URL, {'payment_method': 'cash'})
        assert [row['id'] for row in response.data['results']] == [str(cash.id)]

        response = cashier_client.get(PAYMENTS_URL, {'visit_type': 'inpatient'})
        assert [row['id'] for row in response.data['results']] == [str(transfer.id)]

        response = cashier_client.get(PAYMENTS_URL, {'payment_method': 'all'})
        assert response.data['count'] == 2

    def test_search(self, cashier_client, payments, inpatient_visit):
        cash, transfer = payments

        response = cashier_client.get(PAYMENTS_URL, {'search': 'MR-000001'})
        assert response.data['count'] == 2

        response = cashier_client.get(PAYMENTS_URL, {'search': inpatient_visit.visit_number})
        assert [row['id'] for row in response.data['results']] == [str(transfer.id)]

        response = cashier_client.get(PAYMENTS_URL, {'search': 'nobody'})
        assert response.data['count'] == 0

    def test_date_range(self, cashier_client, payments):
        today = timezone.localdate()
        yesterday = today - timedelta(days=1)

        response = cashier_client.get(PAYMENTS_URL, {'date_from': today.isoformat(), 'date_to': today.isoformat()})
        assert response.data['count'] == 2

        response = cashier_client.get(PAYMENTS_URL, {'date_to': yesterday.isoformat()})
        assert response.data['count'] == 0

    def test_bad_date_rejected(self, cashier_client, payments):
        response = cashier_client.get(PAYMENTS_URL, {'date_from': 'yesterday'})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_retrieve_carries_visit_context(self, cashier_client, payments, outpatient_billing):
        cash, _ = payments
        response = cashier_client.get(f'{PAYMENTS_URL}{cash.id}/')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['receipt_number'] == cash.receipt_number
        assert response.data['amount'] == '50000.00'
        assert response.data['visit_number'] == outpatient_billing.visit.visit_number
        assert response.data['patient_name'] == 'Test Patient'
        assert response.data['mr_number'] == 'MR-000001'
        assert response.data['billing_payment_status'] == 'partial'

    def test_read_roles(self, nurse_client, api_client, payments):
        assert nurse_client.get(PAYMENTS_URL).status_code == status.HTTP_200_OK
        assert api_client.get(PAYMENTS_URL).status_code == status.HTTP_401_UNAUTHORIZED

    def test_history_is_read_only(self, cashier_client, payments):
        cash, _ = payments
        response = cashier_client.post(PAYMENTS_URL, {'amount': '1000'}, format='json')
        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED

        response = cashier_client.delete(f'{PAYMENTS_URL}{cash.id}/')
        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
        assert Payment.objects.count() == 2
