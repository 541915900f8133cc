import uuid
from decimal import Decimal

from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('visits', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Service',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.CharField(max_length=50, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('service_type', models.CharField(choices=[('consultation', 'Consultation'), ('administration', 'Administration'), ('procedure', 'Procedure'), ('laboratory', 'Laboratory'), ('room', 'Room'), ('other', 'Other')], default='other', max_length=20, verbose_name='Service Type')),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='Price')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
            ],
            options={
                'verbose_name': 'Service',
                'verbose_name_plural': 'Services',
                'db_table': 'services',
                'ordering': ['code'],
                'indexes': [
                    models.Index(fields=['service_type', 'is_active'], name='idx_service_type_active'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Billing',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('subtotal', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Subtotal')),
                ('discount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Discount')),
                ('discount_percentage', models.DecimalField(blank=True, decimal_places=2, help_text='When set, discount was derived from this percentage of the subtotal', max_digits=5, null=True, validators=[django.core.validators.MinValueValidator(Decimal('0.00')), django.core.validators.MaxValueValidator(Decimal('100'))], verbose_name='Discount Percentage')),
                ('tax', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Tax')),
                ('insurance_coverage', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Insurance Coverage')),
                ('total_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Total')),
                ('patient_payable', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Patient Payable')),
                ('paid_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Paid')),
                ('remaining_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14, verbose_name='Remaining')),
                ('payment_status', models.CharField(choices=[('unpaid', 'Unpaid'), ('partial', 'Partially Paid'), ('paid', 'Paid')], default='unpaid', max_length=10, verbose_name='Payment Status')),
                ('notes', models.TextField(blank=True, null=True, verbose_name='Notes')),
                ('processed_at', models.DateTimeField(blank=True, null=True, verbose_name='Processed At')),
                ('version', models.PositiveIntegerField(default=1, verbose_name='Version')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_billings', to=settings.AUTH_USER_MODEL, verbose_name='Created By')),
                ('processed_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='processed_billings', to=settings.AUTH_USER_MODEL, verbose_name='Processed By')),
                ('visit', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='billing', to='visits.visit', verbose_name='Visit')),
            ],
            options={
                'verbose_name': 'Billing',
                'verbose_name_plural': 'Billings',
                'db_table': 'billings',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['payment_status'], name='idx_billing_status'),
                    models.Index(fields=['-created_at'], name='idx_billing_created'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(subtotal__gte=0), name='billing_subtotal_non_negative'),
                    models.CheckConstraint(condition=models.Q(discount__gte=0), name='billing_discount_non_negative'),
                    models.CheckConstraint(condition=models.Q(tax__gte=0) & models.Q(insurance_coverage__gte=0), name='billing_adjustments_non_negative'),
                    models.CheckConstraint(condition=models.Q(total_amount__gte=0) & models.Q(remaining_amount__gte=0), name='billing_totals_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BillingItem',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('item_type', models.CharField(choices=[('service', 'Service'), ('drug', 'Drug'), ('material', 'Material'), ('room', 'Room'), ('laboratory', 'Laboratory')], max_length=20, verbose_name='Item Type')),
                ('source_key', models.CharField(max_length=100, verbose_name='Source Key')),
                ('item_name', models.CharField(max_length=255, verbose_name='Item')),
                ('item_code', models.CharField(blank=True, max_length=50, verbose_name='Item Code')),
                ('quantity', models.PositiveIntegerField(verbose_name='Quantity')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, verbose_name='Unit Price')),
                ('discount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12, verbose_name='Discount')),
                ('total_price', models.DecimalField(decimal_places=2, max_digits=14, verbose_name='Total Price')),
                ('description', models.TextField(blank=True, null=True, verbose_name='Description')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('billing', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='billing.billing', verbose_name='Billing')),
            ],
            options={
                'verbose_name': 'Billing Item',
                'verbose_name_plural': 'Billing Items',
                'db_table': 'billing_items',
                'ordering': ['created_at', 'item_type'],
                'indexes': [
                    models.Index(fields=['billing', 'item_type'], name='idx_billing_item_type'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('billing', 'source_key'), name='uniq_billing_item_source', violation_error_message='This charge is already on the billing'),
                    models.CheckConstraint(condition=models.Q(quantity__gt=0), name='billing_item_quantity_positive'),
                    models.CheckConstraint(condition=models.Q(unit_price__gte=0) & models.Q(discount__gte=0), name='billing_item_prices_non_negative'),
                    models.CheckConstraint(condition=models.Q(total_price__gte=0), name='billing_item_total_non_negative'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Payment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('receipt_number', models.CharField(max_length=40, unique=True, verbose_name='Receipt Number')),
                ('amount', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))], verbose_name='Amount')),
                ('payment_method', models.CharField(choices=[('cash', 'Cash'), ('transfer', 'Bank Transfer'), ('card', 'Card'), ('insurance', 'Insurance')], max_length=20, verbose_name='Payment Method')),
                ('payment_reference', models.CharField(blank=True, max_length=100, null=True, verbose_name='Reference')),
                ('amount_received', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name='Amount Received')),
                ('change_given', models.DecimalField(blank=True, decimal_places=2, max_digits=14, null=True, verbose_name='Change Given')),
                ('notes', models.TextField(blank=True, null=True, verbose_name='Notes')),
                ('received_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Received At')),
                ('billing', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='payments', to='billing.billing', verbose_name='Billing')),
                ('received_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='received_payments', to=settings.AUTH_USER_MODEL, verbose_name='Received By')),
            ],
            options={
                'verbose_name': 'Payment',
                'verbose_name_plural': 'Payments',
                'db_table': 'payments',
                'ordering': ['received_at'],
                'indexes': [
                    models.Index(fields=['billing', 'received_at'], name='idx_payment_billing'),
                    models.Index(fields=['received_at'], name='idx_payment_received'),
                ],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(amount__gt=0), name='payment_amount_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='DischargeSummary',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('admission_diagnosis', models.TextField(verbose_name='Admission Diagnosis')),
                ('discharge_diagnosis', models.TextField(verbose_name='Discharge Diagnosis')),
                ('clinical_summary', models.TextField(verbose_name='Clinical Summary')),
                ('procedures_performed', models.TextField(blank=True, verbose_name='Procedures Performed')),
                ('medications_on_discharge', models.TextField(blank=True, verbose_name='Medications on Discharge')),
                ('discharge_instructions', models.TextField(verbose_name='Discharge Instructions')),
                ('follow_up_date', models.DateField(blank=True, null=True, verbose_name='Follow-up Date')),
                ('discharged_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Discharged At')),
                ('discharged_by', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='discharge_summaries', to=settings.AUTH_USER_MODEL, verbose_name='Discharged By')),
                ('visit', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='discharge_summary', to='visits.visit', verbose_name='Visit')),
            ],
            options={
                'verbose_name': 'Discharge Summary',
                'verbose_name_plural': 'Discharge Summaries',
                'db_table': 'discharge_summaries',
                'ordering': ['-discharged_at'],
            },
        ),
    ]
