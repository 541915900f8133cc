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
        ('billing', '0001_initial'),
        ('visits', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Drug',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('code', models.CharField(max_length=50, unique=True, verbose_name='Code')),
                ('name', models.CharField(max_length=255, verbose_name='Name')),
                ('unit', models.CharField(default='tablet', max_length=30, verbose_name='Unit')),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='Price')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
            ],
            options={
                'verbose_name': 'Drug',
                'verbose_name_plural': 'Drugs',
                'db_table': 'drugs',
                'ordering': ['name'],
            },
        ),
        migrations.CreateModel(
            name='Room',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('room_number', models.CharField(max_length=20, unique=True, verbose_name='Room Number')),
                ('room_type', models.CharField(choices=[('vip', 'VIP'), ('class_1', 'Class 1'), ('class_2', 'Class 2'), ('class_3', 'Class 3'), ('icu', 'ICU'), ('isolation', 'Isolation')], default='class_3', max_length=20, verbose_name='Room Type')),
                ('daily_rate', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='Daily Rate')),
                ('is_active', models.BooleanField(default=True, verbose_name='Active')),
            ],
            options={
                'verbose_name': 'Room',
                'verbose_name_plural': 'Rooms',
                'db_table': 'rooms',
                'ordering': ['room_number'],
            },
        ),
        migrations.CreateModel(
            name='MedicalRecord',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('subjective', models.TextField(blank=True, verbose_name='Subjective')),
                ('objective', models.TextField(blank=True, verbose_name='Objective')),
                ('assessment', models.TextField(blank=True, verbose_name='Assessment')),
                ('plan', models.TextField(blank=True, verbose_name='Plan')),
                ('is_draft', models.BooleanField(default=True, verbose_name='Draft')),
                ('is_locked', models.BooleanField(default=False, verbose_name='Locked')),
                ('locked_at', models.DateTimeField(blank=True, null=True, verbose_name='Locked At')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='medical_records', to=settings.AUTH_USER_MODEL, verbose_name='Doctor')),
                ('locked_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='locked_medical_records', to=settings.AUTH_USER_MODEL, verbose_name='Locked By')),
                ('visit', models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name='medical_record', to='visits.visit', verbose_name='Visit')),
            ],
            options={
                'verbose_name': 'Medical Record',
                'verbose_name_plural': 'Medical Records',
                'db_table': 'medical_records',
                'indexes': [
                    models.Index(fields=['is_locked'], name='idx_medrec_locked'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Diagnosis',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('icd10_code', models.CharField(max_length=10, verbose_name='ICD-10 Code')),
                ('diagnosis_name', models.CharField(max_length=255, verbose_name='Diagnosis')),
                ('diagnosis_type', models.CharField(choices=[('primary', 'Primary'), ('secondary', 'Secondary')], default='primary', max_length=20, verbose_name='Type')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('medical_record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='diagnoses', to='clinical.medicalrecord', verbose_name='Medical Record')),
            ],
            options={
                'verbose_name': 'Diagnosis',
                'verbose_name_plural': 'Diagnoses',
                'db_table': 'diagnoses',
                'ordering': ['created_at'],
            },
        ),
        migrations.CreateModel(
            name='Procedure',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('procedure_name', models.CharField(max_length=255, verbose_name='Procedure')),
                ('icd9_code', models.CharField(blank=True, max_length=10, verbose_name='ICD-9-CM Code')),
                ('performed_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Performed At')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('medical_record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='procedures', to='clinical.medicalrecord', verbose_name='Medical Record')),
                ('service', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name='procedures', to='billing.service', verbose_name='Service')),
            ],
            options={
                'verbose_name': 'Procedure',
                'verbose_name_plural': 'Procedures',
                'db_table': 'procedures',
                'ordering': ['performed_at'],
            },
        ),
        migrations.CreateModel(
            name='Prescription',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)], verbose_name='Quantity')),
                ('dispensed_quantity', models.PositiveIntegerField(blank=True, null=True, verbose_name='Dispensed Quantity')),
                ('dosage', models.CharField(blank=True, max_length=100, verbose_name='Dosage')),
                ('frequency', models.CharField(blank=True, max_length=100, verbose_name='Frequency')),
                ('duration', models.CharField(blank=True, max_length=100, verbose_name='Duration')),
                ('is_fulfilled', models.BooleanField(default=False, verbose_name='Fulfilled')),
                ('fulfilled_at', models.DateTimeField(blank=True, null=True, verbose_name='Fulfilled At')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('drug', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='prescriptions', to='clinical.drug', verbose_name='Drug')),
                ('medical_record', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='prescriptions', to='clinical.medicalrecord', verbose_name='Medical Record')),
            ],
            options={
                'verbose_name': 'Prescription',
                'verbose_name_plural': 'Prescriptions',
                'db_table': 'prescriptions',
                'ordering': ['created_at'],
                'constraints': [
                    models.CheckConstraint(condition=models.Q(quantity__gt=0), name='prescription_quantity_positive'),
                ],
            },
        ),
        migrations.CreateModel(
            name='MaterialUsage',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('material_name', models.CharField(max_length=255, verbose_name='Material')),
                ('quantity', models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)], verbose_name='Quantity')),
                ('unit', models.CharField(blank=True, max_length=30, verbose_name='Unit')),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='Unit Price')),
                ('used_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Used At')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='material_usages', to='visits.visit', verbose_name='Visit')),
            ],
            options={
                'verbose_name': 'Material Usage',
                'verbose_name_plural': 'Material Usages',
                'db_table': 'material_usages',
                'ordering': ['used_at'],
            },
        ),
        migrations.CreateModel(
            name='BedAssignment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('bed_number', models.CharField(max_length=10, verbose_name='Bed Number')),
                ('assigned_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Assigned At')),
                ('released_at', models.DateTimeField(blank=True, null=True, verbose_name='Released At')),
                ('room', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bed_assignments', to='clinical.room', verbose_name='Room')),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='bed_assignments', to='visits.visit', verbose_name='Visit')),
            ],
            options={
                'verbose_name': 'Bed Assignment',
                'verbose_name_plural': 'Bed Assignments',
                'db_table': 'bed_assignments',
                'ordering': ['assigned_at'],
                'indexes': [
                    models.Index(fields=['visit', 'released_at'], name='idx_bed_visit_open'),
                ],
            },
        ),
        migrations.CreateModel(
            name='LabOrder',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('order_number', models.CharField(max_length=32, unique=True, verbose_name='Order Number')),
                ('test_code', models.CharField(blank=True, max_length=30, verbose_name='Test Code')),
                ('test_name', models.CharField(max_length=255, verbose_name='Test')),
                ('price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(Decimal('0.00'))], verbose_name='Price')),
                ('status', models.CharField(choices=[('ordered', 'Ordered'), ('in_progress', 'In Progress'), ('completed', 'Completed'), ('verified', 'Verified'), ('cancelled', 'Cancelled')], default='ordered', max_length=20, verbose_name='Status')),
                ('verified_at', models.DateTimeField(blank=True, null=True, verbose_name='Verified At')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('visit', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='lab_orders', to='visits.visit', verbose_name='Visit')),
            ],
            options={
                'verbose_name': 'Lab Order',
                'verbose_name_plural': 'Lab Orders',
                'db_table': 'lab_orders',
                'ordering': ['created_at'],
            },
        ),
    ]
