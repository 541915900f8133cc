import uuid

from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Patient',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('mr_number', models.CharField(max_length=32, unique=True, verbose_name='Medical Record Number')),
                ('full_name', models.CharField(max_length=255, verbose_name='Full Name')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
            ],
            options={
                'verbose_name': 'Patient',
                'verbose_name_plural': 'Patients',
                'db_table': 'patients',
                'ordering': ['mr_number'],
            },
        ),
        migrations.CreateModel(
            name='Visit',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('visit_number', models.CharField(max_length=32, unique=True, verbose_name='Visit Number')),
                ('visit_type', models.CharField(choices=[('outpatient', 'Outpatient'), ('inpatient', 'Inpatient'), ('emergency', 'Emergency')], default='outpatient', max_length=20, verbose_name='Visit Type')),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('registered', 'Registered'), ('waiting', 'Waiting'), ('in_examination', 'In Examination'), ('ready_for_billing', 'Ready for Billing'), ('completed', 'Completed'), ('cancelled', 'Cancelled')], default='registered', max_length=20, verbose_name='Status')),
                ('arrival_at', models.DateTimeField(default=django.utils.timezone.now, verbose_name='Arrival At')),
                ('end_at', models.DateTimeField(blank=True, null=True, verbose_name='Ended At')),
                ('cancellation_reason', models.TextField(blank=True, null=True, verbose_name='Cancellation Reason')),
                ('created_at', models.DateTimeField(auto_now_add=True, verbose_name='Created At')),
                ('updated_at', models.DateTimeField(auto_now=True, verbose_name='Updated At')),
                ('doctor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='visits_as_doctor', to=settings.AUTH_USER_MODEL, verbose_name='Doctor')),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='visits', to='visits.patient', verbose_name='Patient')),
            ],
            options={
                'verbose_name': 'Visit',
                'verbose_name_plural': 'Visits',
                'db_table': 'visits',
                'ordering': ['-arrival_at'],
                'indexes': [
                    models.Index(fields=['status'], name='idx_visit_status'),
                    models.Index(fields=['visit_type', 'status'], name='idx_visit_type_status'),
                    models.Index(fields=['patient', '-arrival_at'], name='idx_visit_patient'),
                ],
            },
        ),
    ]
