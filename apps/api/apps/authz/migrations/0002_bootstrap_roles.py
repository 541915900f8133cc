from django.db import migrations

ROLE_NAMES = ['admin', 'doctor', 'nurse', 'cashier', 'pharmacist', 'registration']


def create_roles(apps, schema_editor):
    """Idempotent: safe to run multiple times."""
    Role = apps.get_model('authz', 'Role')
    for name in ROLE_NAMES:
        Role.objects.get_or_create(name=name)


def remove_unassigned_roles(apps, schema_editor):
    Role = apps.get_model('authz', 'Role')
    Role.objects.filter(name__in=ROLE_NAMES, user_roles__isnull=True).delete()


class Migration(migrations.Migration):

    dependencies = [
        ('authz', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(create_roles, remove_unassigned_roles),
    ]
