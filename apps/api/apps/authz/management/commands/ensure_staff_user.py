"""
Management command to ensure a staff user exists with the given roles.

Usage:
    python manage.py ensure_staff_user cashier@example.com --role cashier --password secret

Idempotent: existing users keep their password unless --password is given.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.authz.models import Role, RoleChoices, User, UserRole


class Command(BaseCommand):
    help = 'Create or update a staff user and assign roles'

    def add_arguments(self, parser):
        parser.add_argument('email')
        parser.add_argument('--password')
        parser.add_argument(
            '--role',
            action='append',
            dest='roles',
            default=[],
            choices=RoleChoices.values,
        )
        parser.add_argument('--superuser', action='store_true')

    def handle(self, *args, **options):
        email = options['email']
        if not options['roles'] and not options['superuser']:
            raise CommandError('At least one --role (or --superuser) is required')

        user, created = User.objects.get_or_create(
            email=User.objects.normalize_email(email),
            defaults={'is_active': True},
        )
        if options['superuser']:
            user.is_staff = True
            user.is_superuser = True
        if options['password']:
            user.set_password(options['password'])
        elif created:
            user.set_unusable_password()
        user.save()

        roles = list(options['roles'])
        if options['superuser'] and RoleChoices.ADMIN not in roles:
            roles.append(RoleChoices.ADMIN)

        for role_name in roles:
            role, _ = Role.objects.get_or_create(name=role_name)
            UserRole.objects.get_or_create(user=user, role=role)

        verb = 'Created' if created else 'Updated'
        self.stdout.write(self.style.SUCCESS(f'{verb} user {user.email} with roles: {", ".join(sorted(roles))}'))
