"""
Tests for role bootstrap, the ensure_staff_user command and JWT login.
"""
import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from rest_framework.test import APIClient

from apps.authz.models import Role, RoleChoices, User


@pytest.mark.django_db
class TestRoleBootstrap:

    def test_every_role_exists_after_migrations(self):
        assert set(Role.objects.values_list('name', flat=True)) >= set(RoleChoices.values)

    def test_roles_are_unique(self):
        for name in RoleChoices.values:
            assert Role.objects.filter(name=name).count() == 1


@pytest.mark.django_db
class TestEnsureStaffUser:

    def test_creates_user_with_roles(self):
        call_command('ensure_staff_user', 'Cashier@Example.com', '--role', 'cashier', '--password', 'pw-12345')

        user = User.objects.get(email='Cashier@example.com')
        assert user.has_role(RoleChoices.CASHIER)
        assert user.check_password('pw-12345')

    def test_idempotent(self):
        call_command('ensure_staff_user', 'nurse@example.com', '--role', 'nurse')
        call_command('ensure_staff_user', 'nurse@example.com', '--role', 'nurse', '--role', 'doctor')

        user = User.objects.get(email='nurse@example.com')
        assert sorted(user.role_names()) == ['doctor', 'nurse']
        assert not user.has_usable_password()

    def test_superuser_gets_admin_role(self):
        call_command('ensure_staff_user', 'root@example.com', '--superuser')

        user = User.objects.get(email='root@example.com')
        assert user.is_staff and user.is_superuser
        assert user.has_role(RoleChoices.ADMIN)

    def test_requires_a_role(self):
        with pytest.raises(CommandError):
            call_command('ensure_staff_user', 'nobody@example.com')


@pytest.mark.django_db
class TestAuthentication:

    def test_token_then_profile(self, cashier_user):
        client = APIClient()
        response = client.post(
            '/api/auth/token/',
            {'email': cashier_user.email, 'password': 'testpass123'},
            format='json',
        )
        assert response.status_code == 200

        client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        response = client.get('/api/auth/me/')

        assert response.status_code == 200
        assert response.data['email'] == cashier_user.email
        assert response.data['roles'] == ['cashier']
