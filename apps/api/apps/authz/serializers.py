"""
Authz serializers.
"""
from rest_framework import serializers


class UserProfileSerializer(serializers.Serializer):
    """Authenticated user profile with role names."""
    id = serializers.UUIDField()
    email = serializers.EmailField()
    display_name = serializers.CharField()
    is_active = serializers.BooleanField()
    roles = serializers.ListField(child=serializers.CharField())
