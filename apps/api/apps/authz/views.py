"""
Authz views.
"""
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.authz.serializers import UserProfileSerializer


class CurrentUserView(APIView):
    """
    GET /api/auth/me/ - profile of the authenticated user.

    Clients use ``roles`` to decide which billing and clinical actions to
    offer; the backend still enforces every permission itself.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        profile_data = {
            'id': user.id,
            'email': user.email,
            'display_name': user.display_name,
            'is_active': user.is_active,
            'roles': sorted(user.role_names()),
        }
        serializer = UserProfileSerializer(profile_data)
        return Response(serializer.data, status=status.HTTP_200_OK)
