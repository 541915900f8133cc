"""
Core views - Prometheus scrape endpoint.
"""
from django.http import HttpResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from rest_framework.permissions import IsAdminUser
from rest_framework.views import APIView


class MetricsView(APIView):
    """
    Prometheus exposition of the process-wide default registry.

    Staff only: label values include route templates and error kinds.
    """
    permission_classes = [IsAdminUser]

    def get(self, request):
        return HttpResponse(generate_latest(), content_type=CONTENT_TYPE_LATEST)
