"""
Core API URLs - metrics.
"""
from django.urls import path

from .views import MetricsView

urlpatterns = [
    path('ops/metrics', MetricsView.as_view(), name='metrics'),
]
