"""
Billing URLs.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    BillingViewSet,
    DischargeEligibilityView,
    DischargeSummaryView,
    PaymentViewSet,
    VisitBillingCreateView,
    VisitBillingPreviewView,
)

router = DefaultRouter()
router.register(r'billings', BillingViewSet, basename='billing')
router.register(r'payments', PaymentViewSet, basename='payment')

urlpatterns = [
    path('', include(router.urls)),
    path('visits/<uuid:visit_id>/preview/', VisitBillingPreviewView.as_view(), name='billing-preview'),
    path('visits/<uuid:visit_id>/create/', VisitBillingCreateView.as_view(), name='billing-create'),
    path(
        'visits/<uuid:visit_id>/discharge-eligibility/',
        DischargeEligibilityView.as_view(),
        name='discharge-eligibility'
    ),
    path(
        'visits/<uuid:visit_id>/discharge-summary/',
        DischargeSummaryView.as_view(),
        name='discharge-summary'
    ),
]
