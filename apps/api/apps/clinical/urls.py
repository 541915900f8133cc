"""
Clinical URLs - medical records.
"""
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import MedicalRecordViewSet, PrescriptionFulfillView

router = DefaultRouter()
router.register(r'medical-records', MedicalRecordViewSet, basename='medical-record')

urlpatterns = [
    path('', include(router.urls)),
    path(
        'prescriptions/<uuid:prescription_id>/fulfill/',
        PrescriptionFulfillView.as_view(),
        name='prescription-fulfill'
    ),
]
