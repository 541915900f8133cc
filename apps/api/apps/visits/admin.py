from django.contrib import admin

from .models import Patient, Visit


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ['mr_number', 'full_name', 'created_at']
    search_fields = ['mr_number', 'full_name']
    readonly_fields = ['id', 'created_at']


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ['visit_number', 'patient', 'visit_type', 'status', 'arrival_at', 'end_at']
    list_filter = ['visit_type', 'status']
    search_fields = ['visit_number', 'patient__mr_number']
    # Status moves only through the lifecycle services
    readonly_fields = ['id', 'status', 'end_at', 'cancellation_reason', 'created_at', 'updated_at']

    def has_delete_permission(self, request, obj=None):
        return False
