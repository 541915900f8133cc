from django.contrib import admin

from .models import (
    BedAssignment,
    Diagnosis,
    Drug,
    LabOrder,
    MaterialUsage,
    MedicalRecord,
    Prescription,
    Procedure,
    Room,
)


class DiagnosisInline(admin.TabularInline):
    model = Diagnosis
    extra = 0


class ProcedureInline(admin.TabularInline):
    model = Procedure
    extra = 0


class PrescriptionInline(admin.TabularInline):
    model = Prescription
    extra = 0


@admin.register(MedicalRecord)
class MedicalRecordAdmin(admin.ModelAdmin):
    list_display = ['visit', 'doctor', 'is_locked', 'locked_at', 'created_at']
    list_filter = ['is_locked', 'is_draft']
    search_fields = ['visit__visit_number']
    # Lock state changes only through the lock/unlock services
    readonly_fields = ['id', 'is_locked', 'is_draft', 'locked_at', 'locked_by', 'created_at', 'updated_at']
    inlines = [DiagnosisInline, ProcedureInline, PrescriptionInline]


@admin.register(Drug)
class DrugAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'unit', 'price', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name']


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ['room_number', 'room_type', 'daily_rate', 'is_active']
    list_filter = ['room_type', 'is_active']


@admin.register(BedAssignment)
class BedAssignmentAdmin(admin.ModelAdmin):
    list_display = ['visit', 'room', 'bed_number', 'assigned_at', 'released_at']
    list_filter = ['room__room_type']


@admin.register(MaterialUsage)
class MaterialUsageAdmin(admin.ModelAdmin):
    list_display = ['visit', 'material_name', 'quantity', 'unit_price', 'used_at']
    search_fields = ['material_name']


@admin.register(LabOrder)
class LabOrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'visit', 'test_name', 'price', 'status']
    list_filter = ['status']
    search_fields = ['order_number', 'test_name']
