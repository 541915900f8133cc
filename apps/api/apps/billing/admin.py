from django.contrib import admin

from .models import Billing, BillingItem, DischargeSummary, Payment, Service


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'service_type', 'price', 'is_active']
    list_filter = ['service_type', 'is_active']
    search_fields = ['code', 'name']


class BillingItemInline(admin.TabularInline):
    model = BillingItem
    extra = 0
    can_delete = False
    readonly_fields = [
        'item_type', 'source_key', 'item_name', 'item_code', 'quantity',
        'unit_price', 'discount', 'total_price', 'description',
    ]

    def has_add_permission(self, request, obj=None):
        return False


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    can_delete = False
    fields = ['receipt_number', 'amount', 'payment_method', 'received_by', 'received_at']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Billing)
class BillingAdmin(admin.ModelAdmin):
    """Read-only: billing figures change only through the billing services."""
    list_display = ['visit', 'total_amount', 'paid_amount', 'remaining_amount', 'payment_status', 'created_at']
    list_filter = ['payment_status']
    search_fields = ['visit__visit_number']
    inlines = [BillingItemInline, PaymentInline]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['receipt_number', 'billing', 'amount', 'payment_method', 'received_at']
    list_filter = ['payment_method']
    search_fields = ['receipt_number', 'payment_reference']

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(DischargeSummary)
class DischargeSummaryAdmin(admin.ModelAdmin):
    list_display = ['visit', 'discharged_by', 'discharged_at', 'follow_up_date']
    search_fields = ['visit__visit_number']

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False
