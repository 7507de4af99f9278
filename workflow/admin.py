"""
Django admin registrations for the workflow models.

Visit and billing status are read-only here: they may only change
through the workflow services, which validate and audit every move.
"""

from django.contrib import admin

from .models import (
    AuditEvent,
    BatchOrder,
    BatchOrderService,
    Billing,
    BillingItem,
    DiagnosticOrder,
    InvestigationType,
    MedicalHistory,
    MedicationCatalog,
    MedicationOrder,
    Patient,
    Payment,
    Service,
    User,
    Visit,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'available', 'consultation_fee', 'is_staff')
    list_filter = ('role', 'available')
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'sex', 'age', 'phone', 'status', 'last_visit_at')
    list_filter = ('status',)
    search_fields = ('name', 'phone')


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'category', 'price', 'is_active')
    list_filter = ('category', 'is_active')
    search_fields = ('code', 'name')


admin.site.register(InvestigationType)
admin.site.register(MedicationCatalog)


@admin.register(Visit)
class VisitAdmin(admin.ModelAdmin):
    list_display = ('visit_uid', 'patient', 'status', 'queue_type', 'is_emergency', 'created_at')
    list_filter = ('status', 'queue_type', 'is_emergency')
    search_fields = ('visit_uid', 'patient__name')
    readonly_fields = ('status', 'queue_type', 'completed_at')


class BillingItemInline(admin.TabularInline):
    model = BillingItem
    extra = 0
    readonly_fields = ('service', 'description', 'quantity', 'unit_price', 'total_price')


@admin.register(Billing)
class BillingAdmin(admin.ModelAdmin):
    list_display = ('id', 'visit', 'billing_type', 'status', 'total_amount', 'created_at')
    list_filter = ('billing_type', 'status')
    readonly_fields = ('status', 'total_amount')
    inlines = [BillingItemInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'billing', 'amount', 'method', 'received_by', 'created_at')
    list_filter = ('method',)

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(DiagnosticOrder)
class DiagnosticOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'visit', 'kind', 'investigation_type', 'status')
    list_filter = ('kind', 'status')


class BatchOrderServiceInline(admin.TabularInline):
    model = BatchOrderService
    extra = 0


@admin.register(BatchOrder)
class BatchOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'visit', 'type', 'status')
    list_filter = ('type', 'status')
    inlines = [BatchOrderServiceInline]


@admin.register(MedicationOrder)
class MedicationOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'visit', 'name', 'quantity', 'status')
    list_filter = ('status',)


@admin.register(MedicalHistory)
class MedicalHistoryAdmin(admin.ModelAdmin):
    list_display = ('visit', 'patient', 'doctor', 'completed_at')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'object_type', 'object_id', 'user')
    list_filter = ('action', 'object_type')
