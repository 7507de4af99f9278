"""
Database models for the hospital workflow backend.

A patient encounter is a :class:`Visit`.  Orders (individual diagnostic
orders, batch orders and medication orders) and billings hang off the
visit.  Visit status is only written by ``workflow.services.visits``;
billing status is only written by ``workflow.services.billing``.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Sum


class User(AbstractUser):
    """Staff member with a department role.

    Doctors additionally carry a personal consultation fee, an
    availability flag and a list of specialties.
    """
    ROLE_ADMIN = 'admin'
    ROLE_RECEPTION = 'reception'
    ROLE_NURSE = 'nurse'
    ROLE_DOCTOR = 'doctor'
    ROLE_LAB = 'lab'
    ROLE_RADIOLOGY = 'radiology'
    ROLE_PHARMACY = 'pharmacy'
    ROLE_BILLING = 'billing'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_RECEPTION, 'Reception'),
        (ROLE_NURSE, 'Nurse'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_LAB, 'Lab technician'),
        (ROLE_RADIOLOGY, 'Radiologist'),
        (ROLE_PHARMACY, 'Pharmacist'),
        (ROLE_BILLING, 'Billing officer'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_RECEPTION, db_index=True)
    consultation_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    available = models.BooleanField(default=True)
    specialties = models.JSONField(default=list, blank=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class Patient(models.Model):
    STATUS_ACTIVE = 'Active'
    STATUS_INACTIVE = 'Inactive'
    STATUS_CHOICES = [(STATUS_ACTIVE, 'Active'), (STATUS_INACTIVE, 'Inactive')]

    name = models.CharField(max_length=128)
    sex = models.CharField(max_length=1, blank=True)
    age = models.PositiveIntegerField(null=True, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    blood_type = models.CharField(max_length=8, blank=True)
    # Filtered by the inactivity sweep
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    last_visit_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} (#{self.pk})"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class Service(models.Model):
    CATEGORY_CONSULTATION = 'CONSULTATION'
    CATEGORY_LAB = 'LAB'
    CATEGORY_RADIOLOGY = 'RADIOLOGY'
    CATEGORY_PHARMACY = 'PHARMACY'
    CATEGORY_EMERGENCY = 'EMERGENCY'
    CATEGORY_PROCEDURE = 'PROCEDURE'
    CATEGORY_OTHER = 'OTHER'
    CATEGORY_CHOICES = [
        (CATEGORY_CONSULTATION, 'Consultation'),
        (CATEGORY_LAB, 'Lab'),
        (CATEGORY_RADIOLOGY, 'Radiology'),
        (CATEGORY_PHARMACY, 'Pharmacy'),
        (CATEGORY_EMERGENCY, 'Emergency'),
        (CATEGORY_PROCEDURE, 'Procedure'),
        (CATEGORY_OTHER, 'Other'),
    ]
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=255)
    category = models.CharField(max_length=16, choices=CATEGORY_CHOICES, db_index=True)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return f"{self.code} {self.name}"


class InvestigationType(models.Model):
    CATEGORY_LAB = 'LAB'
    CATEGORY_RADIOLOGY = 'RADIOLOGY'
    CATEGORY_CHOICES = [(CATEGORY_LAB, 'Lab'), (CATEGORY_RADIOLOGY, 'Radiology')]

    name = models.CharField(max_length=255)
    category = models.CharField(max_length=16, choices=CATEGORY_CHOICES)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    service = models.ForeignKey(Service, on_delete=models.PROTECT, related_name='investigation_types')

    def __str__(self) -> str:
        return f"{self.name} ({self.category})"


class MedicationCatalog(models.Model):
    name = models.CharField(max_length=255)
    strength = models.CharField(max_length=64, blank=True)
    dosage_form = models.CharField(max_length=64, blank=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    available_quantity = models.PositiveIntegerField(default=0)

    def __str__(self) -> str:
        return f"{self.name} {self.strength}".strip()


# ---------------------------------------------------------------------------
# Visit lifecycle
# ---------------------------------------------------------------------------

class Assignment(models.Model):
    STATUS_PENDING = 'Pending'
    STATUS_ACTIVE = 'Active'
    STATUS_COMPLETED = 'Completed'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
    ]
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='assignments')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='assignments')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Assignment(p={self.patient_id}, d={self.doctor_id}, {self.status})"


class Visit(models.Model):
    WAITING_FOR_TRIAGE = 'WAITING_FOR_TRIAGE'
    TRIAGED = 'TRIAGED'
    WAITING_FOR_DOCTOR = 'WAITING_FOR_DOCTOR'
    IN_DOCTOR_QUEUE = 'IN_DOCTOR_QUEUE'
    UNDER_DOCTOR_REVIEW = 'UNDER_DOCTOR_REVIEW'
    SENT_TO_LAB = 'SENT_TO_LAB'
    SENT_TO_RADIOLOGY = 'SENT_TO_RADIOLOGY'
    SENT_TO_BOTH = 'SENT_TO_BOTH'
    AWAITING_RESULTS_REVIEW = 'AWAITING_RESULTS_REVIEW'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (WAITING_FOR_TRIAGE, 'Waiting for triage'),
        (TRIAGED, 'Triaged'),
        (WAITING_FOR_DOCTOR, 'Waiting for doctor'),
        (IN_DOCTOR_QUEUE, 'In doctor queue'),
        (UNDER_DOCTOR_REVIEW, 'Under doctor review'),
        (SENT_TO_LAB, 'Sent to lab'),
        (SENT_TO_RADIOLOGY, 'Sent to radiology'),
        (SENT_TO_BOTH, 'Sent to lab and radiology'),
        (AWAITING_RESULTS_REVIEW, 'Awaiting results review'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
    ]
    SENT_STATUSES = (SENT_TO_LAB, SENT_TO_RADIOLOGY, SENT_TO_BOTH)
    TERMINAL_STATUSES = (COMPLETED, CANCELLED)

    QUEUE_CONSULTATION = 'CONSULTATION'
    QUEUE_RESULTS_REVIEW = 'RESULTS_REVIEW'
    QUEUE_CHOICES = [
        (QUEUE_CONSULTATION, 'Consultation'),
        (QUEUE_RESULTS_REVIEW, 'Results review'),
    ]

    visit_uid = models.CharField(max_length=32, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='visits')
    created_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits_created'
    )
    # Every department queue filters on status
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=WAITING_FOR_TRIAGE, db_index=True)
    queue_type = models.CharField(max_length=16, choices=QUEUE_CHOICES, default=QUEUE_CONSULTATION)
    assignment = models.ForeignKey(
        Assignment, null=True, blank=True, on_delete=models.SET_NULL, related_name='visits'
    )
    is_emergency = models.BooleanField(default=False)
    diagnosis = models.TextField(blank=True)
    diagnosis_details = models.TextField(blank=True)
    instructions = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'created_at'], name='visit_status_created_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.visit_uid} ({self.status})"


class VitalSign(models.Model):
    visit = models.ForeignKey(Visit, on_delete=models.CASCADE, related_name='vitals')
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='vitals')
    temperature = models.DecimalField(max_digits=4, decimal_places=1, null=True, blank=True)
    blood_pressure = models.CharField(max_length=16, blank=True)
    heart_rate = models.PositiveIntegerField(null=True, blank=True)
    respiratory_rate = models.PositiveIntegerField(null=True, blank=True)
    oxygen_saturation = models.PositiveIntegerField(null=True, blank=True)
    weight = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    height = models.DecimalField(max_digits=4, decimal_places=2, null=True, blank=True, help_text="metres")
    bmi = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    recorded_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Vitals {self.id} visit={self.visit_id}"


class Appointment(models.Model):
    TYPE_CONSULTATION = 'CONSULTATION'
    TYPE_FOLLOW_UP = 'FOLLOW_UP'
    TYPE_CHOICES = [(TYPE_CONSULTATION, 'Consultation'), (TYPE_FOLLOW_UP, 'Follow-up')]

    STATUS_SCHEDULED = 'SCHEDULED'
    STATUS_IN_PROGRESS = 'IN_PROGRESS'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_SCHEDULED, 'Scheduled'),
        (STATUS_IN_PROGRESS, 'In progress'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='appointments')
    appointment_date = models.DateField()
    appointment_time = models.CharField(max_length=8, blank=True)
    type = models.CharField(max_length=16, choices=TYPE_CHOICES, default=TYPE_CONSULTATION)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_SCHEDULED)
    notes = models.TextField(blank=True)
    visit = models.ForeignKey(Visit, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments')
    created_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Appointment {self.id} {self.appointment_date} ({self.status})"


# ---------------------------------------------------------------------------
# Billing ledger
# ---------------------------------------------------------------------------

class Billing(models.Model):
    TYPE_CONSULTATION = 'CONSULTATION'
    TYPE_DIAGNOSTICS = 'DIAGNOSTICS'
    TYPE_PHARMACY = 'PHARMACY'
    TYPE_EMERGENCY = 'EMERGENCY'
    TYPE_REGULAR = 'REGULAR'
    TYPE_CHOICES = [
        (TYPE_CONSULTATION, 'Consultation'),
        (TYPE_DIAGNOSTICS, 'Diagnostics'),
        (TYPE_PHARMACY, 'Pharmacy'),
        (TYPE_EMERGENCY, 'Emergency'),
        (TYPE_REGULAR, 'Regular'),
    ]

    PENDING = 'PENDING'
    PARTIALLY_PAID = 'PARTIALLY_PAID'
    PAID = 'PAID'
    PENDING_INSURANCE = 'PENDING_INSURANCE'
    EMERGENCY_PENDING = 'EMERGENCY_PENDING'
    INSURANCE_CLAIMED = 'INSURANCE_CLAIMED'
    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (PARTIALLY_PAID, 'Partially paid'),
        (PAID, 'Paid'),
        (PENDING_INSURANCE, 'Pending insurance'),
        (EMERGENCY_PENDING, 'Emergency pending'),
        (INSURANCE_CLAIMED, 'Insurance claimed'),
    ]
    DEFERRED_STATUSES = (PENDING_INSURANCE, EMERGENCY_PENDING, INSURANCE_CLAIMED)

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='billings')
    visit = models.ForeignKey(Visit, null=True, blank=True, on_delete=models.PROTECT, related_name='billings')
    billing_type = models.CharField(max_length=16, choices=TYPE_CHOICES, default=TYPE_REGULAR)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING, db_index=True)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    insurance_ref = models.CharField(max_length=64, blank=True)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['visit', 'billing_type', 'status'], name='billing_visit_type_st_idx'),
        ]

    def __str__(self) -> str:
        return f"Billing {self.id} {self.billing_type} {self.total_amount} ({self.status})"

    def items_total(self) -> Decimal:
        return self.items.aggregate(s=Sum('total_price'))['s'] or Decimal('0.00')

    def amount_paid(self) -> Decimal:
        return self.payments.aggregate(s=Sum('amount'))['s'] or Decimal('0.00')

    def remaining_balance(self) -> Decimal:
        return self.total_amount - self.amount_paid()


class BillingItem(models.Model):
    billing = models.ForeignKey(Billing, on_delete=models.CASCADE, related_name='items')
    service = models.ForeignKey(Service, null=True, blank=True, on_delete=models.PROTECT, related_name='+')
    description = models.CharField(max_length=255, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.description or self.service_id} x{self.quantity} = {self.total_price}"


class Payment(models.Model):
    METHOD_CASH = 'CASH'
    METHOD_BANK = 'BANK'
    METHOD_INSURANCE = 'INSURANCE'
    METHOD_CHARITY = 'CHARITY'
    METHOD_CHOICES = [
        (METHOD_CASH, 'Cash'),
        (METHOD_BANK, 'Bank'),
        (METHOD_INSURANCE, 'Insurance'),
        (METHOD_CHARITY, 'Charity'),
    ]
    billing = models.ForeignKey(Billing, on_delete=models.PROTECT, related_name='payments')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    method = models.CharField(max_length=16, choices=METHOD_CHOICES, default=METHOD_CASH)
    bank_name = models.CharField(max_length=128, blank=True)
    trans_number = models.CharField(max_length=64, blank=True)
    insurance_ref = models.CharField(max_length=64, blank=True)
    notes = models.TextField(blank=True)
    received_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Payment {self.id} {self.amount} -> billing {self.billing_id}"


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class OrderStatus(models.TextChoices):
    UNPAID = 'UNPAID', 'Unpaid'
    PAID = 'PAID', 'Paid'
    QUEUED = 'QUEUED', 'Queued'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'


class DiagnosticOrder(models.Model):
    """A single lab or radiology investigation ordered against a visit."""
    KIND_LAB = 'LAB'
    KIND_RADIOLOGY = 'RADIOLOGY'
    KIND_CHOICES = [(KIND_LAB, 'Lab'), (KIND_RADIOLOGY, 'Radiology')]

    visit = models.ForeignKey(Visit, on_delete=models.PROTECT, related_name='diagnostic_orders')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='diagnostic_orders')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='diagnostic_orders')
    kind = models.CharField(max_length=16, choices=KIND_CHOICES)
    investigation_type = models.ForeignKey(InvestigationType, on_delete=models.PROTECT, related_name='+')
    billing = models.ForeignKey(Billing, null=True, on_delete=models.PROTECT, related_name='diagnostic_orders')
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.UNPAID, db_index=True)
    instructions = models.TextField(blank=True)
    result = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.kind} order {self.id} visit={self.visit_id} ({self.status})"


class BatchOrder(models.Model):
    """Several diagnostic services ordered together, each resulted separately."""
    TYPE_LAB = 'LAB'
    TYPE_RADIOLOGY = 'RADIOLOGY'
    TYPE_MIXED = 'MIXED'
    TYPE_CHOICES = [(TYPE_LAB, 'Lab'), (TYPE_RADIOLOGY, 'Radiology'), (TYPE_MIXED, 'Mixed')]

    visit = models.ForeignKey(Visit, on_delete=models.PROTECT, related_name='batch_orders')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='batch_orders')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='batch_orders')
    type = models.CharField(max_length=16, choices=TYPE_CHOICES)
    billing = models.ForeignKey(Billing, null=True, on_delete=models.PROTECT, related_name='batch_orders')
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.UNPAID, db_index=True)
    instructions = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Batch {self.id} {self.type} visit={self.visit_id} ({self.status})"


class BatchOrderService(models.Model):
    batch_order = models.ForeignKey(BatchOrder, on_delete=models.CASCADE, related_name='services')
    service = models.ForeignKey(Service, on_delete=models.PROTECT, related_name='+')
    investigation_type = models.ForeignKey(
        InvestigationType, null=True, blank=True, on_delete=models.PROTECT, related_name='+'
    )
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.UNPAID)
    instructions = models.TextField(blank=True)
    result = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"BatchService {self.id} of batch {self.batch_order_id} ({self.status})"

    @property
    def category(self) -> str:
        if self.investigation_type_id:
            return self.investigation_type.category
        return self.service.category


class MedicationOrder(models.Model):
    visit = models.ForeignKey(Visit, on_delete=models.PROTECT, related_name='medication_orders')
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='medication_orders')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='medication_orders')
    catalog = models.ForeignKey(MedicationCatalog, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    name = models.CharField(max_length=255)
    strength = models.CharField(max_length=64, blank=True)
    dosage_form = models.CharField(max_length=64, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    frequency = models.CharField(max_length=64, blank=True)
    duration = models.CharField(max_length=64, blank=True)
    instructions = models.TextField(blank=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    billing = models.ForeignKey(Billing, null=True, on_delete=models.PROTECT, related_name='medication_orders')
    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.UNPAID, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Medication {self.name} x{self.quantity} visit={self.visit_id} ({self.status})"


# ---------------------------------------------------------------------------
# Completion & audit sinks
# ---------------------------------------------------------------------------

class MedicalHistory(models.Model):
    patient = models.ForeignKey(Patient, on_delete=models.CASCADE, related_name='medical_history')
    visit = models.OneToOneField(Visit, on_delete=models.PROTECT, related_name='history')
    doctor = models.ForeignKey(User, null=True, on_delete=models.SET_NULL, related_name='+')
    diagnosis = models.TextField()
    snapshot = models.JSONField(default=dict)
    appointment = models.ForeignKey(Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='+')
    completed_at = models.DateTimeField()

    def __str__(self) -> str:
        return f"History visit={self.visit_id} patient={self.patient_id}"


class AuditEvent(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_created_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_created_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.action}:{self.object_type}#{self.object_id}"
