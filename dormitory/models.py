from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Q

from .states import (
    AdminRole, BuildingStatus, ContractStatus, Gender, InvoiceStatus, MaintenancePriority,
    MaintenanceStatus, RoomStatus, RoomType, StudentStatus,
)

User = settings.AUTH_USER_MODEL


# --- PEOPLE ---

class AdminProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="admin_profile")
    staff_code = models.CharField(max_length=20, unique=True)
    full_name = models.CharField(max_length=100)
    phone = models.CharField(max_length=15, blank=True)
    role = models.CharField(max_length=20, choices=AdminRole.choices, default=AdminRole.STAFF)
    department = models.CharField(max_length=100, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    def __str__(self): return f"{self.full_name} ({self.staff_code})"


class Student(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name="student")
    student_code = models.CharField(max_length=20, unique=True)
    full_name = models.CharField(max_length=100)
    gender = models.CharField(max_length=10, choices=Gender.choices)
    birth_date = models.DateField(null=True, blank=True)
    phone = models.CharField(max_length=15, blank=True)
    email = models.EmailField(max_length=100)
    address = models.TextField(blank=True)
    faculty = models.CharField(max_length=100, blank=True)
    major = models.CharField(max_length=100, blank=True)
    class_name = models.CharField(max_length=50, blank=True)
    emergency_contact_name = models.CharField(max_length=100, blank=True)
    emergency_contact_phone = models.CharField(max_length=15, blank=True)
    emergency_contact_relationship = models.CharField(max_length=50, blank=True)
    status = models.CharField(max_length=10, choices=StudentStatus.choices, default=StudentStatus.PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
    def __str__(self): return f"{self.full_name} ({self.student_code})"


# --- INVENTORY ---

class Building(models.Model):
    name = models.CharField(max_length=100, unique=True)
    total_floors = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    description = models.TextField(blank=True)
    status = models.CharField(max_length=12, choices=BuildingStatus.choices, default=BuildingStatus.ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]
    def __str__(self): return self.name


class Room(models.Model):
    building = models.ForeignKey(Building, on_delete=models.CASCADE, related_name="rooms")
    room_number = models.CharField(max_length=20)
    floor_number = models.PositiveIntegerField(default=1)
    room_type = models.CharField(max_length=10, choices=RoomType.choices, default=RoomType.MIXED)
    capacity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    # Cached count of active contracts; only services.occupancy writes it.
    current_occupancy = models.PositiveIntegerField(default=0)
    price_per_month = models.DecimalField(max_digits=10, decimal_places=2)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=12, choices=RoomStatus.choices, default=RoomStatus.AVAILABLE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["building_id", "room_number"]
        constraints = [
            models.UniqueConstraint(fields=["building", "room_number"], name="unique_room_per_building"),
            models.CheckConstraint(condition=Q(capacity__gt=0), name="room_capacity_positive"),
        ]
    def __str__(self): return f"{self.building} - {self.room_number}"


# --- CONTRACTS & BILLING ---

class Contract(models.Model):
    contract_number = models.CharField(max_length=50, unique=True)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name="contracts")
    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="contracts")
    start_date = models.DateField()
    end_date = models.DateField()
    deposit_amount = models.DecimalField(max_digits=10, decimal_places=2)
    monthly_fee = models.DecimalField(max_digits=10, decimal_places=2)
    status = models.CharField(max_length=12, choices=ContractStatus.choices, default=ContractStatus.ACTIVE)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    terminated_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["room", "status"], name="contract_room_status_idx"),
            models.Index(fields=["status", "end_date"], name="contract_status_end_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["student"],
                condition=Q(status="active"),
                name="one_active_contract_per_student",
            ),
        ]
    def __str__(self): return self.contract_number


class Invoice(models.Model):
    invoice_number = models.CharField(max_length=50, unique=True)
    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="invoices")
    invoice_month = models.DateField(help_text="First day of the billed month")
    due_date = models.DateField()
    electricity_units = models.PositiveIntegerField(default=0)
    water_units = models.PositiveIntegerField(default=0)
    room_fee = models.DecimalField(max_digits=10, decimal_places=2)
    electric_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    water_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    service_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2)
    payment_status = models.CharField(max_length=10, choices=InvoiceStatus.choices, default=InvoiceStatus.PENDING)
    payment_date = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(max_length=50, blank=True)
    payment_submitted_at = models.DateTimeField(null=True, blank=True, help_text="When a student reported paying")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-invoice_month"]
        indexes = [models.Index(fields=["payment_status", "due_date"], name="invoice_status_due_idx")]
        constraints = [
            models.UniqueConstraint(fields=["room", "invoice_month"], name="one_invoice_per_room_month"),
        ]
    def __str__(self): return self.invoice_number


# --- MAINTENANCE ---

class MaintenanceRequest(models.Model):
    request_number = models.CharField(max_length=50, unique=True)
    room = models.ForeignKey(Room, on_delete=models.CASCADE, related_name="maintenance_requests")
    student = models.ForeignKey(
        Student, on_delete=models.CASCADE, null=True, blank=True, related_name="maintenance_requests"
    )
    request_type = models.CharField(max_length=50)
    description = models.TextField()
    priority = models.CharField(max_length=10, choices=MaintenancePriority.choices, default=MaintenancePriority.NORMAL)
    status = models.CharField(max_length=12, choices=MaintenanceStatus.choices, default=MaintenanceStatus.PENDING)
    assigned_to = models.ForeignKey(
        AdminProfile, on_delete=models.SET_NULL, null=True, blank=True, related_name="assigned_requests"
    )
    resolution_note = models.TextField(blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
    def __str__(self): return f"{self.request_number} ({self.get_status_display()})"


# --- AUDIT ---

class ActivityLog(models.Model):
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name="activity_logs")
    action = models.CharField(max_length=100)
    entity_type = models.CharField(max_length=50)
    entity_id = models.BigIntegerField(null=True, blank=True)
    description = models.TextField(blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [models.Index(fields=["entity_type", "entity_id"], name="activity_entity_idx")]
    def __str__(self): return f"{self.action} {self.entity_type}#{self.entity_id}"
