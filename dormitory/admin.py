from django.contrib import admin

from .models import ActivityLog, AdminProfile, Building, Contract, Invoice, MaintenanceRequest, Room, Student


@admin.register(AdminProfile)
class AdminProfileAdmin(admin.ModelAdmin):
    list_display = ("id", "staff_code", "full_name", "user", "role", "department")
    list_filter = ("role",)
    search_fields = ("staff_code", "full_name", "user__username", "user__email")

@admin.register(Student)
class StudentAdmin(admin.ModelAdmin):
    list_display = ("id", "student_code", "full_name", "gender", "email", "status", "created_at")
    list_filter = ("status", "gender", "faculty")
    search_fields = ("student_code", "full_name", "email", "phone")
    readonly_fields = ("status",)

@admin.register(Building)
class BuildingAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "total_floors", "status")
    list_filter = ("status",)
    search_fields = ("name",)

@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("id", "building", "room_number", "room_type", "capacity", "current_occupancy", "status")
    list_filter = ("building", "status", "room_type")
    search_fields = ("room_number", "building__name")
    # derived from contracts; edit through the API so occupancy stays consistent
    readonly_fields = ("current_occupancy", "status")

@admin.register(Contract)
class ContractAdmin(admin.ModelAdmin):
    list_display = ("id", "contract_number", "student", "room", "start_date", "end_date", "status")
    list_filter = ("status",)
    search_fields = ("contract_number", "student__full_name", "student__student_code")
    readonly_fields = ("contract_number", "student", "room", "status", "terminated_at", "created_by")

@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ("id", "invoice_number", "room", "invoice_month", "due_date", "total_amount", "payment_status")
    list_filter = ("payment_status", "invoice_month")
    search_fields = ("invoice_number", "room__room_number")
    readonly_fields = ("payment_status", "payment_date", "payment_submitted_at")

@admin.register(MaintenanceRequest)
class MaintenanceRequestAdmin(admin.ModelAdmin):
    list_display = ("request_number", "room", "student", "request_type", "priority", "status", "created_at")
    list_filter = ("status", "priority")
    search_fields = ("request_number", "description", "room__room_number")

@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("created_at", "user", "action", "entity_type", "entity_id")
    list_filter = ("entity_type", "action")
    search_fields = ("description", "user__username")

    def has_add_permission(self, request): return False
    def has_change_permission(self, request, obj=None): return False
    def has_delete_permission(self, request, obj=None): return False
