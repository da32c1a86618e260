from django.contrib.auth import get_user_model, password_validation
from rest_framework import serializers

from .models import (
    ActivityLog, AdminProfile, Building, Contract, Invoice, MaintenanceRequest, Room, Student,
)
from .states import (
    AdminRole, ContractStatus, Gender, InvoiceStatus, MaintenancePriority, MaintenanceStatus, StudentStatus,
)

User = get_user_model()


# --- Users & profiles ---

class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ["id", "username", "email", "is_active", "is_staff", "last_login", "date_joined"]


class AdminProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = AdminProfile
        fields = ["id", "staff_code", "full_name", "phone", "role", "department"]
        read_only_fields = ["id", "staff_code", "role"]


class AdminAccountSerializer(AdminProfileSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    email = serializers.EmailField(source="user.email", read_only=True)
    is_active = serializers.BooleanField(source="user.is_active", read_only=True)

    class Meta(AdminProfileSerializer.Meta):
        fields = AdminProfileSerializer.Meta.fields + ["username", "email", "is_active", "created_at"]
        read_only_fields = fields


class AdminCreateSerializer(serializers.Serializer):
    email = serializers.EmailField(max_length=100)
    password = serializers.CharField(write_only=True, min_length=6)
    staff_code = serializers.CharField(max_length=20)
    full_name = serializers.CharField(max_length=100)
    role = serializers.ChoiceField(choices=AdminRole.choices)
    phone = serializers.CharField(max_length=15, required=False, allow_blank=True)
    department = serializers.CharField(max_length=100, required=False, allow_blank=True)


class StudentSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True)
    status_display = serializers.CharField(source="get_status_display", read_only=True)

    class Meta:
        model = Student
        fields = [
            "id", "user", "username", "student_code", "full_name", "gender", "birth_date", "phone", "email",
            "address", "faculty", "major", "class_name", "emergency_contact_name", "emergency_contact_phone",
            "emergency_contact_relationship", "status", "status_display", "created_at", "updated_at",
        ]
        read_only_fields = ["id", "user", "username", "student_code", "email", "status", "created_at", "updated_at"]


class StudentRegisterSerializer(serializers.Serializer):
    """Payload of the public registration form."""
    email = serializers.EmailField(max_length=100)
    password = serializers.CharField(write_only=True, required=False, allow_blank=True, min_length=6)
    student_code = serializers.CharField(max_length=20)
    full_name = serializers.CharField(max_length=100)
    gender = serializers.ChoiceField(choices=Gender.choices)
    birth_date = serializers.DateField(required=False, allow_null=True)
    phone = serializers.CharField(max_length=15, required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    faculty = serializers.CharField(max_length=100, required=False, allow_blank=True)
    major = serializers.CharField(max_length=100, required=False, allow_blank=True)
    class_name = serializers.CharField(max_length=50, required=False, allow_blank=True)
    emergency_contact_name = serializers.CharField(max_length=100, required=False, allow_blank=True)
    emergency_contact_phone = serializers.CharField(max_length=15, required=False, allow_blank=True)
    emergency_contact_relationship = serializers.CharField(max_length=50, required=False, allow_blank=True)


class StatusSerializer(serializers.Serializer):
    status = serializers.CharField()


class StudentStatusSerializer(StatusSerializer):
    status = serializers.ChoiceField(choices=StudentStatus.choices)


class MeSerializer(UserSerializer):
    """Current user plus whichever profile it has."""
    admin_profile = AdminProfileSerializer(read_only=True)
    student = StudentSerializer(read_only=True)
    role = serializers.SerializerMethodField()

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ["role", "admin_profile", "student"]

    def get_role(self, obj):
        if hasattr(obj, "admin_profile"):
            return obj.admin_profile.role
        if hasattr(obj, "student"):
            return "student"
        return "admin" if obj.is_staff or obj.is_superuser else None


# --- Auth payloads ---

class LoginSerializer(serializers.Serializer):
    email = serializers.CharField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)


class RefreshTokenSerializer(serializers.Serializer):
    refresh = serializers.CharField()


class ChangePasswordSerializer(serializers.Serializer):
    old_password = serializers.CharField(write_only=True, trim_whitespace=False)
    new_password = serializers.CharField(write_only=True, trim_whitespace=False)

    def validate_old_password(self, value):
        if not self.context["request"].user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate_new_password(self, value):
        password_validation.validate_password(value, self.context["request"].user)
        return value


class PasswordResetRequestSerializer(serializers.Serializer):
    email = serializers.EmailField()


class PasswordResetConfirmSerializer(serializers.Serializer):
    uid = serializers.CharField()
    token = serializers.CharField()
    new_password = serializers.CharField(write_only=True, trim_whitespace=False)


# --- Inventory ---

class BuildingSerializer(serializers.ModelSerializer):
    room_count = serializers.IntegerField(source="rooms.count", read_only=True)

    class Meta:
        model = Building
        fields = ["id", "name", "total_floors", "description", "status", "room_count", "created_at"]
        read_only_fields = ["id", "created_at"]


class RoomSerializer(serializers.ModelSerializer):
    building_name = serializers.CharField(source="building.name", read_only=True)
    available_beds = serializers.SerializerMethodField()

    class Meta:
        model = Room
        fields = [
            "id", "building", "building_name", "room_number", "floor_number", "room_type", "capacity",
            "current_occupancy", "available_beds", "price_per_month", "description", "status", "created_at",
        ]
        # occupancy and status are derived; see services.occupancy
        read_only_fields = ["id", "current_occupancy", "status", "created_at"]

    def get_available_beds(self, obj):
        return max(obj.capacity - obj.current_occupancy, 0)

    def validate(self, attrs):
        building = attrs.get("building", getattr(self.instance, "building", None))
        floor = attrs.get("floor_number", getattr(self.instance, "floor_number", None))
        if building and floor and floor > building.total_floors:
            raise serializers.ValidationError(
                {"floor_number": [f"{building.name} only has {building.total_floors} floor(s)."]}
            )
        number = attrs.get("room_number", getattr(self.instance, "room_number", None))
        clash = Room.objects.filter(building=building, room_number=number)
        if self.instance is not None:
            clash = clash.exclude(pk=self.instance.pk)
        if building and number and clash.exists():
            raise serializers.ValidationError({"room_number": [f"{building.name} already has a room {number}."]})
        return attrs


class RoomStatusSerializer(StatusSerializer):
    """Any string passes; the room service refuses 'full' with its own message."""


class RemoveResidentSerializer(serializers.Serializer):
    student_id = serializers.IntegerField()


# --- Contracts & billing ---

class ContractSerializer(serializers.ModelSerializer):
    student_name = serializers.CharField(source="student.full_name", read_only=True)
    student_code = serializers.CharField(source="student.student_code", read_only=True)
    room_number = serializers.CharField(source="room.room_number", read_only=True)
    building_name = serializers.CharField(source="room.building.name", read_only=True)

    class Meta:
        model = Contract
        fields = [
            "id", "contract_number", "student", "student_name", "student_code", "room", "room_number",
            "building_name", "start_date", "end_date", "deposit_amount", "monthly_fee", "status",
            "terminated_at", "created_by", "created_at", "updated_at",
        ]
        read_only_fields = fields


class ContractCreateSerializer(serializers.Serializer):
    # plain ids: existence is checked, in order, by the contract service
    student_id = serializers.IntegerField()
    room_id = serializers.IntegerField()
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    deposit_amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    monthly_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)


class ContractUpdateSerializer(serializers.Serializer):
    room_id = serializers.IntegerField(required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    deposit_amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    monthly_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    status = serializers.ChoiceField(choices=ContractStatus.choices, required=False)


class InvoiceSerializer(serializers.ModelSerializer):
    room_number = serializers.CharField(source="room.room_number", read_only=True)
    building_name = serializers.CharField(source="room.building.name", read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "id", "invoice_number", "room", "room_number", "building_name", "invoice_month", "due_date",
            "electricity_units", "water_units", "room_fee", "electric_fee", "water_fee", "service_fee",
            "total_amount", "payment_status", "payment_date", "payment_method", "payment_submitted_at", "created_at",
        ]
        read_only_fields = fields


class InvoiceCreateSerializer(serializers.Serializer):
    room_id = serializers.IntegerField()
    invoice_month = serializers.CharField(help_text="YYYY-MM or any date inside the month")
    electricity_units = serializers.IntegerField(min_value=0, default=0)
    water_units = serializers.IntegerField(min_value=0, default=0)
    service_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)


class InvoiceUpdateSerializer(serializers.Serializer):
    electricity_units = serializers.IntegerField(min_value=0, required=False)
    water_units = serializers.IntegerField(min_value=0, required=False)
    service_fee = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    due_date = serializers.DateField(required=False)
    payment_method = serializers.CharField(max_length=50, required=False, allow_blank=True)


class InvoiceStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=InvoiceStatus.choices)
    payment_method = serializers.CharField(max_length=50, required=False, allow_blank=True)


class InvoicePaymentSerializer(serializers.Serializer):
    payment_method = serializers.CharField(max_length=50)


class InvoiceStatsQuerySerializer(serializers.Serializer):
    month = serializers.CharField(required=False, help_text="YYYY-MM")


# --- Maintenance ---

class MaintenanceRequestSerializer(serializers.ModelSerializer):
    room_number = serializers.CharField(source="room.room_number", read_only=True)
    student_name = serializers.CharField(source="student.full_name", read_only=True, default=None)
    assigned_to_name = serializers.CharField(source="assigned_to.full_name", read_only=True, default=None)
    status_display = serializers.CharField(source="get_status_display", read_only=True)
    priority_display = serializers.CharField(source="get_priority_display", read_only=True)

    class Meta:
        model = MaintenanceRequest
        fields = [
            "id", "request_number", "room", "room_number", "student", "student_name", "request_type",
            "description", "priority", "priority_display", "status", "status_display", "assigned_to",
            "assigned_to_name", "resolution_note", "cost", "resolved_at", "created_at",
        ]
        read_only_fields = fields


class MaintenanceCreateSerializer(serializers.Serializer):
    room_id = serializers.IntegerField(required=False, allow_null=True)
    request_type = serializers.CharField(max_length=50)
    description = serializers.CharField()
    priority = serializers.ChoiceField(choices=MaintenancePriority.choices, default=MaintenancePriority.NORMAL)


class MaintenanceUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=MaintenanceStatus.choices, required=False)
    priority = serializers.ChoiceField(choices=MaintenancePriority.choices, required=False)
    resolution_note = serializers.CharField(required=False, allow_blank=True)
    cost = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    assigned_to_id = serializers.IntegerField(required=False)


# --- Audit ---

class ActivityLogSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source="user.username", read_only=True, default=None)

    class Meta:
        model = ActivityLog
        fields = [
            "id", "user", "username", "action", "entity_type", "entity_id", "description",
            "ip_address", "user_agent", "created_at",
        ]
        read_only_fields = fields


class RunStatusUpdatesSerializer(serializers.Serializer):
    date = serializers.DateField(required=False, allow_null=True, help_text="Defaults to today")


class YearQuerySerializer(serializers.Serializer):
    year = serializers.IntegerField(required=False, min_value=2000, max_value=2100, help_text="Defaults to this year")
