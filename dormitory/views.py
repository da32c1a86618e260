# dormitory/views.py

from django.conf import settings
from django.contrib.auth import authenticate, get_user_model, password_validation
from django.contrib.auth.models import update_last_login
from django.contrib.auth.tokens import default_token_generator
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken, OutstandingToken
from rest_framework_simplejwt.tokens import RefreshToken

from .models import ActivityLog, AdminProfile, Building, Contract, Invoice, MaintenanceRequest, Room, Student
from .permissions import IsAdmin, IsAdminOrReadOnly, IsOwnerOrAdmin, IsSuperAdmin, is_admin, student_of
from .serializers import (
    ActivityLogSerializer, AdminAccountSerializer, AdminCreateSerializer, AdminProfileSerializer,
    BuildingSerializer, ChangePasswordSerializer, ContractCreateSerializer, ContractSerializer,
    ContractUpdateSerializer, InvoiceCreateSerializer, InvoicePaymentSerializer, InvoiceSerializer,
    InvoiceStatsQuerySerializer, InvoiceStatusSerializer, InvoiceUpdateSerializer, LoginSerializer,
    MaintenanceCreateSerializer, MaintenanceRequestSerializer, MaintenanceUpdateSerializer, MeSerializer,
    PasswordResetConfirmSerializer, PasswordResetRequestSerializer, RefreshTokenSerializer,
    RemoveResidentSerializer, RoomSerializer, RoomStatusSerializer, StudentRegisterSerializer,
    RunStatusUpdatesSerializer, StudentSerializer, StudentStatusSerializer, YearQuerySerializer,
)
from .services import (
    activity, admins, contracts, expiration, invoices, maintenance, notifications, occupancy, reports, students,
)
from .states import (
    MAINTENANCE_TERMINAL, ContractStatus, InvoiceStatus, RoomStatus, StudentStatus, genders_compatible,
)

User = get_user_model()


def _ok(data=None, message="", status_code=status.HTTP_200_OK):
    return Response({"success": True, "message": message, "data": data}, status=status_code)


class StudentScopedMixin:
    """Admins see every row; a student only the rows reachable through ``student_lookup``."""
    student_lookup = "student"

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if is_admin(user):
            return qs
        student = student_of(user)
        if student is None:
            return qs.none()
        return qs.filter(**{self.student_lookup: student}).distinct()


# --- AUTH ---

class LoginView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    def post(self, request):
        ser = LoginSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        identifier = ser.validated_data["email"].strip()
        password = ser.validated_data["password"]
        user_lookup = {"email__iexact": identifier} if "@" in identifier else {"username__iexact": identifier}
        user_obj = User.objects.filter(**user_lookup).first()
        if user_obj and not user_obj.is_active and user_obj.check_password(password):
            return Response(
                {"success": False, "error": "InvalidState", "code": "account_inactive",
                 "message": "This account is not active. Wait for approval or contact the office."},
                status=status.HTTP_403_FORBIDDEN,
            )
        user = authenticate(request, username=user_obj.username, password=password) if user_obj else None
        if not user:
            return Response(
                {"success": False, "error": "AuthenticationFailed", "message": "Invalid credentials."},
                status=status.HTTP_401_UNAUTHORIZED,
            )
        refresh = RefreshToken.for_user(user)
        update_last_login(None, user)
        activity.record(user, "login", "user", user.pk, "Signed in", request)
        return _ok(
            {"access": str(refresh.access_token), "refresh": str(refresh), "user": MeSerializer(user).data},
            "Signed in.",
        )


class LogoutView(APIView):
    permission_classes = [permissions.IsAuthenticated]
    def post(self, request):
        ser = RefreshTokenSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        try:
            RefreshToken(ser.validated_data["refresh"]).blacklist()
        except TokenError as exc:
            raise ValidationError({"refresh": [str(exc)]})
        activity.record(request.user, "logout", "user", request.user.pk, "Signed out", request)
        return _ok(message="Signed out.")


class ChangePasswordView(APIView):
    permission_classes = [permissions.IsAuthenticated]
    def post(self, request):
        ser = ChangePasswordSerializer(data=request.data, context={"request": request})
        ser.is_valid(raise_exception=True)
        user = request.user
        with transaction.atomic():
            user.set_password(ser.validated_data["new_password"])
            user.save(update_fields=["password"])
            # every session signed in with the old password ends here
            for token in OutstandingToken.objects.filter(user=user):
                BlacklistedToken.objects.get_or_create(token=token)
            activity.record(user, "change_password", "user", user.pk, "Changed password", request)
        return _ok(message="Password changed. Sign in again.")


class PasswordResetRequestView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    def post(self, request):
        ser = PasswordResetRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        user = User.objects.filter(email__iexact=ser.validated_data["email"], is_active=True).first()
        if user:
            uid = urlsafe_base64_encode(force_bytes(user.pk))
            token = default_token_generator.make_token(user)
            name = getattr(getattr(user, "student", None), "full_name", "") or user.get_username()
            notifications.send_template(
                {"email": user.email, "name": name},
                "Reset your dormitory account password",
                "password_reset",
                {"reset_url": f"{settings.PASSWORD_RESET_URL}?uid={uid}&token={token}"},
            )
            activity.record(user, "password_reset_request", "user", user.pk, "Requested a password reset", request)
        # same answer whether or not the address is known
        return _ok(message="If the address is registered, a reset link has been sent.")


class PasswordResetConfirmView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    def post(self, request):
        ser = PasswordResetConfirmSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        try:
            user = User.objects.get(pk=force_str(urlsafe_base64_decode(data["uid"])))
        except (TypeError, ValueError, OverflowError, User.DoesNotExist):
            user = None
        if user is None or not default_token_generator.check_token(user, data["token"]):
            raise ValidationError({"token": ["Invalid or expired reset link."]})
        try:
            password_validation.validate_password(data["new_password"], user)
        except DjangoValidationError as exc:
            raise ValidationError({"new_password": list(exc.messages)})
        user.set_password(data["new_password"])
        user.save(update_fields=["password"])
        activity.record(user, "password_reset", "user", user.pk, "Reset password by email", request)
        return _ok(message="Password has been reset.")


class MeViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]
    def list(self, request):
        return _ok(MeSerializer(request.user).data)
    @action(detail=False, methods=["patch"], url_path="profile")
    def update_profile(self, request):
        student = student_of(request.user)
        if student is not None:
            ser = StudentSerializer(student, data=request.data, partial=True)
        elif hasattr(request.user, "admin_profile"):
            ser = AdminProfileSerializer(request.user.admin_profile, data=request.data, partial=True)
        else:
            raise ValidationError({"detail": "This account has no profile to edit."})
        ser.is_valid(raise_exception=True)
        if student is not None:
            students.update_student(student.pk, request.user, request, **ser.validated_data)
            student.refresh_from_db()
        else:
            ser.save()
        activity.record(request.user, "update_profile", "user", request.user.pk, "Edited own profile", request)
        return _ok(MeSerializer(request.user).data, "Profile updated.")


class AdminAccountViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = AdminProfile.objects.select_related("user").order_by("staff_code")
    serializer_class = AdminAccountSerializer
    lookup_value_regex = r"\d+"
    filterset_fields = ["role", "department"]
    search_fields = ["full_name", "staff_code", "user__email"]

    def get_permissions(self):
        return [IsSuperAdmin()] if self.action == "create" else [IsAdmin()]

    def create(self, request):
        ser = AdminCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        profile = admins.create_admin(actor=request.user, request=request, **ser.validated_data)
        return _ok(AdminAccountSerializer(profile).data, "Admin account created.", status.HTTP_201_CREATED)


# --- STUDENTS ---

class StudentViewSet(viewsets.ModelViewSet):
    queryset = Student.objects.select_related("user").all()
    serializer_class = StudentSerializer
    lookup_value_regex = r"\d+"
    http_method_names = ["get", "post", "put", "patch", "head", "options"]
    filterset_fields = ["status", "gender", "faculty"]
    search_fields = ["full_name", "student_code", "email", "phone"]
    ordering_fields = ["full_name", "student_code", "created_at"]

    def get_permissions(self):
        if self.action == "register":
            return [permissions.AllowAny()]
        if self.action in ("retrieve", "update", "partial_update"):
            return [permissions.IsAuthenticated(), IsOwnerOrAdmin()]
        return [IsAdmin()]

    def get_queryset(self):
        qs = super().get_queryset()
        if is_admin(self.request.user):
            return qs
        student = student_of(self.request.user)
        return qs.filter(pk=student.pk) if student else qs.none()

    def _register(self, request):
        ser = StudentRegisterSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        student = students.register_student(request=request, **ser.validated_data)
        return _ok(StudentSerializer(student).data, "Registration received; awaiting approval.", status.HTTP_201_CREATED)

    def create(self, request, *args, **kwargs):
        return self._register(request)

    @action(detail=False, methods=["post"], authentication_classes=[])
    def register(self, request):
        return self._register(request)

    def perform_update(self, serializer):
        serializer.instance = students.update_student(
            serializer.instance.pk, self.request.user, self.request, **serializer.validated_data
        )

    @action(detail=True, methods=["post"])
    def approve(self, request, pk=None):
        student = students.activate_student(pk, request.user, request)
        return _ok(StudentSerializer(student).data, "Student approved.")

    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        student = students.reject_student(pk, request.user, request)
        return _ok(StudentSerializer(student).data, "Registration rejected.")

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        ser = StudentStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        student = students.set_student_status(pk, ser.validated_data["status"], request.user, request)
        return _ok(StudentSerializer(student).data, "Student status updated.")


# --- INVENTORY ---

class BuildingViewSet(viewsets.ModelViewSet):
    queryset = Building.objects.prefetch_related("rooms").all()
    serializer_class = BuildingSerializer
    lookup_value_regex = r"\d+"
    permission_classes = [IsAdminOrReadOnly]
    filterset_fields = ["status"]
    search_fields = ["name"]

    def perform_create(self, serializer):
        building = serializer.save()
        activity.record(self.request.user, "create", "building", building.pk, f"Created building {building.name}", self.request)

    def perform_update(self, serializer):
        building = serializer.save()
        activity.record(self.request.user, "update", "building", building.pk, f"Updated building {building.name}", self.request)

    def destroy(self, request, *args, **kwargs):
        occupancy.delete_building(kwargs["pk"], request.user, request)
        return _ok(message="Building deleted.")


class RoomViewSet(viewsets.ModelViewSet):
    queryset = Room.objects.select_related("building").all()
    serializer_class = RoomSerializer
    lookup_value_regex = r"\d+"
    permission_classes = [IsAdminOrReadOnly]
    filterset_fields = ["building", "status", "room_type", "floor_number"]
    search_fields = ["room_number", "building__name"]
    ordering_fields = ["room_number", "price_per_month", "current_occupancy", "capacity"]

    def get_permissions(self):
        if self.action in ("set_status", "remove_resident", "recompute"):
            return [IsAdmin()]
        return super().get_permissions()

    def perform_create(self, serializer):
        room = serializer.save()
        activity.record(self.request.user, "create", "room", room.pk, f"Created room {room}", self.request)

    def update(self, request, *args, **kwargs):
        room = self.get_object()
        ser = self.get_serializer(room, data=request.data, partial=kwargs.pop("partial", False))
        ser.is_valid(raise_exception=True)
        room = occupancy.update_room(room.pk, request.user, request, **ser.validated_data)
        return _ok(RoomSerializer(room).data, "Room updated.")

    def destroy(self, request, *args, **kwargs):
        occupancy.delete_room(kwargs["pk"], request.user, request)
        return _ok(message="Room deleted.")

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        ser = RoomStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        room = occupancy.set_room_status(pk, ser.validated_data["status"], request.user, request)
        return _ok(RoomSerializer(room).data, "Room status updated.")

    @action(detail=True, methods=["post"], url_path="remove-resident")
    def remove_resident(self, request, pk=None):
        ser = RemoveResidentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        contract = contracts.remove_resident(pk, ser.validated_data["student_id"], request.user, request)
        return _ok(ContractSerializer(contract).data, "Resident removed; contract terminated.")

    @action(detail=True, methods=["post"])
    def recompute(self, request, pk=None):
        with transaction.atomic():
            room = occupancy.recompute_occupancy(occupancy.lock_room(pk))
        return _ok(RoomSerializer(room).data, "Occupancy recomputed.")

    @action(detail=True, methods=["get"])
    def residents(self, request, pk=None):
        room = self.get_object()
        active = room.contracts.filter(status=ContractStatus.ACTIVE).select_related("student", "room__building")
        return _ok(ContractSerializer(active, many=True).data)

    @action(detail=False, methods=["get"])
    def available(self, request):
        """Rooms with a free bed, optionally only those open to ``?gender=``."""
        rooms = self.filter_queryset(self.get_queryset()).filter(status=RoomStatus.AVAILABLE)
        gender = request.query_params.get("gender")
        if gender:
            rooms = [room for room in rooms if genders_compatible(room.room_type, gender)]
        return _ok(RoomSerializer(rooms, many=True).data)


# --- CONTRACTS & BILLING ---

class ContractViewSet(StudentScopedMixin, viewsets.ModelViewSet):
    queryset = Contract.objects.select_related("student", "room__building").all()
    serializer_class = ContractSerializer
    lookup_value_regex = r"\d+"
    filterset_fields = ["status", "room", "student"]
    search_fields = ["contract_number", "student__full_name", "student__student_code", "room__room_number"]
    ordering_fields = ["start_date", "end_date", "created_at"]

    def get_permissions(self):
        return [permissions.IsAuthenticated()] if self.action in ("list", "retrieve") else [IsAdmin()]

    def create(self, request, *args, **kwargs):
        ser = ContractCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        contract = contracts.create_contract(actor=request.user, request=request, **ser.validated_data)
        return _ok(ContractSerializer(contract).data, "Contract created.", status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        ser = ContractUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        contract = contracts.update_contract(kwargs["pk"], actor=request.user, request=request, **ser.validated_data)
        return _ok(ContractSerializer(contract).data, "Contract updated.")

    def destroy(self, request, *args, **kwargs):
        contracts.delete_contract(kwargs["pk"], request.user, request)
        return _ok(message="Contract deleted.")


class InvoiceViewSet(viewsets.ModelViewSet):
    queryset = Invoice.objects.select_related("room__building").all()
    serializer_class = InvoiceSerializer
    lookup_value_regex = r"\d+"
    filterset_fields = ["payment_status", "room", "invoice_month"]
    search_fields = ["invoice_number", "room__room_number"]
    ordering_fields = ["invoice_month", "due_date", "total_amount"]

    def get_permissions(self):
        if self.action in ("list", "retrieve", "payment"):
            return [permissions.IsAuthenticated()]
        return [IsAdmin()]

    def get_queryset(self):
        qs = super().get_queryset()
        if is_admin(self.request.user):
            return qs
        student = student_of(self.request.user)
        return invoices.visible_to_student(qs, student) if student else qs.none()

    def create(self, request, *args, **kwargs):
        ser = InvoiceCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        invoice = invoices.create_invoice(actor=request.user, request=request, **ser.validated_data)
        return _ok(InvoiceSerializer(invoice).data, "Invoice created.", status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        ser = InvoiceUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        invoice = invoices.update_invoice(kwargs["pk"], actor=request.user, request=request, **ser.validated_data)
        return _ok(InvoiceSerializer(invoice).data, "Invoice updated.")

    def destroy(self, request, *args, **kwargs):
        invoices.delete_invoice(kwargs["pk"], request.user, request)
        return _ok(message="Invoice deleted.")

    @action(detail=True, methods=["post"], url_path="status")
    def set_status(self, request, pk=None):
        ser = InvoiceStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        invoice = invoices.update_invoice_status(
            pk, ser.validated_data["status"], ser.validated_data.get("payment_method"), request.user, request,
        )
        return _ok(InvoiceSerializer(invoice).data, "Invoice status updated.")

    @action(detail=True, methods=["post"])
    def payment(self, request, pk=None):
        """A student reports paying; an admin confirms through ``status``."""
        student = student_of(request.user)
        if student is None:
            raise ValidationError({"detail": "Only students submit payments."})
        ser = InvoicePaymentSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        invoice = invoices.submit_payment(pk, student, ser.validated_data["payment_method"], request.user, request)
        return _ok(InvoiceSerializer(invoice).data, "Payment submitted; awaiting confirmation.")

    @action(detail=False, methods=["get"])
    def stats(self, request):
        ser = InvoiceStatsQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        return _ok(reports.invoice_stats(ser.validated_data.get("month")))


# --- MAINTENANCE ---

class MaintenanceRequestViewSet(StudentScopedMixin, viewsets.ModelViewSet):
    queryset = MaintenanceRequest.objects.select_related("room", "student", "assigned_to").all()
    serializer_class = MaintenanceRequestSerializer
    lookup_value_regex = r"\d+"
    filterset_fields = ["status", "priority", "room"]
    search_fields = ["request_number", "request_type", "description", "room__room_number"]

    def get_permissions(self):
        if self.action in ("list", "retrieve", "create", "cancel"):
            return [permissions.IsAuthenticated()]
        return [IsAdmin()]

    def create(self, request, *args, **kwargs):
        ser = MaintenanceCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        student = None if is_admin(request.user) else student_of(request.user)
        if student is None and not is_admin(request.user):
            raise ValidationError({"detail": "Only students and staff can file maintenance requests."})
        if student is not None:
            # students file for the room they live in
            data["room_id"] = None
        item = maintenance.create_request(student=student, actor=request.user, request=request, **data)
        return _ok(MaintenanceRequestSerializer(item).data, "Maintenance request filed.", status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        ser = MaintenanceUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        item = maintenance.update_request(kwargs["pk"], actor=request.user, request=request, **ser.validated_data)
        return _ok(MaintenanceRequestSerializer(item).data, "Maintenance request updated.")

    def destroy(self, request, *args, **kwargs):
        maintenance.delete_request(kwargs["pk"], request.user, request)
        return _ok(message="Maintenance request deleted.")

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        student = student_of(request.user)
        if student is None:
            raise ValidationError({"detail": "Only the student who filed a request can cancel it."})
        item = maintenance.cancel_request(pk, student, request.user, request)
        return _ok(MaintenanceRequestSerializer(item).data, "Maintenance request canceled.")


# --- AUDIT & REPORTS ---

class ActivityLogViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ActivityLog.objects.select_related("user").all()
    serializer_class = ActivityLogSerializer
    lookup_value_regex = r"\d+"
    permission_classes = [IsAdmin]
    filterset_fields = ["entity_type", "entity_id", "action", "user"]
    search_fields = ["description"]
    ordering_fields = ["created_at"]


class DashboardSummaryView(APIView):
    permission_classes = [IsAdmin]
    def get(self, request):
        students_by_status = dict(Student.objects.order_by().values_list("status").annotate(n=Count("id")))
        rooms_by_status = dict(Room.objects.order_by().values_list("status").annotate(n=Count("id")))
        beds = Room.objects.aggregate(capacity=Sum("capacity"), occupancy=Sum("current_occupancy"))
        capacity, occupied = beds["capacity"] or 0, beds["occupancy"] or 0
        billing = Invoice.objects.aggregate(
            pending_total=Sum("total_amount", filter=Q(payment_status=InvoiceStatus.PENDING)),
            overdue_total=Sum("total_amount", filter=Q(payment_status=InvoiceStatus.OVERDUE)),
            overdue_count=Count("id", filter=Q(payment_status=InvoiceStatus.OVERDUE)),
        )
        return _ok({
            "students": {s: students_by_status.get(s, 0) for s in StudentStatus.values},
            "rooms": {s: rooms_by_status.get(s, 0) for s in RoomStatus.values},
            "total_capacity": capacity,
            "total_occupancy": occupied,
            "occupancy_rate": round(occupied * 100 / capacity, 2) if capacity else 0,
            "active_contracts": Contract.objects.filter(status=ContractStatus.ACTIVE).count(),
            "pending_invoices_total": billing["pending_total"] or 0,
            "overdue_invoices_total": billing["overdue_total"] or 0,
            "overdue_invoices": billing["overdue_count"],
            "open_maintenance_requests": MaintenanceRequest.objects.exclude(status__in=MAINTENANCE_TERMINAL).count(),
        })


class MonthlyStatsView(APIView):
    permission_classes = [IsAdmin]
    def get(self, request):
        ser = YearQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        year = ser.validated_data.get("year") or timezone.localdate().year
        return _ok({"year": year, "months": reports.monthly_stats(year)})


class YearlyStatsView(APIView):
    permission_classes = [IsAdmin]
    def get(self, request):
        return _ok(reports.yearly_stats(timezone.localdate().year))


class OccupancyStatsView(APIView):
    permission_classes = [IsAdmin]
    def get(self, request):
        return _ok(reports.occupancy_stats())


class RunStatusUpdatesView(APIView):
    """Manual trigger for the daily job that normally runs from cron."""
    permission_classes = [IsAdmin]
    def post(self, request):
        ser = RunStatusUpdatesSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        today = ser.validated_data.get("date") or timezone.localdate()
        reports = expiration.run_status_updates(today)
        activity.record(request.user, "run_status_updates", "system", None, f"Manual status update for {today}", request)
        return _ok({name: report.as_dict() for name, report in reports.items()}, "Status updates finished.")
