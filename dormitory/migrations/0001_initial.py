import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="AdminProfile",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("staff_code", models.CharField(max_length=20, unique=True)),
                ("full_name", models.CharField(max_length=100)),
                ("phone", models.CharField(blank=True, max_length=15)),
                ("role", models.CharField(
                    choices=[("super_admin", "Super admin"), ("admin", "Admin"), ("staff", "Staff")],
                    default="staff", max_length=20,
                )),
                ("department", models.CharField(blank=True, max_length=100)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE, related_name="admin_profile",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
        ),
        migrations.CreateModel(
            name="Building",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100, unique=True)),
                ("total_floors", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("description", models.TextField(blank=True)),
                ("status", models.CharField(
                    choices=[("active", "Active"), ("inactive", "Inactive"), ("maintenance", "Under maintenance")],
                    default="active", max_length=12,
                )),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.CreateModel(
            name="Student",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("student_code", models.CharField(max_length=20, unique=True)),
                ("full_name", models.CharField(max_length=100)),
                ("gender", models.CharField(
                    choices=[("male", "Male"), ("female", "Female"), ("other", "Other")], max_length=10,
                )),
                ("birth_date", models.DateField(blank=True, null=True)),
                ("phone", models.CharField(blank=True, max_length=15)),
                ("email", models.EmailField(max_length=100)),
                ("address", models.TextField(blank=True)),
                ("faculty", models.CharField(blank=True, max_length=100)),
                ("major", models.CharField(blank=True, max_length=100)),
                ("class_name", models.CharField(blank=True, max_length=50)),
                ("emergency_contact_name", models.CharField(blank=True, max_length=100)),
                ("emergency_contact_phone", models.CharField(blank=True, max_length=15)),
                ("emergency_contact_relationship", models.CharField(blank=True, max_length=50)),
                ("status", models.CharField(
                    choices=[
                        ("pending", "Pending approval"), ("active", "Active"),
                        ("inactive", "Inactive"), ("blocked", "Blocked"),
                    ],
                    default="pending", max_length=10,
                )),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("user", models.OneToOneField(
                    on_delete=django.db.models.deletion.CASCADE, related_name="student",
                    to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="Room",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("room_number", models.CharField(max_length=20)),
                ("floor_number", models.PositiveIntegerField(default=1)),
                ("room_type", models.CharField(
                    choices=[("male", "Male room"), ("female", "Female room"), ("mixed", "Mixed room")],
                    default="mixed", max_length=10,
                )),
                ("capacity", models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)])),
                ("current_occupancy", models.PositiveIntegerField(default=0)),
                ("price_per_month", models.DecimalField(decimal_places=2, max_digits=10)),
                ("description", models.TextField(blank=True)),
                ("status", models.CharField(
                    choices=[("available", "Available"), ("full", "Full"), ("maintenance", "Under maintenance")],
                    default="available", max_length=12,
                )),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("building", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="rooms", to="dormitory.building",
                )),
            ],
            options={
                "ordering": ["building_id", "room_number"],
                "constraints": [
                    models.UniqueConstraint(fields=("building", "room_number"), name="unique_room_per_building"),
                    models.CheckConstraint(condition=models.Q(("capacity__gt", 0)), name="room_capacity_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Contract",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("contract_number", models.CharField(max_length=50, unique=True)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("deposit_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("monthly_fee", models.DecimalField(decimal_places=2, max_digits=10)),
                ("status", models.CharField(
                    choices=[("active", "Active"), ("expired", "Expired"), ("terminated", "Terminated")],
                    default="active", max_length=12,
                )),
                ("terminated_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("created_by", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="+", to=settings.AUTH_USER_MODEL,
                )),
                ("room", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="contracts", to="dormitory.room",
                )),
                ("student", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="contracts", to="dormitory.student",
                )),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["room", "status"], name="contract_room_status_idx"),
                    models.Index(fields=["status", "end_date"], name="contract_status_end_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "active")), fields=("student",),
                        name="one_active_contract_per_student",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_number", models.CharField(max_length=50, unique=True)),
                ("invoice_month", models.DateField(help_text="First day of the billed month")),
                ("due_date", models.DateField()),
                ("electricity_units", models.PositiveIntegerField(default=0)),
                ("water_units", models.PositiveIntegerField(default=0)),
                ("room_fee", models.DecimalField(decimal_places=2, max_digits=10)),
                ("electric_fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("water_fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("service_fee", models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ("total_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("payment_status", models.CharField(
                    choices=[("pending", "Pending"), ("paid", "Paid"), ("overdue", "Overdue")],
                    default="pending", max_length=10,
                )),
                ("payment_date", models.DateTimeField(blank=True, null=True)),
                ("payment_method", models.CharField(blank=True, max_length=50)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("room", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="invoices", to="dormitory.room",
                )),
            ],
            options={
                "ordering": ["-invoice_month"],
                "indexes": [models.Index(fields=["payment_status", "due_date"], name="invoice_status_due_idx")],
                "constraints": [
                    models.UniqueConstraint(fields=("room", "invoice_month"), name="one_invoice_per_room_month"),
                ],
            },
        ),
        migrations.CreateModel(
            name="MaintenanceRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("request_number", models.CharField(max_length=50, unique=True)),
                ("request_type", models.CharField(max_length=50)),
                ("description", models.TextField()),
                ("priority", models.CharField(
                    choices=[("low", "Low"), ("normal", "Normal"), ("high", "High"), ("urgent", "Urgent")],
                    default="normal", max_length=10,
                )),
                ("status", models.CharField(
                    choices=[
                        ("pending", "Pending"), ("processing", "Processing"), ("completed", "Completed"),
                        ("rejected", "Rejected"), ("canceled", "Canceled"),
                    ],
                    default="pending", max_length=12,
                )),
                ("resolution_note", models.TextField(blank=True)),
                ("cost", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("assigned_to", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="assigned_requests", to="dormitory.adminprofile",
                )),
                ("room", models.ForeignKey(
                    on_delete=django.db.models.deletion.CASCADE, related_name="maintenance_requests",
                    to="dormitory.room",
                )),
                ("student", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.CASCADE,
                    related_name="maintenance_requests", to="dormitory.student",
                )),
            ],
            options={"ordering": ["-created_at"]},
        ),
        migrations.CreateModel(
            name="ActivityLog",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("action", models.CharField(max_length=100)),
                ("entity_type", models.CharField(max_length=50)),
                ("entity_id", models.BigIntegerField(blank=True, null=True)),
                ("description", models.TextField(blank=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
                ("user_agent", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("user", models.ForeignKey(
                    blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL,
                    related_name="activity_logs", to=settings.AUTH_USER_MODEL,
                )),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["entity_type", "entity_id"], name="activity_entity_idx")],
            },
        ),
    ]
