# dormitory/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenRefreshView

from . import views as v

router = DefaultRouter()
router.register(r"me", v.MeViewSet, basename="me")
router.register(r"admins", v.AdminAccountViewSet)
router.register(r"students", v.StudentViewSet)
router.register(r"buildings", v.BuildingViewSet)
router.register(r"rooms", v.RoomViewSet)
router.register(r"contracts", v.ContractViewSet)
router.register(r"invoices", v.InvoiceViewSet)
router.register(r"maintenance-requests", v.MaintenanceRequestViewSet)
router.register(r"activity-logs", v.ActivityLogViewSet, basename="activitylog")

urlpatterns = [
    path("auth/login/", v.LoginView.as_view(), name="auth-login"),
    path("auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("auth/logout/", v.LogoutView.as_view(), name="auth-logout"),
    path("auth/change-password/", v.ChangePasswordView.as_view(), name="auth-change-password"),
    path("auth/password-reset/", v.PasswordResetRequestView.as_view(), name="auth-password-reset"),
    path("auth/password-reset/confirm/", v.PasswordResetConfirmView.as_view(), name="auth-password-reset-confirm"),

    path("dashboard/summary/", v.DashboardSummaryView.as_view(), name="dashboard-summary"),
    path("dashboard/monthly-stats/", v.MonthlyStatsView.as_view(), name="dashboard-monthly-stats"),
    path("dashboard/yearly-stats/", v.YearlyStatsView.as_view(), name="dashboard-yearly-stats"),
    path("dashboard/occupancy-stats/", v.OccupancyStatsView.as_view(), name="dashboard-occupancy-stats"),
    path("cron/run-status-updates/", v.RunStatusUpdatesView.as_view(), name="cron-run-status-updates"),

    path("", include(router.urls)),
]
