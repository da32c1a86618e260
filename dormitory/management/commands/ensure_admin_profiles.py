# dormitory/management/commands/ensure_admin_profiles.py

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand
from django.db.models import Q

from dormitory.models import AdminProfile
from dormitory.states import AdminRole

User = get_user_model()


class Command(BaseCommand):
    help = "Gives every staff or superuser account without one an admin profile."

    def handle(self, *args, **options):
        users_without_profile = User.objects.filter(
            Q(is_staff=True) | Q(is_superuser=True), admin_profile__isnull=True, student__isnull=True,
        ).order_by("pk")

        if not users_without_profile.exists():
            self.stdout.write(self.style.SUCCESS("Every staff account already has an admin profile."))
            return

        self.stdout.write(f"Found {users_without_profile.count()} staff account(s) without a profile. Creating...")
        count = 0
        for user in users_without_profile:
            AdminProfile.objects.create(
                user=user,
                staff_code=f"ADM{user.pk:04d}",
                full_name=user.get_full_name() or user.get_username(),
                role=AdminRole.SUPER_ADMIN if user.is_superuser else AdminRole.ADMIN,
            )
            count += 1
            self.stdout.write(f"  - Profile created for {user.get_username()}")

        self.stdout.write(self.style.SUCCESS(f"\nDone. Created {count} admin profile(s)."))
