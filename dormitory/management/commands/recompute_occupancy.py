# dormitory/management/commands/recompute_occupancy.py

from django.core.management.base import BaseCommand

from dormitory.services.occupancy import recompute_all_rooms


class Command(BaseCommand):
    help = "Recounts active contracts for every room and repairs occupancy and status."

    def handle(self, *args, **options):
        repaired = recompute_all_rooms()
        if not repaired:
            self.stdout.write(self.style.SUCCESS("All rooms are consistent."))
            return

        for item in repaired:
            (old_occ, old_status), (new_occ, new_status) = item["before"], item["after"]
            self.stdout.write(f"  - Room {item['room_id']}: {old_occ}/{old_status} -> {new_occ}/{new_status}")
        self.stdout.write(self.style.SUCCESS(f"\nRepaired {len(repaired)} room(s)."))
