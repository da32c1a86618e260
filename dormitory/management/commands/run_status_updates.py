# dormitory/management/commands/run_status_updates.py

from datetime import datetime

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from dormitory.services.expiration import run_status_updates


class Command(BaseCommand):
    help = "Expires ended contracts and flags overdue invoices, then emails the students concerned. Run daily from cron."

    def add_arguments(self, parser):
        parser.add_argument("--date", help="Treat this day (YYYY-MM-DD) as today.")

    def handle(self, *args, **options):
        if options["date"]:
            try:
                today = datetime.strptime(options["date"], "%Y-%m-%d").date()
            except ValueError:
                raise CommandError(f"Invalid --date {options['date']!r}; expected YYYY-MM-DD.")
        else:
            today = timezone.localdate()

        self.stdout.write(f"Running status updates for {today:%Y-%m-%d}...")
        reports = run_status_updates(today)

        failed_jobs = 0
        for report in reports.values():
            line = (
                f"  - {report.job}: {report.transitioned} updated, {report.notified} notified, "
                f"{len(report.failed_recipients)} notification(s) failed"
            )
            if report.error:
                failed_jobs += 1
                self.stdout.write(self.style.ERROR(f"{line} (job failed: {report.error})"))
            elif report.failed_recipients:
                self.stdout.write(self.style.WARNING(f"{line}: {', '.join(map(str, report.failed_recipients))}"))
            else:
                self.stdout.write(line)

        if failed_jobs:
            raise CommandError(f"{failed_jobs} job(s) failed; see the log for details.")
        self.stdout.write(self.style.SUCCESS("Status updates finished."))
