from django.core.management.base import BaseCommand, CommandError

from services.factory import build_lifecycle_manager
from services.ride_management.exceptions import RideServiceError
import logging

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Archive departed rides, purge expired archives and clean up orphaned rides."

    def add_arguments(self, parser):
        parser.add_argument(
            "--retention-days",
            type=int,
            default=None,
            help="Purge archived rides older than this many days (default: RIDE_ARCHIVE_RETENTION_DAYS).",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be changed without actually changing it.",
        )

    def handle(self, *args, **options):
        retention_days = options["retention_days"]
        if retention_days is not None and retention_days < 0:
            raise CommandError("--retention-days cannot be negative.")

        manager = build_lifecycle_manager()
        try:
            if options["dry_run"]:
                preview = manager.preview_sweeps(retention_days)
                self.stdout.write(
                    self.style.WARNING(
                        f"DRY RUN: Would archive {preview['archive']} rides, purge {preview['purge']} "
                        f"expired rides and {preview['orphans']} orphaned rides "
                        f"({preview['blocking']} active orphans need attention)."
                    )
                )
                return

            result = manager.run_sweeps(retention_days)
        except RideServiceError as exc:
            raise CommandError(exc.message)

        logger.info("Sweep command finished: %s", result)
        self.stdout.write(
            self.style.SUCCESS(
                f"Archived {result['archived']} rides, purged {result['purged']} expired rides "
                f"and {result['orphans_purged']} orphaned rides."
            )
        )
        if result["blocking"]:
            self.stdout.write(
                self.style.WARNING(
                    f"Active rides referencing missing locations: {', '.join(map(str, result['blocking']))}"
                )
            )
