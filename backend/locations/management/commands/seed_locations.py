from django.core.management.base import BaseCommand

from services.factory import build_event_bus
from services.locations import list_locations, seed_locations
import logging

logger = logging.getLogger(__name__)

SAMPLE_LOCATIONS = [
    {"name": "PG Main Gate", "address": "Main entrance of the PG building", "lat": 12.9716, "lng": 77.5946},
    {"name": "Tech Park Gate 1", "address": "Manyata Tech Park, Main Gate 1, Bangalore", "lat": 13.0475, "lng": 77.6212},
    {"name": "Electronic City Metro", "address": "Electronic City Metro Station, Bangalore", "lat": 12.8456, "lng": 77.6603},
    {"name": "Koramangala BDA Complex", "address": "BDA Complex, Koramangala, Bangalore", "lat": 12.9279, "lng": 77.6271},
    {"name": "Whitefield Railway Station", "address": "Whitefield Railway Station, Bangalore", "lat": 12.9698, "lng": 77.7499},
    {"name": "HSR Layout", "address": "HSR Layout Sector 1, Bangalore", "lat": 12.9082, "lng": 77.6476},
    {"name": "Indiranagar Metro", "address": "Indiranagar Metro Station, Bangalore", "lat": 12.9719, "lng": 77.6412},
    {"name": "Brigade Road", "address": "Brigade Road, Bangalore", "lat": 12.9716, "lng": 77.6197},
    # PG and office pickup points
    {"name": "Nayi PG"},
    {"name": "Puraani PG"},
    {"name": "Main Office"},
    {"name": "Branch Office"},
    {"name": "Corporate Office"},
]


class Command(BaseCommand):
    help = "Create the sample PG, office and city locations."

    def add_arguments(self, parser):
        parser.add_argument(
            "--replace",
            action="store_true",
            help="Delete existing locations first (ones with active rides are kept).",
        )

    def handle(self, *args, **options):
        created, skipped = seed_locations(
            SAMPLE_LOCATIONS,
            replace=options["replace"],
            events=build_event_bus(),
        )
        logger.info("Seeded locations: %d created, %d skipped", created, skipped)
        self.stdout.write(self.style.SUCCESS(f"Created {created} locations, skipped {skipped} existing."))

        for index, location in enumerate(list_locations(), start=1):
            self.stdout.write(f"{index}. {location.name} (ID: {location.pk})")
