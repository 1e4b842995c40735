"""Location registry service."""

from .registry import (
    LocationDeletion,
    create_location,
    delete_location,
    get_location,
    list_locations,
    seed_locations,
    toggle_active,
)

__all__ = [
    "LocationDeletion",
    "create_location",
    "delete_location",
    "get_location",
    "list_locations",
    "seed_locations",
    "toggle_active",
]
