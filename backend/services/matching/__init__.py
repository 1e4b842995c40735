"""
Ride matching service.

This module handles:
    - Finding a compatible waiting ride for a request (oldest first)
    - Creating rides when nothing matches
    - Appending passengers under capacity and duplicate-phone guards
"""

from .engine import RideMatchingEngine, MatchResult

__all__ = [
    "RideMatchingEngine",
    "MatchResult",
]
