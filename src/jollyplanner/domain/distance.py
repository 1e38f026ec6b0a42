"""Travel distance collaborators.

Distances are an opaque lookup keyed by address strings. No geocoding or
routing is done here; callers supply whatever source they trust.
"""

from abc import ABC, abstractmethod
from typing import Optional


class DistanceProvider(ABC):
    """Abstract base class for travel distance lookups."""

    @abstractmethod
    def distance_km(self, origin: str, destination: str) -> Optional[float]:
        """Get the travel distance between two addresses.

        Args:
            origin: Starting address (typically a floater's home).
            destination: Destination address (typically a site).

        Returns:
            Distance in kilometres, or None if unknown.
        """
        pass


class StaticDistanceTable(DistanceProvider):
    """Distance provider backed by a fixed, symmetric table.

    Example:
        >>> table = StaticDistanceTable({("Via Roma 1", "Piazza Duomo 1"): 4.2})
        >>> table.distance_km("Piazza Duomo 1", "Via Roma 1")
        4.2
    """

    def __init__(self, distances: Optional[dict[tuple[str, str], float]] = None):
        self._distances: dict[tuple[str, str], float] = {}
        for (origin, destination), km in (distances or {}).items():
            self.add(origin, destination, km)

    def add(self, origin: str, destination: str, km: float) -> None:
        """Register a distance in both directions."""
        self._distances[(origin, destination)] = km
        self._distances[(destination, origin)] = km

    def distance_km(self, origin: str, destination: str) -> Optional[float]:
        if origin == destination:
            return 0.0
        return self._distances.get((origin, destination))
