from __future__ import annotations

from abc import ABC, abstractmethod

from field_coverage.contracts.coverage_contract import RoadSegment
from field_coverage.geo.kernel import BoundingBox


class RoadProvider(ABC):
    """Fetch drivable road geometries inside a bounding box.

    Failures must raise ``RoadDataUnavailable``; an empty list means the area
    genuinely has no roads.
    """

    @abstractmethod
    def fetch_roads(self, bbox: BoundingBox) -> list[RoadSegment]:
        raise NotImplementedError
