"""Geometry utilities for distances and circumferences on pose landmarks."""

import math
from typing import Optional, Sequence

from bodyscan.landmarks import Landmark


class GeometryCalculator:
    """Helper class for geometric calculations on pose landmarks."""

    @staticmethod
    def distance_2d(point1: Optional[Landmark], point2: Optional[Landmark]) -> float:
        """Calculate Euclidean distance between two 2D points.

        Args:
            point1: Landmark in pixel coordinates
            point2: Landmark in pixel coordinates

        Returns:
            Distance in pixels
        """
        if not point1 or not point2:
            return 0.0

        dx = point1.x - point2.x
        dy = point1.y - point2.y
        return math.sqrt(dx * dx + dy * dy)

    @staticmethod
    def path_length(points: Sequence[Landmark]) -> float:
        """Sum of segment lengths along a chain of points.

        A bent arm measured shoulder -> elbow -> wrist keeps its true length,
        where a straight shoulder -> wrist distance would not.
        """
        return sum(
            GeometryCalculator.distance_2d(a, b) for a, b in zip(points, points[1:])
        )

    @staticmethod
    def ellipse_circumference(a: float, b: float) -> float:
        """Perimeter of an ellipse with semi-axes ``a`` and ``b``.

        Uses Ramanujan's second approximation:
        C ≈ π × (3(a + b) − √((3a + b)(a + 3b)))

        Args:
            a: Semi-major axis (half the front width)
            b: Semi-minor axis (half the side depth)

        Returns:
            Circumference in the same units as the axes
        """
        if a <= 0 or b <= 0:
            return 0.0

        return math.pi * (3 * (a + b) - math.sqrt((3 * a + b) * (a + 3 * b)))
