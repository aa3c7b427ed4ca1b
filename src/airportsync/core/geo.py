"""Spherical distance helper used to rank stored airports by proximity.

Angles are in degrees and distances in nautical miles (NM).
"""

from __future__ import annotations

from math import asin, cos, radians, sin, sqrt

__all__ = ["haversine_nm"]


_EARTH_RADIUS_SPHERE_M: float = 6371000.0
_M_PER_NM: float = 1852.0


def _wrap_lon(lon_deg: float) -> float:
    """Map a longitude into [-180, 180) without rounding."""
    return (lon_deg + 180.0) % 360.0 - 180.0


def haversine_nm(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance on a sphere in nautical miles.

    Uses the haversine formula with R = 6,371,000 m and converts to NM
    (1 NM = 1852 m).

    Args:
        lat1: Latitude of point 1 in degrees.
        lon1: Longitude of point 1 in degrees.
        lat2: Latitude of point 2 in degrees.
        lon2: Longitude of point 2 in degrees.
    Returns:
        Great-circle distance in nautical miles.
    """
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    phi1 = radians(lat1)
    phi2 = radians(lat2)
    dphi = phi2 - phi1
    dlambda = radians(_wrap_lon(lon2) - _wrap_lon(lon1))

    sdphi = sin(dphi * 0.5)
    sdl = sin(dlambda * 0.5)
    a = sdphi * sdphi + cos(phi1) * cos(phi2) * sdl * sdl
    # Clamp due to rounding
    a = min(1.0, max(0.0, a))
    c = 2.0 * asin(sqrt(a))
    return _EARTH_RADIUS_SPHERE_M * c / _M_PER_NM
