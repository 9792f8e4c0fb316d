"""GPS fix validation: tracker authentication and travel plausibility.

Two independent checks guard every location update:

Authentication
    The fix must come from the tracker assigned to the order, and its HMAC
    signature must verify under the deployment key held by the
    :class:`~trackchain.codec.HashCodec`.

Plausibility
    The great-circle (haversine) distance from the order's previous fix must
    not exceed ``max_jump_km``.  The bound is closed (``<=``).  The first fix
    of an order has no predecessor and is always plausible.

:meth:`LocationValidator.validate` runs both and raises a distinct error for
each failure so callers can tell a forged or foreign tracker apart from a
physically impossible jump.  The order is: tracker identity, then signature,
then distance.
"""

from __future__ import annotations

import math

from trackchain.codec import HashCodec
from trackchain.errors import ImplausibleLocation, SignatureInvalid, TrackerMismatch
from trackchain.models import LocationFix

#: Mean Earth radius in kilometres used by the haversine formula.
EARTH_RADIUS_KM = 6371.0

#: Default maximum distance between consecutive fixes.
DEFAULT_MAX_JUMP_KM = 500.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two points in decimal degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push a fractionally above 1.0 for antipodal points.
    a = min(1.0, max(0.0, a))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def fix_distance_km(current: LocationFix, previous: LocationFix) -> float:
    return haversine_km(previous.latitude, previous.longitude, current.latitude, current.longitude)


class LocationValidator:
    """Authenticate and bounds-check GPS fixes.

    Args:
        codec:       Codec holding the deployment signing key.
        max_jump_km: Largest accepted distance between consecutive fixes.

    Raises:
        ValueError: If ``max_jump_km`` is negative.
    """

    def __init__(self, codec: HashCodec, *, max_jump_km: float = DEFAULT_MAX_JUMP_KM) -> None:
        if max_jump_km < 0:
            raise ValueError("max_jump_km must not be negative.")
        self._codec = codec
        self.max_jump_km = float(max_jump_km)

    def check_plausibility(self, current: LocationFix, previous: LocationFix | None) -> bool:
        """Return True iff ``current`` is within ``max_jump_km`` of ``previous``."""
        if previous is None:
            return True
        return fix_distance_km(current, previous) <= self.max_jump_km

    def authenticate(self, fix: LocationFix, expected_tracker_id: str | None) -> bool:
        """Return True iff the fix comes from ``expected_tracker_id`` and its signature verifies."""
        if expected_tracker_id is None or fix.gps_tracker_id != expected_tracker_id:
            return False
        return self._codec.verify(*fix.signing_fields(), signature=fix.signature)

    def validate(
        self,
        fix: LocationFix,
        *,
        expected_tracker_id: str | None,
        previous: LocationFix | None,
    ) -> None:
        """Run every check and raise on the first failure.

        Raises:
            TrackerMismatch:     Fix reported by another (or no assigned) tracker.
            SignatureInvalid:    Signature does not verify.
            ImplausibleLocation: Jump from ``previous`` exceeds the limit.
        """
        if expected_tracker_id is None or fix.gps_tracker_id != expected_tracker_id:
            raise TrackerMismatch(expected_tracker_id, fix.gps_tracker_id)

        if not self._codec.verify(*fix.signing_fields(), signature=fix.signature):
            raise SignatureInvalid(fix.gps_tracker_id)

        if previous is not None:
            distance = fix_distance_km(fix, previous)
            if distance > self.max_jump_km:
                raise ImplausibleLocation(distance, self.max_jump_km)
