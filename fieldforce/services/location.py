from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from math import asin, cos, isfinite, radians, sin, sqrt
from numbers import Real
from typing import Any, TypeVar

from fieldforce.errors import ValidationError

EARTH_RADIUS_KM = 6371.0

CAPTURE_METHOD_CONFIDENCE: dict[str, float] = {
    "manual_map_selection": 0.9,
    "gps_current": 0.95,
    "manual_search": 0.7,
}
DEFAULT_CONFIDENCE = 0.8
CAPTURE_METHODS = frozenset(
    {"gps", "manual", "network", "manual_map_selection", "gps_current", "manual_search"}
)
VERIFIED_CAPTURE_METHODS = frozenset({"manual_map_selection"})
DEFAULT_ADDRESS = "Address not available"

T = TypeVar("T")


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    # Guard against a > 1 from float error on antipodal points.
    c = 2 * asin(sqrt(min(1.0, a)))
    return EARTH_RADIUS_KM * c


def nearest(
    latitude: float,
    longitude: float,
    candidates: Iterable[T],
    *,
    coordinates: Callable[[T], tuple[float, float] | None],
) -> tuple[T, float] | None:
    """Return the candidate closest to the point with its distance in km.

    ``coordinates`` maps a candidate to its ``(lat, lon)`` pair, or to
    ``None`` when the candidate has no usable position.
    """
    best: tuple[T, float] | None = None
    for candidate in candidates:
        point = coordinates(candidate)
        if point is None:
            continue
        value = distance_km(latitude, longitude, point[0], point[1])
        if best is None or value < best[1]:
            best = (candidate, value)
    return best


@dataclass(frozen=True, slots=True)
class LocationSnapshot:
    latitude: float
    longitude: float
    address: str
    city: str = ""
    state: str = ""
    pincode: str = ""
    address_components: dict[str, str] = field(default_factory=dict)
    capture_method: str = "gps"
    confidence: float = DEFAULT_CONFIDENCE
    validation_status: str = "unverified"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "addressComponents": dict(self.address_components),
            "captureMethod": self.capture_method,
            "confidence": self.confidence,
            "validationStatus": self.validation_status,
            "timestamp": self.timestamp.isoformat(),
        }


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and isfinite(value)


def validate_coordinates(latitude: Any, longitude: Any) -> tuple[float, float]:
    if not _is_finite_number(latitude) or not _is_finite_number(longitude):
        raise ValidationError(
            "INVALID_LOCATION",
            "Latitude and longitude are required numbers.",
        )
    if not -90 <= latitude <= 90:
        raise ValidationError("INVALID_LOCATION", "Latitude must be between -90 and 90.")
    if not -180 <= longitude <= 180:
        raise ValidationError("INVALID_LOCATION", "Longitude must be between -180 and 180.")
    return float(latitude), float(longitude)


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_timestamp(raw: Any, now: datetime) -> datetime:
    if raw is None or raw == "":
        return now
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, str):
        candidate = raw.strip()
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValidationError("INVALID_LOCATION", "Location timestamp must be ISO-8601.") from exc
    else:
        raise ValidationError("INVALID_LOCATION", "Location timestamp must be ISO-8601.")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def validate_location(payload: Any, *, now: datetime | None = None) -> LocationSnapshot:
    if not isinstance(payload, Mapping):
        raise ValidationError("LOCATION_REQUIRED", "Location data is required.")

    latitude, longitude = validate_coordinates(payload.get("latitude"), payload.get("longitude"))

    raw_components = _pick(payload, "addressComponents", "address_components")
    if raw_components is not None and not isinstance(raw_components, Mapping):
        raise ValidationError("INVALID_LOCATION", "addressComponents must be an object.")
    components: Mapping[str, Any] = raw_components or {}

    city = _text(payload.get("city")) or _text(components.get("city"))
    state = _text(payload.get("state")) or _text(components.get("state"))
    pincode = _text(payload.get("pincode")) or _text(components.get("pincode"))

    raw_address = payload.get("address")
    address = _text(raw_address)
    if not address and raw_address not in (None, ""):
        raise ValidationError("ADDRESS_REQUIRED", "Location address cannot be blank.")
    if not address:
        address = ", ".join(part for part in (city, state, pincode) if part) or DEFAULT_ADDRESS

    capture_method = _text(_pick(payload, "captureMethod", "capture_method")) or "gps"
    if capture_method not in CAPTURE_METHODS:
        raise ValidationError(
            "INVALID_LOCATION",
            f"Unsupported capture method: {capture_method}.",
        )

    reference_now = now or datetime.now(timezone.utc)
    return LocationSnapshot(
        latitude=latitude,
        longitude=longitude,
        address=address,
        city=city,
        state=state,
        pincode=pincode,
        address_components={
            "city": _text(components.get("city")) or city,
            "state": _text(components.get("state")) or state,
            "pincode": _text(components.get("pincode")) or pincode,
            "country": _text(components.get("country")),
        },
        capture_method=capture_method,
        confidence=CAPTURE_METHOD_CONFIDENCE.get(capture_method, DEFAULT_CONFIDENCE),
        validation_status="verified" if capture_method in VERIFIED_CAPTURE_METHODS else "unverified",
        timestamp=_parse_timestamp(payload.get("timestamp"), reference_now),
    )
