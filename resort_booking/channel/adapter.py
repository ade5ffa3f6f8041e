"""
Typed contract over the channel manager (Smoobu-style) API.

The remote API mixes kebab-case and snake_case field names; they are mapped
to dataclasses here and never leak into the services.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import structlog

from resort_booking.channel.client import ChannelClient
from resort_booking.errors import ChannelError, ChannelRemoteError

logger = structlog.get_logger(__name__)

# Raised while mapping a response whose shape is not what the API documents
MALFORMED_PAYLOAD_ERRORS = (AttributeError, KeyError, TypeError, ValueError, InvalidOperation)

# Reservation fields accepted by PUT reservations/{id}, keyed by our names
_UPDATABLE_FIELDS = {
    "date_from": "arrivalDate",
    "date_to": "departureDate",
    "first_name": "firstName",
    "last_name": "lastName",
    "email": "email",
    "phone": "phone",
    "adults": "adults",
    "children": "children",
    "notice": "notice",
    "price": "price",
    "price_paid": "priceStatus",
    "deposit": "deposit",
    "deposit_paid": "depositStatus",
}


@dataclass(frozen=True)
class DayRate:
    day: date
    price: Optional[Decimal]
    min_stay: Optional[int]
    available: bool


@dataclass(frozen=True)
class ChannelProperty:
    id: int
    name: str
    max_occupancy: Optional[int] = None


@dataclass(frozen=True)
class ChannelGuest:
    name: str
    email: str
    phone: Optional[str] = None
    notes: Optional[str] = None
    language: str = "en"


def split_guest_name(full_name: str) -> tuple[str, str]:
    """
    Split a display name into first and last name.

    Example:
        >>> split_guest_name("Ana Maria Lopez")
        ('Ana', 'Maria Lopez')
        >>> split_guest_name("Cher")
        ('Cher', '')
    """
    parts = full_name.strip().split()
    if not parts:
        return "Guest", ""
    return parts[0], " ".join(parts[1:])


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def parse_day_rates(
    payload: dict[str, Any], property_ids: list[int]
) -> dict[int, list[DayRate]]:
    """
    Map a rates response to DayRate lists sorted by day.

    Args:
        payload: Raw response, shaped {"data": {"<id>": {"YYYY-MM-DD": {...}}}}.
        property_ids: Properties that were requested; missing ones map to [].

    Returns:
        dict[int, list[DayRate]]: Day rates per property.

    Raises:
        ChannelRemoteError: The payload does not have the documented shape.
    """
    try:
        return _parse_day_rates(payload, property_ids)
    except MALFORMED_PAYLOAD_ERRORS as e:
        logger.warning("channel_rates_malformed", error=str(e))
        raise ChannelRemoteError(200, f"malformed rates payload: {e}", endpoint="rates") from e


def _parse_day_rates(
    payload: dict[str, Any], property_ids: list[int]
) -> dict[int, list[DayRate]]:
    data = payload.get("data") or {}
    rates: dict[int, list[DayRate]] = {property_id: [] for property_id in property_ids}

    for property_key, days in data.items():
        try:
            property_id = int(property_key)
        except (TypeError, ValueError):
            logger.warning("channel_rates_bad_property_key", key=property_key)
            continue

        parsed = []
        for day_key, info in (days or {}).items():
            info = info or {}
            min_stay = info.get("min_length_of_stay")
            parsed.append(
                DayRate(
                    day=date.fromisoformat(day_key),
                    price=_to_decimal(info.get("price")),
                    min_stay=int(min_stay) if min_stay is not None else None,
                    available=bool(info.get("available")),
                )
            )
        parsed.sort(key=lambda rate: rate.day)
        rates[property_id] = parsed

    return rates


class ChannelAdapter:
    """
    Channel manager operations used by availability and fulfillment.

    Every call goes through ChannelClient, so each has a bounded timeout and
    raises ChannelError subclasses on failure.
    """

    def __init__(self, client: Optional[ChannelClient] = None) -> None:
        self.client = client or ChannelClient()

    def list_properties(self) -> list[ChannelProperty]:
        body = self.client.request("GET", "apartments") or {}
        properties = []
        try:
            for item in body.get("apartments") or []:
                rooms = item.get("rooms") or {}
                properties.append(
                    ChannelProperty(
                        id=int(item["id"]),
                        name=item.get("name", ""),
                        max_occupancy=rooms.get("maxOccupancy"),
                    )
                )
        except MALFORMED_PAYLOAD_ERRORS as e:
            raise ChannelRemoteError(
                200, f"malformed apartments payload: {e}", endpoint="apartments"
            ) from e
        return properties

    def list_unit_day_rates(
        self, property_ids: list[int], date_from: date, date_to: date
    ) -> dict[int, list[DayRate]]:
        """
        Fetch per-day price and availability for several properties at once.

        Args:
            property_ids: Channel property IDs.
            date_from: First day, inclusive.
            date_to: Last day, inclusive.

        Returns:
            dict[int, list[DayRate]]: Day rates per property, sorted by day.
        """
        if not property_ids:
            return {}

        params: list[tuple[str, Any]] = [("apartments[]", pid) for pid in property_ids]
        params += [("start_date", date_from.isoformat()), ("end_date", date_to.isoformat())]
        body = self.client.request("GET", "rates", params=params) or {}
        return parse_day_rates(body, property_ids)

    def create_reservation(
        self,
        property_id: int,
        date_from: date,
        date_to: date,
        guest: ChannelGuest,
        guest_count: int,
        price: Decimal,
    ) -> int:
        """
        Create a paid reservation on the channel manager.

        Returns:
            int: Remote reservation ID.

        Raises:
            ChannelRemoteError: Rejected by the API or no id in the response.
            ChannelTransportError: Network failure or 5xx.
        """
        first_name, last_name = split_guest_name(guest.name)
        payload = {
            "arrivalDate": date_from.isoformat(),
            "departureDate": date_to.isoformat(),
            "apartmentId": property_id,
            "firstName": first_name,
            "lastName": last_name,
            "email": guest.email or "",
            "phone": guest.phone or "",
            "adults": guest_count,
            "children": 0,
            "notice": guest.notes or "",
            "price": float(price),
            "priceStatus": 1,
            "deposit": 0,
            "depositStatus": 0,
            "language": guest.language,
        }
        body = self.client.request("POST", "reservations", json=payload) or {}
        try:
            reservation_id = int(body["id"])
        except MALFORMED_PAYLOAD_ERRORS as e:
            raise ChannelRemoteError(
                200, "reservation id missing from response", "reservations"
            ) from e

        logger.info(
            "channel_reservation_created",
            property_id=property_id,
            reservation_id=reservation_id,
        )
        return reservation_id

    def update_reservation(self, reservation_id: int, **fields: Any) -> None:
        """
        Update selected fields of a remote reservation.

        Accepts date_from, date_to, first_name, last_name, email, phone, adults,
        children, notice, price, price_paid, deposit and deposit_paid.
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported reservation fields: {sorted(unknown)}")

        payload: dict[str, Any] = {}
        for name, value in fields.items():
            if value is None:
                continue
            if isinstance(value, date):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = float(value)
            elif isinstance(value, bool):
                value = int(value)
            payload[_UPDATABLE_FIELDS[name]] = value

        if not payload:
            return
        self.client.request("PUT", f"reservations/{reservation_id}", json=payload)
        logger.info("channel_reservation_updated", reservation_id=reservation_id)

    def cancel_reservation(self, reservation_id: int) -> None:
        self.client.request("DELETE", f"reservations/{reservation_id}")
        logger.info("channel_reservation_cancelled", reservation_id=reservation_id)

    def test_connection(self) -> bool:
        """True if the API answers an authenticated request."""
        try:
            self.list_properties()
            return True
        except ChannelError as e:
            logger.warning("channel_connection_test_failed", error=str(e))
            return False
