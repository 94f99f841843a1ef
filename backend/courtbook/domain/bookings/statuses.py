from enum import Enum

from courtbook.domain.errors import InvalidArgumentError, InvalidTransitionError

BOOKING_STATUS_PENDING = "pending"
BOOKING_STATUS_CONFIRMED = "confirmed"
BOOKING_STATUS_CANCELLED = "cancelled"


class BookingStatus(str, Enum):
    pending = BOOKING_STATUS_PENDING
    confirmed = BOOKING_STATUS_CONFIRMED
    cancelled = BOOKING_STATUS_CANCELLED


BLOCKING_STATUSES = frozenset({BOOKING_STATUS_PENDING, BOOKING_STATUS_CONFIRMED})

# Same-state moves are deliberately absent: pending -> pending is an error, not a no-op.
BOOKING_TRANSITIONS: dict[str, frozenset[str]] = {
    BOOKING_STATUS_PENDING: frozenset({BOOKING_STATUS_CONFIRMED, BOOKING_STATUS_CANCELLED}),
    BOOKING_STATUS_CONFIRMED: frozenset({BOOKING_STATUS_CANCELLED}),
    BOOKING_STATUS_CANCELLED: frozenset(),
}


def parse_booking_status(value: str | BookingStatus) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError as exc:
        raise InvalidArgumentError(detail=f"Unknown booking status: {value}") from exc


def is_terminal(status: str | BookingStatus) -> bool:
    return not BOOKING_TRANSITIONS.get(BookingStatus(status).value)


def assert_valid_booking_transition(current: str | BookingStatus, target: str | BookingStatus) -> BookingStatus:
    current_status = parse_booking_status(current)
    target_status = parse_booking_status(target)
    if is_terminal(current_status):
        raise InvalidTransitionError(
            detail=f"Booking is already in terminal status: {current_status.value}"
        )
    if target_status.value not in BOOKING_TRANSITIONS[current_status.value]:
        raise InvalidTransitionError(
            detail=f"Cannot transition booking from {current_status.value} to {target_status.value}"
        )
    return target_status
