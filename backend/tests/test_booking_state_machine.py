import pytest

from courtbook.domain.bookings.statuses import (
    BOOKING_TRANSITIONS,
    BookingStatus,
    assert_valid_booking_transition,
    is_terminal,
    parse_booking_status,
)
from courtbook.domain.errors import ErrorKind, InvalidArgumentError, InvalidTransitionError


@pytest.mark.parametrize(
    ("current", "target"),
    [
        ("pending", "confirmed"),
        ("pending", "cancelled"),
        ("confirmed", "cancelled"),
    ],
)
def test_allowed_transitions(current, target):
    assert assert_valid_booking_transition(current, target) is BookingStatus(target)


@pytest.mark.parametrize(
    ("current", "target"),
    [
        ("pending", "pending"),
        ("confirmed", "confirmed"),
        ("confirmed", "pending"),
        ("cancelled", "pending"),
        ("cancelled", "confirmed"),
        ("cancelled", "cancelled"),
    ],
)
def test_rejected_transitions(current, target):
    with pytest.raises(InvalidTransitionError) as exc_info:
        assert_valid_booking_transition(current, target)

    assert exc_info.value.kind is ErrorKind.INVALID_TRANSITION
    assert exc_info.value.status_code == 409


def test_cancelled_is_terminal():
    assert is_terminal(BookingStatus.cancelled) is True
    assert is_terminal("pending") is False
    assert BOOKING_TRANSITIONS["cancelled"] == frozenset()


def test_unknown_status_is_invalid_argument():
    with pytest.raises(InvalidArgumentError):
        parse_booking_status("archived")

    with pytest.raises(InvalidArgumentError):
        assert_valid_booking_transition("pending", "archived")


def test_terminal_status_rejects_every_move():
    with pytest.raises(InvalidTransitionError) as exc_info:
        assert_valid_booking_transition(BookingStatus.cancelled, "confirmed")

    assert "terminal" in exc_info.value.detail
