"""Tests for the appointment lifecycle and cancellation window."""
from datetime import datetime, timedelta

import pytest

from hanami.exceptions import CancellationWindowClosed, InvalidRequest
from hanami.services.lifecycle import (
    Actor,
    AppointmentStatus,
    can_cancel,
    fits_business_hours,
    transition,
)

NOW = datetime(2030, 5, 10, 9, 0)


class TestCanCancel:
    """Test the 24 hour cancellation rule."""

    def test_far_enough_ahead(self):
        """30 hours ahead may be cancelled."""
        assert can_cancel(NOW + timedelta(hours=30), NOW)

    def test_too_close(self):
        """10 hours ahead may not."""
        assert not can_cancel(NOW + timedelta(hours=10), NOW)

    def test_exact_boundary_is_closed(self):
        """Exactly 24 hours ahead is already inside the window."""
        assert not can_cancel(NOW + timedelta(hours=24), NOW)
        assert can_cancel(NOW + timedelta(hours=24, minutes=1), NOW)

    def test_custom_window(self):
        """The window length is configurable."""
        assert can_cancel(NOW + timedelta(hours=10), NOW, window_hours=6)


class TestFitsBusinessHours:
    """Test fits_business_hours."""

    def test_ends_exactly_at_closing(self):
        """A session may end at closing time."""
        assert fits_business_hours(17 * 60, 60, 18 * 60)

    def test_runs_past_closing(self):
        """A session may not run past closing time."""
        assert not fits_business_hours(17 * 60 + 30, 60, 18 * 60)


class TestTransition:
    """Test transition."""

    @pytest.mark.parametrize("actor", [Actor.ADMIN, Actor.THERAPIST])
    @pytest.mark.parametrize("current,target", [
        ("pending", "confirmed"),
        ("confirmed", "completed"),
        ("confirmed", "cancelled"),
        ("cancelled", "confirmed"),
        ("completed", "pending"),
    ])
    def test_staff_any_transition(self, actor, current, target):
        """Staff may move between any two states, whenever."""
        result = transition(current, target, actor, NOW + timedelta(hours=1), NOW)

        assert result == AppointmentStatus(target)

    def test_client_cancels_in_time(self):
        """A client cancelling 30 hours ahead succeeds."""
        result = transition("confirmed", "cancelled", Actor.CLIENT, NOW + timedelta(hours=30), NOW)

        assert result == AppointmentStatus.CANCELLED

    def test_client_cancels_too_late(self):
        """A client cancelling 10 hours ahead is told to contact the salon."""
        with pytest.raises(CancellationWindowClosed) as exc_info:
            transition("confirmed", "cancelled", Actor.CLIENT, NOW + timedelta(hours=10), NOW)

        assert "contact the salon" in exc_info.value.message

    def test_client_cannot_confirm(self):
        """Clients may only cancel."""
        with pytest.raises(InvalidRequest):
            transition("pending", "confirmed", "client", NOW + timedelta(hours=30), NOW)

    def test_client_cancel_of_cancelled_is_noop(self):
        """Cancelling twice is not an error, even late."""
        result = transition("cancelled", "cancelled", Actor.CLIENT, NOW + timedelta(hours=1), NOW)

        assert result == AppointmentStatus.CANCELLED

    def test_unknown_status(self):
        """Unknown statuses are rejected."""
        with pytest.raises(InvalidRequest):
            transition("confirmed", "no_show", Actor.ADMIN, NOW, NOW)
