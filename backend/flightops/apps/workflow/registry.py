from __future__ import annotations

from .guards import guard_checkin_approved, guard_checkin_readings, guard_checkout_readings

WORKFLOWS = {
    "booking": {
        "transitions": {
            "unconfirmed": {
                "confirmed": [],
                "briefing": [],
                "checkout": [guard_checkout_readings],
                "cancelled": [],
            },
            "confirmed": {
                "briefing": [],
                "checkout": [guard_checkout_readings],
                "cancelled": [],
            },
            "briefing": {
                "checkout": [guard_checkout_readings],
                "cancelled": [],
            },
            "checkout": {
                "flying": [],
                "cancelled": [],
            },
            "flying": {
                "checkin": [guard_checkin_readings],
                "cancelled": [],
            },
            "checkin": {
                "complete": [guard_checkin_approved],
                "cancelled": [],
            },
            "complete": {
                "debrief": [],
                "cancelled": [],
            },
            "debrief": {
                "cancelled": [],
            },
            "cancelled": {},
        }
    },
}
