"""
Scheduling module.

Instructor rosters, bookings, conflict checks and the booking lifecycle.
"""
