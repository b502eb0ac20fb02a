"""
Fleet module.

Aircraft records that bookings reserve.
"""
