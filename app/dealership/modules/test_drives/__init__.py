"""
Test drives module.

A slot is (car, date, start time); PENDING and CONFIRMED bookings hold it.
"""
