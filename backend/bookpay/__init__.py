"""Booking payment reconciliation service."""
