"""Booking core services.

``slots``, ``conflicts``, ``policy`` and ``pricing`` are pure;
``booking_services`` owns the database-backed lifecycle operations.
"""
