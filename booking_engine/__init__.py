"""Reservation engine for shared park amenities and venues."""
