"""Availability and period statistics."""

from availability.aggregator import CalendarStats, RoomAvailability, availability, occupancy_rate, stats

__all__ = ["CalendarStats", "RoomAvailability", "availability", "occupancy_rate", "stats"]
