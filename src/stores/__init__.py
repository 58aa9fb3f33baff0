"""Stay record store contract and filters."""

from stores.base import RoomFilter, StayFilter, StayStore

__all__ = ["RoomFilter", "StayFilter", "StayStore"]
