"""Payload decoding and persistence for airport records."""

from .decoder import decode_airport, decode_airports
from .store import AirportStore

__all__ = [
    "AirportStore",
    "decode_airport",
    "decode_airports",
]
