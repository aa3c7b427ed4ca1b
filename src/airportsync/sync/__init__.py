"""Sync pipeline: fetch, decode, replace, notify."""

from .notify import SYNC_TOPIC, CompletionChannel
from .orchestrator import AirportSync

__all__ = [
    "AirportSync",
    "CompletionChannel",
    "SYNC_TOPIC",
]
