from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from airportsync.core.events import pack, unpack

# Status reported when no HTTP response was received at all.
NO_STATUS = 0


class Airport(BaseModel):
    """
    Airport record as persisted by the store.
    ``runway_length`` is None when the source reported no value.
    """

    code: str = Field(..., description="Airport code, unique key (e.g. SFO)")
    icao: str = Field(..., description="ICAO field; carries the source URL by default")
    name: str
    city: str
    state: str

    latitude: float = Field(..., description="Latitude in decimal degrees")
    longitude: float = Field(..., description="Longitude in decimal degrees")

    runway_length: Optional[int] = Field(
        None, description="Longest runway length (ft), if provided"
    )

    @field_validator("code")
    @classmethod
    def _check_code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("code must be non-empty")
        return v

    def __repr__(self) -> str:  # pragma: no cover
        return f"Airport({self.code} {self.name!r})"


class SyncCompleted(BaseModel):
    """Terminal event of one sync attempt.

    ``status_code`` is the HTTP status on both paths, or :data:`NO_STATUS`
    when the request never produced a response. ``error`` names the failure
    kind (transport, decode, store or cancelled); it and ``count`` are
    diagnostics only.
    """

    success: bool
    status_code: int = NO_STATUS
    error: Optional[str] = None
    count: Optional[int] = None

    def to_payload(self) -> bytes:
        return pack(self.model_dump())

    @classmethod
    def from_payload(cls, payload: bytes) -> "SyncCompleted":
        return cls.model_validate(unpack(payload))


__all__ = [
    "NO_STATUS",
    "Airport",
    "SyncCompleted",
]
