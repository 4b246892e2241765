# path: tracking_api/schemas.py
"""Pydantic models for tracked entities, beacons and request payloads.

These classes define the structure of data exchanged between the stores, the
services and the API. Tracked records are returned by the stores as fully
validated models, so the services and the WebSocket push never deal with raw
database rows.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    admin = "admin"
    operator = "operator"
    viewer = "viewer"


class EntityKind(str, Enum):
    user = "user"
    item = "item"


class Location(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float
    z: float = 0.0


class HistoricalEntry(BaseModel):
    """A superseded `{location, date}` snapshot."""

    location: Location
    date: datetime


class TrackedEntity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    location: Location
    date: datetime
    historical_data: List[HistoricalEntry] = Field(
        default_factory=list, alias="historicalData"
    )


class TrackedUser(TrackedEntity):
    user_id: str


class TrackedItem(TrackedEntity):
    code: str
    name: Optional[str] = None
    description: Optional[str] = None


class TrackedItemIn(BaseModel):
    name: str = Field(..., description="Display label of the item")
    description: Optional[str] = Field(None, description="Free text")
    location: Location


class UserOut(BaseModel):
    uid: str
    username: str
    role: Role
    created_at: datetime


class Beacon(BaseModel):
    id: str = Field(..., description="Identifier of the beacon object in the BIM model")
    project_id: str
    name: Optional[str] = Field(None, description="Human‑readable name")
    id_beacon: Optional[str] = Field(
        None, description="Identifier broadcast by the physical beacon"
    )
    is_active: bool = False
    location: Location


class BeaconUidUpdate(BaseModel):
    id_beacon: str = Field(..., min_length=1, max_length=64)


class BeaconReading(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    id_beacon: str = Field(..., min_length=1, max_length=64)
    rssi: float = Field(..., ge=-130, le=20, description="Received signal strength in dBm")


class ProximityReport(BaseModel):
    readings: List[BeaconReading] = Field(..., min_length=1)
