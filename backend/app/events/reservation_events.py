"""Reservation domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ReservationCreated:
    """Fired after a reservation is committed."""

    reservation_id: str
    tenant_id: str
    start_at: datetime
    end_at: datetime
    staff_id: Optional[str] = None
    location_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReservationCancelled:
    """Fired after a reservation is cancelled."""

    reservation_id: str
    tenant_id: str
    cancelled_at: datetime
    cancelled_by: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ReservationRescheduled:
    """Fired after a reservation moves to a new window."""

    reservation_id: str
    tenant_id: str
    previous_start_at: datetime
    previous_end_at: datetime
    start_at: datetime
    end_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
