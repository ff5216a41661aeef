# backend/app/routes/v1/reservations.py
"""
Reservation routes - API v1

Tenant-scoped endpoints under /api/v1/tenants/{tenant_id}.
All business logic delegated to the reservation services; these handlers
only translate HTTP to service calls and domain errors to HTTP errors.

Endpoints:
    POST /reservations - Internal (staff) reservation
    POST /reservations/conflicts - Read-only conflict preview
    POST /reservations/{reservation_id}/cancel - Cancel a reservation
    POST /reservations/{reservation_id}/reschedule - Move a reservation
    GET /reservations/{reservation_id} - Reservation details
    POST /public/bookings - Storefront booking (lock-wrapped, pending)
    GET /availability/open-windows - Candidate windows for alternatives
    POST /slot-locks - Acquire or renew an advisory slot lock
    DELETE /slot-locks/{lock_id} - Release a slot lock
"""

import asyncio
from datetime import datetime, timedelta
import logging
from typing import List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, Response, status

from ...api.dependencies import (
    get_actor,
    get_conflict_detector,
    get_public_booking_service,
    get_reservation_creator,
    get_reservation_lifecycle_service,
    get_slot_lock_manager,
)
from ...core.exceptions import DomainException
from ...schemas.reservation import (
    CancelRequest,
    ConflictCheckRequest,
    ConflictResult,
    OpenWindow,
    PublicBookingCreate,
    ReservationActor,
    ReservationCreate,
    ReservationResponse,
    RescheduleRequest,
    SlotLockGrant,
    SlotLockRequest,
)
from ...services.conflict_detector import ConflictDetector
from ...services.public_booking_service import PublicBookingService
from ...services.reservation_creator import ReservationCreator
from ...services.reservation_lifecycle import ReservationLifecycleService
from ...services.slot_lock_manager import SlotLockManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reservations"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


# ============================================================================
# SECTION 1: Reservations
# ============================================================================


@router.post(
    "/reservations",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    tenant_id: str = Path(..., min_length=1),
    payload: ReservationCreate = Body(...),
    actor: Optional[ReservationActor] = Depends(get_actor),
    creator: ReservationCreator = Depends(get_reservation_creator),
) -> ReservationResponse:
    """Create a staff-initiated reservation (confirmed unless stated otherwise)."""
    try:
        reservation = await asyncio.to_thread(creator.create, tenant_id, payload, actor)
        return ReservationResponse.model_validate(reservation)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/reservations/conflicts", response_model=ConflictResult)
async def check_reservation_conflicts(
    tenant_id: str = Path(..., min_length=1),
    payload: ConflictCheckRequest = Body(...),
    detector: ConflictDetector = Depends(get_conflict_detector),
) -> ConflictResult:
    """Preview conflicts for a window without creating anything."""
    try:
        return await asyncio.to_thread(
            detector.check_conflicts,
            tenant_id,
            payload.start_at,
            payload.end_at,
            payload.resource_ids,
            payload.exclude_reservation_id,
            payload.staff_ids,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/reservations/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    tenant_id: str = Path(..., min_length=1),
    reservation_id: str = Path(...),
    lifecycle: ReservationLifecycleService = Depends(get_reservation_lifecycle_service),
) -> ReservationResponse:
    try:
        reservation = await asyncio.to_thread(lifecycle.get, tenant_id, reservation_id)
        return ReservationResponse.model_validate(reservation)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationResponse)
async def cancel_reservation(
    tenant_id: str = Path(..., min_length=1),
    reservation_id: str = Path(...),
    payload: Optional[CancelRequest] = Body(None),
    actor: Optional[ReservationActor] = Depends(get_actor),
    lifecycle: ReservationLifecycleService = Depends(get_reservation_lifecycle_service),
) -> ReservationResponse:
    try:
        reservation = await asyncio.to_thread(
            lifecycle.cancel, tenant_id, reservation_id, actor, payload.reason if payload else None
        )
        return ReservationResponse.model_validate(reservation)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/reservations/{reservation_id}/reschedule", response_model=ReservationResponse)
async def reschedule_reservation(
    tenant_id: str = Path(..., min_length=1),
    reservation_id: str = Path(...),
    payload: RescheduleRequest = Body(...),
    actor: Optional[ReservationActor] = Depends(get_actor),
    lifecycle: ReservationLifecycleService = Depends(get_reservation_lifecycle_service),
) -> ReservationResponse:
    try:
        reservation = await asyncio.to_thread(
            lifecycle.reschedule,
            tenant_id,
            reservation_id,
            payload.start_at,
            payload.end_at,
            actor,
            payload.session_id,
        )
        return ReservationResponse.model_validate(reservation)
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# SECTION 2: Public booking and availability search
# ============================================================================


@router.post(
    "/public/bookings",
    response_model=ReservationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_public_booking(
    tenant_id: str = Path(..., min_length=1),
    payload: PublicBookingCreate = Body(...),
    booking_service: PublicBookingService = Depends(get_public_booking_service),
) -> ReservationResponse:
    """Storefront booking; lands as pending."""
    try:
        reservation = await asyncio.to_thread(booking_service.book, tenant_id, payload)
        return ReservationResponse.model_validate(reservation)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/availability/open-windows", response_model=List[OpenWindow])
async def get_open_windows(
    tenant_id: str = Path(..., min_length=1),
    window_start: datetime = Query(...),
    window_end: datetime = Query(...),
    duration_minutes: int = Query(..., ge=5, le=720),
    step_minutes: Optional[int] = Query(None, ge=5, le=720),
    resource_ids: Optional[List[str]] = Query(None),
    detector: ConflictDetector = Depends(get_conflict_detector),
) -> List[OpenWindow]:
    """Candidate windows in a range, flagged available or not."""
    try:
        return await asyncio.to_thread(
            detector.find_open_windows,
            tenant_id,
            window_start,
            window_end,
            timedelta(minutes=duration_minutes),
            timedelta(minutes=step_minutes) if step_minutes else None,
            resource_ids,
        )
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# SECTION 3: Slot locks
# ============================================================================


@router.post("/slot-locks", response_model=SlotLockGrant, status_code=status.HTTP_201_CREATED)
async def acquire_slot_lock(
    tenant_id: str = Path(..., min_length=1),
    payload: SlotLockRequest = Body(...),
    lock_manager: SlotLockManager = Depends(get_slot_lock_manager),
) -> SlotLockGrant:
    """Hold a slot while a customer completes checkout."""
    try:
        return await asyncio.to_thread(
            lock_manager.acquire_lock,
            tenant_id,
            payload.start_at,
            payload.end_at,
            payload.resource_id,
            payload.session_id,
            payload.ttl_minutes,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.delete(
    "/slot-locks/{lock_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    response_model=None,
)
async def release_slot_lock(
    tenant_id: str = Path(..., min_length=1),
    lock_id: str = Path(...),
    lock_manager: SlotLockManager = Depends(get_slot_lock_manager),
) -> Response:
    """Release a slot lock. Unknown ids are not an error."""
    try:
        await asyncio.to_thread(lock_manager.release_lock, lock_id)
    except DomainException as e:
        handle_domain_exception(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
