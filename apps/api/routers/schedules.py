"""
Quote Schedules API Router

CRUD for quote delivery schedules, the default schedule, next-delivery
previews and on-demand delivery runs.
"""

from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from core.exceptions import NotFoundError, raise_for_result
from schemas import (
    DeliveryBatchResponse,
    DeliveryRecordResponse,
    MarkDeliveredRequest,
    NextDeliveryResponse,
    QuoteResponse,
    ScheduleCreate,
    ScheduleEnabledUpdate,
    ScheduleMethodUpdate,
    ScheduleResponse,
    ScheduleSummaryResponse,
    ScheduleTimeUpdate,
    ScheduleUpdate,
)
from services.quote_schedule import DeliveryMethod, Schedule
from services.schedule_service import ScheduleService, get_schedule_service

router = APIRouter(prefix="/v1/schedules", tags=["Quote Schedules"])


def _require_schedule(service: ScheduleService, schedule_id: str) -> Schedule:
    result = service.get_schedule(schedule_id)
    raise_for_result(result, "Schedule", schedule_id)
    if result.value is None:
        raise NotFoundError("Schedule", schedule_id)
    return result.value


@router.get("", response_model=List[ScheduleResponse])
def list_schedules(
    enabled_only: bool = Query(False),
    method: Optional[DeliveryMethod] = Query(None, description="Only schedules delivering via this surface"),
    service: ScheduleService = Depends(get_schedule_service),
):
    """List schedules ordered by time of day."""
    if method == DeliveryMethod.NOTIFICATION:
        result = service.get_notification_schedules()
    elif method == DeliveryMethod.WIDGET:
        result = service.get_widget_schedules()
    elif enabled_only:
        result = service.get_enabled_schedules()
    else:
        result = service.get_all_schedules()
    raise_for_result(result, "Schedules")
    return [ScheduleResponse.from_schedule(s) for s in result.value]


@router.post("", response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    payload: ScheduleCreate,
    service: ScheduleService = Depends(get_schedule_service),
):
    result = service.create_schedule(payload.to_schedule())
    raise_for_result(result, "Schedule")
    return ScheduleResponse.from_schedule(result.value)


@router.delete("", status_code=status.HTTP_200_OK)
def delete_all_schedules(service: ScheduleService = Depends(get_schedule_service)):
    """Delete every schedule and its delivery history."""
    result = service.delete_all_schedules()
    raise_for_result(result, "Schedules")
    return {"deleted": result.value}


@router.get("/summary", response_model=ScheduleSummaryResponse)
def schedule_summary(service: ScheduleService = Depends(get_schedule_service)):
    total = service.get_schedule_count()
    raise_for_result(total, "Schedules")
    enabled = service.get_enabled_schedule_count()
    raise_for_result(enabled, "Schedules")
    most_recent = service.get_most_recent_delivery_date()
    raise_for_result(most_recent, "Schedules")
    return ScheduleSummaryResponse(
        total=total.value,
        enabled=enabled.value,
        has_enabled_schedules=enabled.value > 0,
        most_recent_delivery_date=most_recent.value,
    )


@router.get("/default", response_model=ScheduleResponse)
def get_default_schedule(service: ScheduleService = Depends(get_schedule_service)):
    result = service.get_default_schedule()
    raise_for_result(result, "Schedule", "default")
    if result.value is None:
        raise NotFoundError("Schedule", "default")
    return ScheduleResponse.from_schedule(result.value)


@router.post("/default", response_model=ScheduleResponse)
def ensure_default_schedule(service: ScheduleService = Depends(get_schedule_service)):
    """Return the default schedule, creating it (09:00, both surfaces) if missing."""
    result = service.ensure_default_schedule()
    raise_for_result(result, "Schedule", "default")
    return ScheduleResponse.from_schedule(result.value)


@router.get("/ready", response_model=List[ScheduleResponse])
def ready_schedules(service: ScheduleService = Depends(get_schedule_service)):
    """Schedules that would deliver if a batch ran now."""
    result = service.get_schedules_ready_for_delivery()
    raise_for_result(result, "Schedules")
    return [ScheduleResponse.from_schedule(s) for s in result.value]


@router.post("/deliver", response_model=DeliveryBatchResponse)
def deliver_now(service: ScheduleService = Depends(get_schedule_service)):
    """
    Run one delivery batch immediately.

    Same semantics as the hourly task: only due schedules deliver, and a
    schedule never delivers twice on one local day.
    """
    report = service.deliver_due_quotes()
    return DeliveryBatchResponse(**report.to_dict())


@router.get("/{schedule_id}", response_model=ScheduleResponse)
def get_schedule(schedule_id: str, service: ScheduleService = Depends(get_schedule_service)):
    return ScheduleResponse.from_schedule(_require_schedule(service, schedule_id))


@router.patch("/{schedule_id}", response_model=ScheduleResponse)
def update_schedule(
    schedule_id: str,
    payload: ScheduleUpdate,
    service: ScheduleService = Depends(get_schedule_service),
):
    current = _require_schedule(service, schedule_id)
    result = service.update_schedule(payload.apply_to(current))
    raise_for_result(result, "Schedule", schedule_id)
    return ScheduleResponse.from_schedule(result.value)


@router.put("/{schedule_id}/enabled", response_model=ScheduleResponse)
def set_schedule_enabled(
    schedule_id: str,
    payload: ScheduleEnabledUpdate,
    service: ScheduleService = Depends(get_schedule_service),
):
    raise_for_result(service.update_schedule_enabled(schedule_id, payload.enabled), "Schedule", schedule_id)
    return ScheduleResponse.from_schedule(_require_schedule(service, schedule_id))


@router.put("/{schedule_id}/time", response_model=ScheduleResponse)
def set_schedule_time(
    schedule_id: str,
    payload: ScheduleTimeUpdate,
    service: ScheduleService = Depends(get_schedule_service),
):
    raise_for_result(
        service.update_schedule_time(schedule_id, payload.hour, payload.minute), "Schedule", schedule_id,
    )
    return ScheduleResponse.from_schedule(_require_schedule(service, schedule_id))


@router.put("/{schedule_id}/delivery-method", response_model=ScheduleResponse)
def set_delivery_method(
    schedule_id: str,
    payload: ScheduleMethodUpdate,
    service: ScheduleService = Depends(get_schedule_service),
):
    raise_for_result(
        service.update_delivery_method(schedule_id, payload.delivery_method), "Schedule", schedule_id,
    )
    return ScheduleResponse.from_schedule(_require_schedule(service, schedule_id))


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(schedule_id: str, service: ScheduleService = Depends(get_schedule_service)):
    raise_for_result(service.delete_schedule(schedule_id), "Schedule", schedule_id)


@router.get("/{schedule_id}/next-delivery", response_model=NextDeliveryResponse)
def next_delivery(schedule_id: str, service: ScheduleService = Depends(get_schedule_service)):
    result = service.get_next_delivery_time(schedule_id)
    raise_for_result(result, "Schedule", schedule_id)
    return NextDeliveryResponse(
        schedule_id=schedule_id,
        next_delivery_at=result.value,
        timezone=str(service.zone),
    )


@router.get("/{schedule_id}/next-quote", response_model=Optional[QuoteResponse])
def preview_next_quote(schedule_id: str, service: ScheduleService = Depends(get_schedule_service)):
    """Preview the quote this schedule would deliver next (null if none is eligible)."""
    result = service.get_next_quote_for_schedule(schedule_id)
    raise_for_result(result, "Schedule", schedule_id)
    return QuoteResponse.from_quote(result.value) if result.value else None


@router.post(
    "/{schedule_id}/deliveries",
    response_model=DeliveryRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
def mark_delivered(
    schedule_id: str,
    payload: MarkDeliveredRequest,
    service: ScheduleService = Depends(get_schedule_service),
):
    """Record a delivery made outside the batch (404 for an unknown schedule or quote, 409 if already delivered today)."""
    result = service.mark_quote_delivered(schedule_id, payload.quote_id)
    # Either the schedule or the quote can be missing; the message says which.
    raise_for_result(result)
    return DeliveryRecordResponse.from_record(result.value)
