"""WhatsApp notifications API router (admin only).

Manual sends, connection checks, template previews, delivery log inspection
and an on-demand run of the subscription scan.
"""

import uuid
from datetime import timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from buscador.api.deps import (
    get_clock,
    get_current_admin_user,
    get_db,
    get_notification_scheduler,
    get_zapi_client,
)
from buscador.clock import ReferenceClock
from buscador.config import settings
from buscador.models.user import User
from buscador.models.whatsapp_log import WhatsAppLog, WhatsAppLogStatus, WhatsAppMessageType
from buscador.notifications import delivery_log
from buscador.notifications.formatting import (
    render_expired_message,
    render_expiring_message,
    render_tester_expired_message,
)
from buscador.notifications.scheduler import SchedulerBusyError, SubscriptionNotificationScheduler
from buscador.notifications.zapi_client import ZApiClient, ZApiError
from buscador.schemas.whatsapp import (
    ConnectionStatusResponse,
    ExpiringNoticeRequest,
    PhoneRequest,
    SendButtonRequest,
    SendDocumentRequest,
    SendImageRequest,
    SendPriceAlertRequest,
    SendProductRequest,
    SendReportRequest,
    SendResponse,
    SendTextRequest,
    WhatsAppLogListResponse,
    WhatsAppLogStatsResponse,
)

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])

SAMPLE_USER_NAME = "Cliente Teste"
SAMPLE_AMOUNT = Decimal("289.90")


def _provider_failure(e: ZApiError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"WhatsApp provider error: {e.message}",
    )


@router.get(
    "/whatsapp/status",
    response_model=ConnectionStatusResponse,
    summary="Check the Z-API instance connection",
)
async def whatsapp_status(
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> dict:
    return {"connected": await client.check_connection()}


@router.post("/whatsapp/send-text", response_model=SendResponse, summary="Send a text message")
async def send_text(
    body: SendTextRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    try:
        data = await client.send_text_message(body.phone, body.message)
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post("/whatsapp/send-image", response_model=SendResponse, summary="Send an image")
async def send_image(
    body: SendImageRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    try:
        data = await client.send_image(body.phone, body.image, body.caption)
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post("/whatsapp/send-document", response_model=SendResponse, summary="Send a document")
async def send_document(
    body: SendDocumentRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    try:
        data = await client.send_document(body.phone, body.document, body.file_name)
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/send-button",
    response_model=SendResponse,
    summary="Send a message with reply buttons",
)
async def send_button(
    body: SendButtonRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    buttons = [button.model_dump() for button in body.buttons]
    try:
        data = await client.send_button_list(body.phone, body.message, buttons)
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/send-product",
    response_model=SendResponse,
    summary="Send a product price update",
)
async def send_product(
    body: SendProductRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    try:
        data = await client.send_product_notification(
            body.phone,
            body.product_name,
            body.supplier,
            body.price,
            old_price=body.old_price,
            change=body.change,
            link=body.link,
        )
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/send-price-alert",
    response_model=SendResponse,
    summary="Send a price threshold alert",
)
async def send_price_alert(
    body: SendPriceAlertRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    try:
        data = await client.send_price_alert(
            body.phone,
            body.product_name,
            body.supplier,
            body.price,
            body.threshold,
            link=body.link,
        )
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/send-report",
    response_model=SendResponse,
    summary="Send a product report summary",
)
async def send_report(
    body: SendReportRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    try:
        data = await client.send_product_report(
            body.phone,
            body.total_products,
            body.price_changes,
            body.avg_change,
            body.period,
            link=body.link,
        )
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/test",
    response_model=SendResponse,
    summary="Send a connection test message",
)
async def send_test(
    body: PhoneRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    try:
        data = await client.send_test_message(body.phone)
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/test-expiring",
    response_model=SendResponse,
    summary="Preview the expiring-soon reminder on a real phone",
)
async def send_test_expiring(
    body: ExpiringNoticeRequest,
    client: ZApiClient = Depends(get_zapi_client),
    clock: ReferenceClock = Depends(get_clock),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    end_date = clock.utcnow_naive() + timedelta(days=body.days_remaining)
    message = render_expiring_message(
        SAMPLE_USER_NAME, body.days_remaining, end_date, SAMPLE_AMOUNT, clock
    )
    try:
        data = await client.send_text_message(
            body.phone, message, message_type=WhatsAppMessageType.SUBSCRIPTION_REMINDER
        )
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/test-expired",
    response_model=SendResponse,
    summary="Preview the subscription expired notice on a real phone",
)
async def send_test_expired(
    body: PhoneRequest,
    client: ZApiClient = Depends(get_zapi_client),
    clock: ReferenceClock = Depends(get_clock),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    end_date = clock.utcnow_naive() - timedelta(days=1)
    message = render_expired_message(SAMPLE_USER_NAME, end_date, SAMPLE_AMOUNT, clock)
    try:
        data = await client.send_text_message(
            body.phone, message, message_type=WhatsAppMessageType.SUBSCRIPTION_EXPIRED
        )
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.post(
    "/whatsapp/test-tester-expired",
    response_model=SendResponse,
    summary="Preview the trial ended notice on a real phone",
)
async def send_test_tester_expired(
    body: PhoneRequest,
    client: ZApiClient = Depends(get_zapi_client),
    current_user: User = Depends(get_current_admin_user),
) -> SendResponse:
    message = render_tester_expired_message(SAMPLE_USER_NAME, settings.tester_grace_hours)
    try:
        data = await client.send_text_message(
            body.phone, message, message_type=WhatsAppMessageType.TESTER_EXPIRED
        )
    except ZApiError as e:
        raise _provider_failure(e) from e
    return SendResponse.from_provider(data)


@router.get(
    "/whatsapp/logs",
    response_model=WhatsAppLogListResponse,
    summary="List delivery log entries",
)
async def list_whatsapp_logs(
    user_id: uuid.UUID | None = Query(None, description="Only entries for this user"),
    log_status: str | None = Query(None, alias="status", description="pending, success or failed"),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of entries"),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
) -> dict:
    """Most recent entries first."""
    status_filter = None
    if log_status is not None:
        try:
            status_filter = WhatsAppLogStatus(log_status)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status '{log_status}'",
            ) from None

    logs: list[WhatsAppLog] = await delivery_log.list_logs(
        db, user_id=user_id, status=status_filter, limit=limit
    )
    return {"logs": logs, "total": len(logs)}


@router.get(
    "/whatsapp/logs/stats",
    response_model=WhatsAppLogStatsResponse,
    summary="Delivery log counts per status",
)
async def whatsapp_log_stats(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_admin_user),
) -> dict:
    return await delivery_log.count_by_status(db)


@router.post("/scheduler/run", summary="Run the subscription scan now")
async def run_scheduler(
    scheduler: SubscriptionNotificationScheduler = Depends(get_notification_scheduler),
    current_user: User = Depends(get_current_admin_user),
) -> dict:
    """Run one tick synchronously and return its report.

    Raises 409 if a tick (scheduled or manual) is already in progress.
    """
    try:
        report = await scheduler.run_tick()
    except SchedulerBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return report.to_dict()
