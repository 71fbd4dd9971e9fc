"""Async Z-API (WhatsApp) client with delivery logging.

Every send is bracketed by the delivery log: a PENDING row is committed
before the HTTP call and updated to SUCCESS or FAILED after it. Credentials
are read from the settings store on every call so admins can rotate them
without a restart.
"""

import logging
import uuid
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from buscador.clock import ReferenceClock
from buscador.config import settings
from buscador.models.whatsapp_log import WhatsAppMessageType
from buscador.notifications import delivery_log
from buscador.notifications.formatting import (
    normalize_phone,
    render_connection_test_message,
    render_price_alert_message,
    render_product_update_message,
    render_report_message,
)
from buscador.services.settings_service import ZApiCredentials, get_zapi_credentials

logger = logging.getLogger(__name__)


class ZApiError(Exception):
    """Z-API rejected the request or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


def _json_body(response: httpx.Response) -> dict[str, Any]:
    """Decode a JSON object body, tolerating empty or non-JSON responses."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {"data": data}


def _provider_error_message(response: httpx.Response) -> str:
    """Prefer the provider's own ``message`` field over a generic status text."""
    data = _json_body(response)
    message = data.get("message") or data.get("error")
    if message:
        return str(message)
    return f"Request failed with status code {response.status_code}"


class ZApiClient:
    """Send WhatsApp messages through Z-API.

    Args:
        session_factory: Opens short-lived sessions for settings reads and
            delivery log writes; each write is committed immediately.
        clock: Timestamps log entries.
        timeout: HTTP timeout in seconds.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: ReferenceClock,
        timeout: float = settings.zapi_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._timeout = timeout
        self._transport = transport

    async def _resolve_credentials(self) -> ZApiCredentials:
        try:
            async with self._session_factory() as session:
                return await get_zapi_credentials(session)
        except (SQLAlchemyError, OSError):
            logger.warning("Could not load Z-API settings from the database, using environment values")
            return ZApiCredentials.from_settings()

    async def _request(
        self,
        credentials: ZApiCredentials,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if credentials.client_token:
            headers["Client-Token"] = credentials.client_token

        async with httpx.AsyncClient(
            base_url=credentials.instance_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            logger.debug("Z-API request: %s %s", method, path)
            try:
                response = await client.request(method, path, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                message = _provider_error_message(e.response)
                logger.error("Z-API response error: %s %s", e.response.status_code, message)
                raise ZApiError(
                    message,
                    status_code=e.response.status_code,
                    payload=_json_body(e.response),
                ) from e
            except httpx.HTTPError as e:
                logger.error("Z-API request error: %r", e)
                raise ZApiError(str(e) or e.__class__.__name__) from e

        logger.debug("Z-API response: %s", response.status_code)
        return _json_body(response)

    async def _send_logged(
        self,
        path: str,
        payload: dict[str, Any],
        *,
        log_text: str,
        message_type: WhatsAppMessageType,
        user_id: uuid.UUID | None,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        credentials = await self._resolve_credentials()

        async with self._session_factory() as session:
            log = await delivery_log.record_attempt(
                session,
                phone=payload["phone"],
                message_type=message_type,
                message=log_text,
                clock=self._clock,
                user_id=user_id,
                metadata=metadata,
            )
            await session.commit()
            log_id = log.id

        try:
            data = await self._request(credentials, "POST", path, payload)
        except ZApiError as e:
            async with self._session_factory() as session:
                await delivery_log.record_outcome(
                    session, log_id, success=False, clock=self._clock, error_message=e.message
                )
                await session.commit()
            logger.error("Failed to send WhatsApp %s to %s: %s", message_type.value, payload["phone"], e.message)
            raise

        async with self._session_factory() as session:
            await delivery_log.record_outcome(
                session,
                log_id,
                success=True,
                clock=self._clock,
                zapi_message_id=data.get("messageId"),
            )
            await session.commit()

        logger.info("WhatsApp %s sent to %s", message_type.value, payload["phone"])
        return data

    async def check_connection(self) -> bool:
        """Whether the Z-API instance reports a connected phone. Never logged to the ledger."""
        credentials = await self._resolve_credentials()
        try:
            data = await self._request(credentials, "GET", "/status")
        except ZApiError:
            logger.exception("Z-API connection check failed")
            return False
        return data.get("connected") is True

    async def send_text_message(
        self,
        phone: str,
        message: str,
        user_id: uuid.UUID | None = None,
        message_type: WhatsAppMessageType | None = None,
    ) -> dict[str, Any]:
        """Send a text message.

        Raises:
            ZApiError: The provider failed; the log entry is already marked FAILED.
        """
        return await self._send_logged(
            "/send-text",
            {"phone": normalize_phone(phone), "message": message},
            log_text=message,
            message_type=message_type or WhatsAppMessageType.TEXT,
            user_id=user_id,
        )

    async def send_image(
        self,
        phone: str,
        image: str,
        caption: str | None = None,
        user_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        return await self._send_logged(
            "/send-image",
            {"phone": normalize_phone(phone), "image": image, "caption": caption or ""},
            log_text=caption or image,
            message_type=WhatsAppMessageType.IMAGE,
            user_id=user_id,
            metadata={"image": image},
        )

    async def send_document(
        self,
        phone: str,
        document: str,
        file_name: str | None = None,
        user_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        file_name = file_name or "documento.pdf"
        return await self._send_logged(
            "/send-document",
            {"phone": normalize_phone(phone), "document": document, "fileName": file_name},
            log_text=file_name,
            message_type=WhatsAppMessageType.DOCUMENT,
            user_id=user_id,
            metadata={"document": document},
        )

    async def send_button_list(
        self,
        phone: str,
        message: str,
        buttons: list[dict[str, str]],
        user_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        """Send a message with reply buttons. Each button is ``{"id": ..., "label": ...}``."""
        button_list = [{"id": button["id"], "label": button["label"]} for button in buttons]
        return await self._send_logged(
            "/send-button-list",
            {
                "phone": normalize_phone(phone),
                "message": message,
                "buttonList": {"buttons": button_list},
            },
            log_text=message,
            message_type=WhatsAppMessageType.BUTTON,
            user_id=user_id,
            metadata={"buttons": button_list},
        )

    async def send_product_notification(
        self,
        phone: str,
        name: str,
        supplier: str,
        new_price: float,
        old_price: float | None = None,
        change: float | None = None,
        link: str | None = None,
        user_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        message = render_product_update_message(name, supplier, new_price, old_price, change, link)
        return await self.send_text_message(
            phone, message, user_id, WhatsAppMessageType.PRODUCT_NOTIFICATION
        )

    async def send_price_alert(
        self,
        phone: str,
        name: str,
        supplier: str,
        price: float,
        threshold: float,
        link: str | None = None,
        user_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        message = render_price_alert_message(name, supplier, price, threshold, link)
        return await self.send_text_message(phone, message, user_id, WhatsAppMessageType.PRICE_ALERT)

    async def send_product_report(
        self,
        phone: str,
        total_products: int,
        price_changes: int,
        avg_change: float,
        period: str,
        link: str | None = None,
        user_id: uuid.UUID | None = None,
    ) -> dict[str, Any]:
        message = render_report_message(total_products, price_changes, avg_change, period, link)
        return await self.send_text_message(phone, message, user_id, WhatsAppMessageType.REPORT)

    async def send_test_message(
        self, phone: str, user_id: uuid.UUID | None = None
    ) -> dict[str, Any]:
        return await self.send_text_message(
            phone,
            render_connection_test_message(),
            user_id,
            WhatsAppMessageType.TEST_NOTIFICATION,
        )
