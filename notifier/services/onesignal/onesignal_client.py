import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import httpx

from notifier.config.settings import settings
from notifier.utils.logging import get_logger

logger = get_logger()

CONFIG_MISSING_ERROR = (
    "OneSignal configuration missing. Please set ONESIGNAL_APP_ID and "
    "ONESIGNAL_REST_API_KEY in environment variables."
)
EMPTY_API_KEY_ERROR = "ONESIGNAL_REST_API_KEY is empty. Please check your .env file."
AUTH_FAILED_ERROR = (
    "OneSignal authentication failed. Please verify your ONESIGNAL_REST_API_KEY is "
    "correct in your .env file. Make sure to restart the server after updating "
    "environment variables."
)
NOT_SUBSCRIBED_ERROR = (
    "Users are not subscribed to notifications. Make sure users have: "
    "1) Granted notification permission, 2) Set their External User ID in OneSignal "
    "(the mobile app should do this automatically on login)."
)
NO_RECIPIENTS_ERROR = (
    "No recipients specified. Provide external user IDs, player IDs, or broadcast."
)


# Recipient sets
@dataclass(frozen=True)
class Broadcast:
    """Every subscribed device of the app."""


@dataclass(frozen=True)
class ExternalIds:
    """Users addressed by the External User ID the mobile app registers (our user ID)."""

    ids: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "ids", tuple(self.ids))


@dataclass(frozen=True)
class PlayerIds:
    """
    Legacy addressing by OneSignal player (device) IDs.

    Accepted for callers that already hold device IDs. Dispatch never builds
    one: users are stored without a device ID and addressed by ExternalIds.
    """

    ids: Tuple[str, ...]

    def __post_init__(self):
        object.__setattr__(self, "ids", tuple(self.ids))


RecipientSet = Union[Broadcast, ExternalIds, PlayerIds]


@dataclass
class DeliveryResult:
    """Normalized outcome of one OneSignal API call"""

    success: bool
    notification_id: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    response: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def failed(
        cls,
        error: str,
        status_code: Optional[int] = None,
        response: Optional[Dict[str, Any]] = None,
    ) -> "DeliveryResult":
        return cls(
            success=False,
            error=error,
            status_code=status_code,
            response=response or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.notification_id:
            result["notificationId"] = self.notification_id
        if self.error:
            result["error"] = self.error
        return result


class OneSignalClient:
    """Client for the OneSignal "create notification" REST endpoint."""

    def __init__(
        self,
        app_id: Optional[str],
        rest_api_key: Optional[str],
        api_url: str = "https://onesignal.com/api/v1/notifications",
        broadcast_segment: str = "Subscribed Users",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = app_id
        self.rest_api_key = rest_api_key
        self.api_url = api_url
        self.broadcast_segment = broadcast_segment
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(
        cls, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "OneSignalClient":
        return cls(
            app_id=settings.ONESIGNAL_APP_ID,
            rest_api_key=settings.ONESIGNAL_REST_API_KEY,
            api_url=settings.ONESIGNAL_API_URL,
            broadcast_segment=settings.ONESIGNAL_BROADCAST_SEGMENT,
            timeout=settings.ONESIGNAL_TIMEOUT_SECONDS,
            transport=transport,
        )

    def check_configuration(self) -> Optional[str]:
        """Return the configuration error, or None when the client can send."""
        if not self.app_id or self.rest_api_key is None or self.rest_api_key == "":
            return CONFIG_MISSING_ERROR
        if not self.rest_api_key.strip():
            return EMPTY_API_KEY_ERROR
        return None

    def build_payload(
        self,
        title: str,
        body: str,
        recipients: RecipientSet,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Build the request body, or None when the recipient set addresses nobody."""
        payload: Dict[str, Any] = {
            "app_id": self.app_id,
            "headings": {"en": title},
            "contents": {"en": body},
        }
        if metadata:
            payload["data"] = metadata

        if isinstance(recipients, Broadcast):
            payload["included_segments"] = [self.broadcast_segment]
        elif isinstance(recipients, ExternalIds) and recipients.ids:
            payload["include_external_user_ids"] = list(recipients.ids)
        elif isinstance(recipients, PlayerIds) and recipients.ids:
            payload["include_player_ids"] = list(recipients.ids)
        else:
            return None

        return payload

    async def send(
        self,
        title: str,
        body: str,
        recipients: RecipientSet,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DeliveryResult:
        """
        Send one push notification.

        Never raises for transport or API problems; every failure is reported
        as DeliveryResult(success=False) with an operator-facing message.
        Exactly one HTTP request is made, and only when the client is configured
        and the recipient set is non-empty.
        """
        config_error = self.check_configuration()
        if config_error:
            logger.error(f"OneSignal send skipped: {config_error}")
            return DeliveryResult.failed(config_error)

        payload = self.build_payload(title, body, recipients, metadata)
        if payload is None:
            return DeliveryResult.failed(NO_RECIPIENTS_ERROR)

        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Authorization": f"Basic {self.rest_api_key}",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.api_url, headers=headers, json=payload
                )
        except httpx.TimeoutException as e:
            logger.error(f"OneSignal request timed out after {self.timeout}s: {e}")
            return DeliveryResult.failed(
                f"OneSignal request timed out after {self.timeout} seconds. "
                "Check connectivity to the OneSignal API."
            )
        except httpx.RequestError as e:
            logger.error(f"OneSignal request failed: {e}")
            return DeliveryResult.failed(
                f"OneSignal request failed: {e}. Check connectivity to the OneSignal API."
            )

        return self.parse_response(response)

    def parse_response(self, response: httpx.Response) -> DeliveryResult:
        """Turn an HTTP response into a DeliveryResult, inspecting `errors` even on 2xx."""
        response_data = _safe_json(response)
        errors = _collect_errors(response_data.get("errors"))

        if not response.is_success:
            logger.error(
                f"OneSignal API error ({response.status_code} {response.reason_phrase}): "
                f"{', '.join(errors) or 'no error details'}"
            )

            if response.status_code in (401, 403):
                return DeliveryResult.failed(
                    AUTH_FAILED_ERROR, response.status_code, response_data
                )

            message = (
                ", ".join(errors)
                or response_data.get("message")
                or f"OneSignal API error ({response.status_code}): {response.reason_phrase}"
            )
            return DeliveryResult.failed(message, response.status_code, response_data)

        if errors:
            error_message = ", ".join(errors)
            if "not subscribed" in error_message.lower():
                return DeliveryResult.failed(
                    NOT_SUBSCRIBED_ERROR, response.status_code, response_data
                )
            return DeliveryResult.failed(
                f"OneSignal API errors: {error_message}",
                response.status_code,
                response_data,
            )

        notification_id = (
            response_data.get("id")
            or response_data.get("notification_id")
            or response_data.get("notificationId")
        )
        if not notification_id:
            logger.error(
                f"OneSignal API response without notification ID: {json.dumps(response_data)}"
            )
            return DeliveryResult.failed(
                "Failed to send notification. No notification ID returned. "
                f"Response: {json.dumps(response_data)}",
                response.status_code,
                response_data,
            )

        return DeliveryResult(
            success=True,
            notification_id=str(notification_id),
            status_code=response.status_code,
            response=response_data,
        )


def _safe_json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {"message": response.text} if response.text else {}
    return data if isinstance(data, dict) else {"errors": data}


def _collect_errors(errors: Any) -> List[str]:
    """
    OneSignal reports errors either as a list of strings or as a dict keyed by
    error kind, e.g. {"invalid_external_user_ids": ["..."]}.
    """
    if not errors:
        return []
    if isinstance(errors, str):
        return [errors]
    if isinstance(errors, dict):
        collected = []
        for kind, detail in errors.items():
            if isinstance(detail, (list, tuple)):
                detail = ", ".join(str(item) for item in detail)
            collected.append(f"{kind}: {detail}" if detail else str(kind))
        return collected
    if isinstance(errors, (list, tuple)):
        return [str(item) for item in errors if item]
    return [str(errors)]


def get_onesignal_client() -> OneSignalClient:
    """Dependency to provide a OneSignalClient configured from settings"""
    return OneSignalClient.from_settings()
