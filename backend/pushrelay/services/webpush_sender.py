"""Web Push sender using VAPID (pywebpush)."""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Set

from pywebpush import WebPushException, webpush

from ..exceptions import PermanentChannelError, TransientChannelError
from ..models.pending_notification import DeliveryMethod
from ..schemas.device import WebPushCredential

logger = logging.getLogger(__name__)


@dataclass
class WebPushConfig:
    """VAPID configuration."""
    private_key: Optional[str] = None
    claim_email: Optional[str] = None
    # HTTP statuses meaning the subscription no longer exists
    permanent_statuses: Set[int] = field(default_factory=lambda: {404, 410})
    ttl: int = 86400
    timeout: float = 10.0


class WebPushSender:
    """Sends one payload to one browser push subscription."""

    channel = DeliveryMethod.WEB_PUSH

    def __init__(self, config: WebPushConfig):
        self._config = config
        if not config.private_key:
            logger.info("Web Push disabled: VAPID_PRIVATE_KEY not set")
        elif not config.claim_email:
            logger.warning("Web Push disabled: VAPID_CLAIM_EMAIL not set")

    @property
    def enabled(self) -> bool:
        return bool(self._config.private_key and self._config.claim_email)

    @property
    def vapid_claims(self) -> dict:
        if not self._config.claim_email:
            return {}
        email = self._config.claim_email
        if not email.startswith("mailto:"):
            email = f"mailto:{email}"
        return {"sub": email}

    def is_permanent_status(self, status_code: Optional[int]) -> bool:
        """Whether a push service status invalidates the subscription."""
        return status_code is not None and status_code in self._config.permanent_statuses

    def _send_sync(self, credential: WebPushCredential, data: str):
        return webpush(
            subscription_info={
                "endpoint": credential.endpoint,
                "keys": {
                    "p256dh": credential.p256dh,
                    "auth": credential.auth,
                },
            },
            data=data,
            vapid_private_key=self._config.private_key,
            vapid_claims=self.vapid_claims,
            ttl=self._config.ttl,
            headers={"Urgency": "high"},
            timeout=self._config.timeout,
        )

    async def send(self, credential: WebPushCredential, payload: dict) -> None:
        """Deliver a payload to a subscription.

        Args:
            credential: Endpoint and encryption keys of the subscription
            payload: JSON-serialisable notification content

        Raises:
            PermanentChannelError: The push service reported the subscription gone
            TransientChannelError: Any other failure, including timeouts
        """
        if not self.enabled:
            raise TransientChannelError("Web Push not configured", code="not-configured")

        endpoint_short = credential.endpoint[:60]
        data = json.dumps(payload)

        try:
            await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, credential, data),
                timeout=self._config.timeout + 5,
            )
        except asyncio.TimeoutError:
            raise TransientChannelError(f"Web Push timed out ({endpoint_short})", code="timeout")
        except WebPushException as e:
            status_code = getattr(e.response, "status_code", None)
            if self.is_permanent_status(status_code):
                raise PermanentChannelError(
                    f"Push subscription gone (HTTP {status_code}): {endpoint_short}",
                    code=str(status_code),
                ) from e
            raise TransientChannelError(
                f"Web Push failed (HTTP {status_code}): {e}",
                code=str(status_code) if status_code else None,
            ) from e
        except Exception as e:
            raise TransientChannelError(f"Web Push failed: {e}") from e

        logger.info(f"Web Push sent to {endpoint_short}...")
