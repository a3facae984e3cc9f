"""FCM sender using the Firebase Admin SDK."""
import asyncio
import logging
import re
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Set

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from ..exceptions import ConfigurationError, PermanentChannelError, TransientChannelError
from ..models.pending_notification import DeliveryMethod

logger = logging.getLogger(__name__)

FCM_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9_:\-]+$")

DEFAULT_PERMANENT_CODES = {
    "registration-token-not-registered",
    "invalid-registration-token",
    "invalid-argument",
}


@dataclass
class FcmConfig:
    """Firebase configuration."""
    credentials_info: Optional[dict] = None  # Parsed service account JSON
    credentials_path: Optional[str] = None
    permanent_codes: Set[str] = field(default_factory=lambda: set(DEFAULT_PERMANENT_CODES))
    min_token_length: int = 50
    timeout: float = 10.0
    app_name: str = "pushrelay"


def is_valid_fcm_token(token: Optional[str], min_length: int = 50) -> bool:
    """Minimal format check: long enough and only URL-safe token characters."""
    if not token or not isinstance(token, str):
        return False
    return len(token) > min_length and bool(FCM_TOKEN_PATTERN.match(token))


def _normalize_code(code: Optional[str]) -> str:
    # SDK codes look like NOT_FOUND / INVALID_ARGUMENT, configured ones like invalid-argument
    return (code or "").strip().lower().replace("_", "-").replace("messaging/", "")


class FcmSender:
    """Sends one notification to one FCM registration token."""

    channel = DeliveryMethod.FCM

    def __init__(self, config: FcmConfig):
        self._config = config
        self._app: Optional[firebase_admin.App] = None
        if not self.enabled:
            logger.info("FCM disabled: FIREBASE_CREDENTIALS not set")

    @property
    def enabled(self) -> bool:
        return bool(self._config.credentials_info or self._config.credentials_path)

    def is_valid_token(self, token: Optional[str]) -> bool:
        return is_valid_fcm_token(token, self._config.min_token_length)

    def _get_app(self) -> firebase_admin.App:
        """Initialize (once) a named Firebase app for this sender."""
        if self._app is not None:
            return self._app

        try:
            self._app = firebase_admin.get_app(self._config.app_name)
            return self._app
        except ValueError:
            pass

        try:
            cred = credentials.Certificate(
                self._config.credentials_info or self._config.credentials_path
            )
        except (ValueError, IOError) as e:
            raise ConfigurationError(f"Invalid Firebase credentials: {e}") from e

        self._app = firebase_admin.initialize_app(cred, name=self._config.app_name)
        logger.info(f"Firebase app initialized (project={cred.project_id})")
        return self._app

    def is_permanent_error(self, error: Exception) -> bool:
        """Whether an SDK error means the token will never work again."""
        if isinstance(error, (messaging.UnregisteredError, messaging.SenderIdMismatchError)):
            return True
        if isinstance(error, exceptions.FirebaseError):
            if _normalize_code(error.code) in self._config.permanent_codes:
                return True
        message = str(error).lower()
        return any(code in message for code in self._config.permanent_codes)

    def build_message(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[dict] = None,
        is_ios: bool = False,
        is_mobile: bool = False,
    ) -> messaging.Message:
        """Build an FCM message, adding platform blocks from the device hints."""
        # FCM data values must be strings
        message_data = {str(k): str(v) for k, v in (data or {}).items() if v is not None}
        message_data.setdefault("timestamp", datetime.utcnow().isoformat())

        apns = None
        android = None
        if is_ios:
            apns = messaging.APNSConfig(
                headers={"apns-priority": "10", "apns-push-type": "alert"},
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(
                        alert=messaging.ApsAlert(title=title, body=body),
                        sound="default",
                        badge=1,
                    )
                ),
            )
        elif is_mobile:
            android = messaging.AndroidConfig(
                priority="high",
                notification=messaging.AndroidNotification(
                    title=title,
                    body=body,
                    sound="default",
                ),
            )

        # Registration tokens still go in `token`; firebase-admin 7.7+ warns in favour of fid
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            return messaging.Message(
                token=token,
                notification=messaging.Notification(title=title, body=body),
                data=message_data,
                apns=apns,
                android=android,
            )

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[dict] = None,
        is_ios: bool = False,
        is_mobile: bool = False,
    ) -> str:
        """Deliver a notification to a registration token.

        Returns:
            The FCM message id

        Raises:
            PermanentChannelError: Token unregistered or invalid
            TransientChannelError: Any other failure, including timeouts
        """
        if not self.enabled:
            raise TransientChannelError("FCM not configured", code="not-configured")

        app = self._get_app()
        message = self.build_message(token, title, body, data, is_ios, is_mobile)

        try:
            message_id = await asyncio.wait_for(
                asyncio.to_thread(messaging.send, message, app=app),
                timeout=self._config.timeout,
            )
        except asyncio.TimeoutError:
            raise TransientChannelError(f"FCM timed out ({token[:16]}...)", code="timeout")
        except Exception as e:
            code = getattr(e, "code", None)
            if self.is_permanent_error(e):
                raise PermanentChannelError(
                    f"FCM token rejected ({_normalize_code(code) or 'invalid'}): {e}",
                    code=_normalize_code(code) or None,
                ) from e
            raise TransientChannelError(f"FCM send failed: {e}", code=_normalize_code(code) or None) from e

        logger.info(f"FCM message sent to {token[:16]}... ({message_id})")
        return message_id
