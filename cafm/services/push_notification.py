"""
Firebase Cloud Messaging push delivery.

Used for work order assignments, report status changes and urgent alerts.
Push is best effort: a missing configuration or an invalid device token
never fails the operation that triggered it.
"""
import logging
from typing import Optional, Dict, List

from cafm.config import settings

logger = logging.getLogger(__name__)

# Firebase Admin SDK - lazy loaded
_firebase_app = None


def _initialize_firebase() -> bool:
    global _firebase_app

    if _firebase_app is not None:
        return True

    if not settings.firebase_service_account_path:
        logger.debug("Firebase service account path not configured. Push notifications disabled.")
        return False

    try:
        import firebase_admin
        from firebase_admin import credentials

        cred = credentials.Certificate(settings.firebase_service_account_path)
        _firebase_app = firebase_admin.initialize_app(cred)
        logger.info("Firebase Admin SDK initialized successfully")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize Firebase Admin SDK: {e}")
        return False


def _stringify(data: Optional[Dict]) -> Dict[str, str]:
    # FCM data payloads only accept string values
    return {str(k): "" if v is None else str(v) for k, v in (data or {}).items()}


class PushNotificationService:

    @staticmethod
    def _build_message(title: str, body: str, data: Dict[str, str], urgent: bool, token: str = None):
        from firebase_admin import messaging

        return messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=data,
            token=token,
            android=messaging.AndroidConfig(
                priority="high" if urgent else "normal",
                notification=messaging.AndroidNotification(
                    icon="ic_notification",
                    sound="default",
                    channel_id="cafm_urgent" if urgent else "cafm_general",
                ),
            ),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(
                    aps=messaging.Aps(alert=messaging.ApsAlert(title=title, body=body), sound="default", badge=1)
                )
            ),
        )

    @staticmethod
    def send_notification(
        fcm_token: str,
        title: str,
        body: str,
        data: Optional[Dict] = None,
        notification_type: str = "GENERAL_INFO",
        urgent: bool = False,
    ) -> bool:
        """
        Send a push notification to a single device.

        Returns:
            True if FCM accepted the message, False otherwise
        """
        if not fcm_token:
            logger.debug("No FCM token provided, skipping notification")
            return False

        if not _initialize_firebase():
            return False

        try:
            from firebase_admin import messaging

            payload = _stringify(data)
            payload["notification_type"] = notification_type
            response = messaging.send(
                PushNotificationService._build_message(title, body, payload, urgent, token=fcm_token)
            )
            logger.info(f"Push notification sent: {response}")
            return True
        except Exception as e:
            error_str = str(e)
            if "Requested entity was not found" in error_str or "not a valid FCM registration token" in error_str:
                logger.warning(f"FCM token is invalid/unregistered: {fcm_token[:20]}...")
            else:
                logger.error(f"Failed to send push notification: {e}")
            return False

    @staticmethod
    def send_to_multiple(
        fcm_tokens: List[str],
        title: str,
        body: str,
        data: Optional[Dict] = None,
        notification_type: str = "GENERAL_INFO",
    ) -> int:
        """Multicast to several devices; returns the number of successful deliveries."""
        tokens = [t for t in fcm_tokens if t]
        if not tokens or not _initialize_firebase():
            return 0

        try:
            from firebase_admin import messaging

            payload = _stringify(data)
            payload["notification_type"] = notification_type
            message = messaging.MulticastMessage(
                notification=messaging.Notification(title=title, body=body),
                data=payload,
                tokens=tokens,
            )
            response = messaging.send_each_for_multicast(message)
            logger.info(f"Multicast push: {response.success_count}/{len(tokens)} delivered")
            return response.success_count
        except Exception as e:
            logger.error(f"Failed to send multicast push notification: {e}")
            return 0
