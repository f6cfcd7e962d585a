"""
Notification transports keyed by channel type.

Every transport takes ``(destination, subject, body_html)`` and either returns
normally or raises ``TransportError``. Plain-text transports strip the HTML
themselves. Transports never touch the reminder store.
"""
import json
import logging
import os
import smtplib
import ssl
import uuid
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import requests
from bs4 import BeautifulSoup
from firebase_admin import messaging, credentials, initialize_app, _apps  # type: ignore

from .config import ReminderSettings, settings as reminder_settings
from .errors import TransportError


logger = logging.getLogger(__name__)


def strip_html(body: str) -> str:
    """Plain-text rendition of an HTML body, one block element per line."""
    if not body:
        return ""
    text = BeautifulSoup(body, "html.parser").get_text("\n")
    lines = [line.strip() for line in text.splitlines()]
    return "\n".join(line for line in lines if line)


def plain_message(subject: str, body_html: str) -> str:
    return f"{subject}\n\n{strip_html(body_html)}"


def truncate_destination(destination: str, keep: int = 24) -> str:
    """Shorten a destination for log lines; URLs and tokens often embed secrets."""
    if len(destination) <= keep:
        return destination
    return destination[:keep] + "..."


class NotificationTransport(ABC):
    kind: str = ""

    @abstractmethod
    def send(self, destination: str, subject: str, body_html: str) -> None:
        """Deliver one message. Raises TransportError on failure."""


class NoopTransport(NotificationTransport):
    """Logs and succeeds; used for unconfigured kinds and in tests."""

    def __init__(self, kind: str = "noop"):
        self.kind = kind
        self.sent: List[Tuple[str, str, str]] = []

    def send(self, destination: str, subject: str, body_html: str) -> None:
        self.sent.append((destination, subject, body_html))
        logger.info(f"[Noop] {self.kind} -> {truncate_destination(destination)} | {subject}")


class EmailTransport(NotificationTransport):
    kind = "email"

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_email: str = "reminders@localhost",
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = int(port)
        self.username = username
        self.password = password
        self.from_email = from_email
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, destination: str, subject: str, body_html: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = destination
        msg.attach(MIMEText(strip_html(body_html), "plain"))
        msg.attach(MIMEText(body_html, "html"))
        return msg

    def send(self, destination: str, subject: str, body_html: str) -> None:
        msg = self.build_message(destination, subject, body_html)
        try:
            if self.port == 465:
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as server:
                    self._deliver(server, msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    if self.use_tls:
                        server.starttls(context=ssl.create_default_context())
                    self._deliver(server, msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise TransportError(f"smtp send to {destination} failed: {exc}") from exc
        logger.info(f"📧 [SMTP] Sent '{subject}' to {destination}")

    def _deliver(self, server: smtplib.SMTP, msg: MIMEMultipart) -> None:
        if self.username and self.password:
            server.login(self.username, self.password)
        server.send_message(msg)


class HttpTransport(NotificationTransport):
    """Base for transports whose destination is an HTTP endpoint."""

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, destination: str, **kwargs) -> requests.Response:
        if not destination:
            raise TransportError(f"{self.kind} channel has no destination URL")
        try:
            response = self.session.post(destination, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(f"{self.kind} post to {truncate_destination(destination)} failed: {exc}") from exc
        return response


class WebhookTransport(HttpTransport):
    kind = "webhook"

    def send(self, destination: str, subject: str, body_html: str) -> None:
        self._post(
            destination,
            json={"subject": subject, "message": plain_message(subject, body_html), "html": body_html},
        )


class NtfyTransport(HttpTransport):
    """ntfy topic URL, e.g. https://ntfy.sh/my-topic."""

    kind = "ntfy"

    def send(self, destination: str, subject: str, body_html: str) -> None:
        self._post(
            destination,
            data=strip_html(body_html).encode("utf-8"),
            headers={"Title": subject.encode("utf-8")},
        )


class GotifyTransport(HttpTransport):
    """Gotify message endpoint including the app token, e.g. https://host/message?token=..."""

    kind = "gotify"

    def send(self, destination: str, subject: str, body_html: str) -> None:
        self._post(destination, json={"title": subject, "message": strip_html(body_html), "priority": 5})


class FcmPushTransport(NotificationTransport):
    """Firebase Cloud Messaging; the channel content is the device token."""

    kind = "push"

    def __init__(self, project_id: Optional[str] = None, credentials_json: Optional[str] = None, timeout: float = 10.0):
        self.project_id = project_id
        self.credentials_json = credentials_json
        self.timeout = timeout

    def _ensure_initialized(self) -> bool:
        if _apps:
            return True

        creds = (
            self.credentials_json
            or os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON")
            or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        )
        options = {"httpTimeout": self.timeout}
        if self.project_id:
            options["projectId"] = self.project_id

        logger.info(f"🔍 [FCM] Initializing Firebase | project_id={self.project_id} creds_set={bool(creds)}")
        try:
            if creds and creds.strip().startswith("{"):
                initialize_app(credentials.Certificate(json.loads(creds)), options=options)
            elif creds and os.path.exists(creds):
                initialize_app(credentials.Certificate(creds), options=options)
            elif self.project_id:
                initialize_app(options=options)
            else:
                logger.warning("⚠️ [FCM] No credentials provided - push notifications disabled")
                return False
        except (ValueError, OSError) as exc:
            logger.error(f"❌ [FCM] Failed to initialize Firebase: {exc!r}")
            return False
        logger.info(f"✅ [FCM] Firebase app initialized. apps={len(_apps)}")
        return True

    def send(self, destination: str, subject: str, body_html: str) -> None:
        if not destination:
            raise TransportError("push channel has no device token")
        if not self._ensure_initialized():
            raise TransportError("firebase is not configured")

        notification_id = str(uuid.uuid4())
        message = messaging.Message(
            token=destination,
            notification=messaging.Notification(title=subject, body=strip_html(body_html)),
            data={"notification_id": notification_id},
            apns=messaging.APNSConfig(
                headers={
                    "apns-push-type": "alert",
                    "apns-priority": "10",
                    "apns-collapse-id": notification_id,
                }
            ),
        )
        try:
            result = messaging.send(message, dry_run=False)
        except Exception as exc:  # firebase_admin raises a wide family of errors
            raise TransportError(f"fcm send failed: {exc!r}") from exc
        logger.info(f"✅ [FCM] Notification sent: {result}")


class TransportRegistry:
    """Read-only map from channel type to transport."""

    def __init__(self, transports: Mapping[str, NotificationTransport]):
        self._transports = MappingProxyType({k.strip().lower(): v for k, v in transports.items()})

    def lookup(self, kind: Optional[str]) -> Optional[NotificationTransport]:
        if not kind:
            return None
        return self._transports.get(kind.strip().lower())

    def kinds(self) -> List[str]:
        return sorted(self._transports)

    def send(self, kind: str, destination: str, subject: str, body_html: str) -> None:
        transport = self.lookup(kind)
        if transport is None:
            raise TransportError(f"no transport registered for channel type {kind!r}")
        transport.send(destination, subject, body_html)


def build_default_transports(settings: Optional[ReminderSettings] = None) -> TransportRegistry:
    settings = settings or reminder_settings
    timeout = settings.TRANSPORT_TIMEOUT_SECONDS

    transports: Dict[str, NotificationTransport] = {}
    if settings.SMTP_HOST:
        transports["email"] = EmailTransport(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            from_email=settings.SMTP_FROM,
            use_tls=settings.SMTP_USE_TLS,
            timeout=timeout,
        )
    else:
        logger.warning("⚠️ [SMTP] REMINDER_SMTP_HOST not set - email reminders are logged, not sent")
        transports["email"] = NoopTransport("email")

    transports["push"] = FcmPushTransport(
        project_id=settings.FCM_PROJECT_ID,
        credentials_json=settings.FCM_CREDENTIALS_JSON,
        timeout=timeout,
    )
    transports["webhook"] = WebhookTransport(timeout=timeout)
    transports["ntfy"] = NtfyTransport(timeout=timeout)
    transports["gotify"] = GotifyTransport(timeout=timeout)
    transports["telegram"] = NoopTransport("telegram")
    return TransportRegistry(transports)
