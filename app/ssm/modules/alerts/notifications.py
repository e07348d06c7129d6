"""
Outbound notification channels for the expiry digest and subscription changes.

Email goes through the Resend SDK; SMS through the Twilio REST API; push through
an HTTP gateway. Each channel gets exactly one attempt and every attempt,
including skipped ones, lands in notification_log.
"""
from __future__ import annotations

import base64
import html
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

import resend

from app.ssm.modules.alerts.models import NotificationLog

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.ssm.models import Organization
    from app.ssm.modules.alerts.scanner import DigestItem

logger = logging.getLogger(__name__)

KIND_EXPIRY_DIGEST = "expiry_digest"
KIND_SUBSCRIPTION = "subscription"

SEVERITY_LABELS = {"critical": "CRITIC", "high": "RIDICAT", "medium": "MEDIU"}
ALERT_TYPE_LABELS = {
    "medical_expiry": "Examen medical",
    "equipment_inspection": "Verificare echipament",
    "training_expiry": "Instruire",
}


class NotificationError(RuntimeError):
    pass


@dataclass(frozen=True)
class DeliveryResult:
    channel: str
    status: str  # sent|failed|skipped
    recipient: str | None = None
    provider_message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class EmailSender:
    api_key: str
    email_from: str

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, to: str, subject: str, html_body: str) -> str | None:
        resend.api_key = self.api_key
        params = {
            "from": self.email_from,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        try:
            result = resend.Emails.send(params)
        except Exception as e:
            raise NotificationError(f"Resend send failed: {e}") from e
        if isinstance(result, dict):
            return result.get("id")
        return getattr(result, "id", None)


@dataclass(frozen=True)
class SmsClient:
    account_sid: str
    auth_token: str
    from_number: str
    base_url: str = "https://api.twilio.com"
    timeout_seconds: int = 20

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _auth_header(self) -> str:
        token = f"{self.account_sid}:{self.auth_token}".encode("utf-8")
        return "Basic " + base64.b64encode(token).decode("ascii")

    def send(self, to: str, body: str) -> str | None:
        url = f"{self.base_url.rstrip('/')}/2010-04-01/Accounts/{urllib.parse.quote(self.account_sid)}/Messages.json"
        data = urllib.parse.urlencode({"To": to, "From": self.from_number, "Body": body}).encode("utf-8")
        req = urllib.request.Request(url, data=data, method="POST")
        req.add_header("Authorization", self._auth_header())
        req.add_header("Content-Type", "application/x-www-form-urlencoded")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                err_body = e.read().decode("utf-8", errors="ignore")
            except Exception:
                err_body = ""
            raise NotificationError(f"HTTP {e.code} from Twilio: {err_body[:300]}") from e
        except Exception as e:
            raise NotificationError(f"Twilio request failed: {e}") from e
        try:
            return json.loads(raw.decode("utf-8")).get("sid")
        except Exception:
            return None


@dataclass(frozen=True)
class PushClient:
    gateway_url: str
    token: str = ""
    timeout_seconds: int = 10

    @property
    def configured(self) -> bool:
        return bool(self.gateway_url)

    def send(self, topic: str, title: str, body: str, data: dict[str, Any] | None = None) -> str | None:
        payload = json.dumps({"topic": topic, "title": title, "body": body, "data": data or {}}).encode("utf-8")
        req = urllib.request.Request(self.gateway_url, data=payload, method="POST")
        req.add_header("Content-Type", "application/json")
        req.add_header("Accept", "application/json")
        if self.token:
            req.add_header("Authorization", f"Bearer {self.token}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise NotificationError(f"HTTP {e.code} from push gateway") from e
        except Exception as e:
            raise NotificationError(f"Push gateway request failed: {e}") from e
        try:
            j = json.loads(raw.decode("utf-8")) if raw else {}
        except Exception:
            return None
        return str(j.get("id")) if isinstance(j, dict) and j.get("id") is not None else None


def _log(s: "Session", organization_id: int | None, kind: str, result: DeliveryResult, item_count: int, now: datetime) -> None:
    s.add(
        NotificationLog(
            organization_id=organization_id,
            kind=kind,
            channel=result.channel,
            recipient=result.recipient,
            status=result.status,
            provider_message_id=result.provider_message_id,
            error_message=result.error,
            item_count=item_count,
            created_at=now,
        )
    )


def _attempt(channel: str, recipient: str | None, send) -> DeliveryResult:
    try:
        message_id = send()
    except Exception as e:
        logger.warning("Notification %s to %s failed: %s", channel, recipient, e)
        return DeliveryResult(channel, "failed", recipient, error=str(e)[:2000])
    return DeliveryResult(channel, "sent", recipient, provider_message_id=message_id)


def render_digest_html(org_name: str, items: list["DigestItem"], base_url: str) -> str:
    rows = []
    for it in items:
        when = "astăzi" if it.days_left == 0 else (f"în {it.days_left} zile" if it.days_left > 0 else f"depășit cu {-it.days_left} zile")
        rows.append(
            "<tr>"
            f"<td>{html.escape(SEVERITY_LABELS.get(it.severity, it.severity))}</td>"
            f"<td>{html.escape(ALERT_TYPE_LABELS.get(it.alert_type, it.alert_type))}</td>"
            f"<td>{html.escape(it.title)}</td>"
            f"<td>{it.due_date.isoformat()}</td>"
            f"<td>{html.escape(when)}</td>"
            "</tr>"
        )
    return (
        f"<p>Bună ziua,</p><p>Organizația <strong>{html.escape(org_name)}</strong> are termene SSM care necesită atenție:</p>"
        "<table border='1' cellpadding='4' cellspacing='0'>"
        "<tr><th>Severitate</th><th>Tip</th><th>Element</th><th>Scadență</th><th>Termen</th></tr>"
        + "".join(rows)
        + "</table>"
        f"<p><a href='{html.escape(base_url.rstrip('/'))}/dashboard/alerts'>Deschide alertele în platformă</a></p>"
    )


class Notifier:
    def __init__(
        self,
        *,
        email: EmailSender | None = None,
        sms: SmsClient | None = None,
        push: PushClient | None = None,
        base_url: str = "",
    ):
        self.email = email
        self.sms = sms
        self.push = push
        self.base_url = base_url

    def dispatch_digest(
        self,
        s: "Session",
        org: "Organization",
        items: list["DigestItem"],
        *,
        now: datetime | None = None,
    ) -> list[DeliveryResult]:
        """
        Send one digest per channel for an organization. Nothing is sent for an empty digest.
        SMS only goes out when at least one item is critical.
        """
        if not items:
            return []
        now = now or datetime.utcnow()
        critical = [it for it in items if it.severity == "critical"]
        results: list[DeliveryResult] = []

        # Email
        if self.email is None or not self.email.configured:
            results.append(DeliveryResult("email", "skipped", org.contact_email, error="email not configured"))
        elif not org.contact_email:
            results.append(DeliveryResult("email", "skipped", None, error="organization has no contact email"))
        else:
            subject = f"[SSM] {len(items)} termene de expirare ({len(critical)} critice) - {org.name}"
            body = render_digest_html(org.name, items, self.base_url)
            email = self.email
            results.append(_attempt("email", org.contact_email, lambda: email.send(org.contact_email, subject, body)))

        # SMS
        if not critical:
            results.append(DeliveryResult("sms", "skipped", org.contact_phone, error="no critical items"))
        elif self.sms is None or not self.sms.configured:
            results.append(DeliveryResult("sms", "skipped", org.contact_phone, error="sms not configured"))
        elif not org.contact_phone:
            results.append(DeliveryResult("sms", "skipped", None, error="organization has no contact phone"))
        else:
            text = f"SSM {org.name}: {len(critical)} termene critice in urmatoarele 7 zile. Detalii: {self.base_url.rstrip('/')}/dashboard/alerts"
            sms = self.sms
            results.append(_attempt("sms", org.contact_phone, lambda: sms.send(org.contact_phone, text)))

        # Push
        if self.push is None or not self.push.configured:
            results.append(DeliveryResult("push", "skipped", org.push_topic, error="push not configured"))
        elif not org.push_topic:
            results.append(DeliveryResult("push", "skipped", None, error="organization has no push topic"))
        else:
            push = self.push
            title = "Termene SSM"
            body_text = f"{len(items)} termene de expirare, {len(critical)} critice"
            data = {"organization_id": org.id, "critical": len(critical), "total": len(items)}
            results.append(_attempt("push", org.push_topic, lambda: push.send(org.push_topic, title, body_text, data)))

        for r in results:
            _log(s, org.id, KIND_EXPIRY_DIGEST, r, len(items), now)
        return results


def notifier_from_config(config: dict) -> Notifier:
    return Notifier(
        email=EmailSender(api_key=config.get("RESEND_API_KEY") or "", email_from=config.get("EMAIL_FROM") or ""),
        sms=SmsClient(
            account_sid=config.get("TWILIO_ACCOUNT_SID") or "",
            auth_token=config.get("TWILIO_AUTH_TOKEN") or "",
            from_number=config.get("TWILIO_FROM_NUMBER") or "",
        ),
        push=PushClient(gateway_url=config.get("PUSH_GATEWAY_URL") or "", token=config.get("PUSH_GATEWAY_TOKEN") or ""),
        base_url=config.get("APP_BASE_URL") or "",
    )


SUBSCRIPTION_SUBJECTS = {
    "active": "Abonamentul SSM a fost activat",
    "trial": "Perioada de probă SSM a început",
    "past_due": "Plata abonamentului SSM a eșuat",
    "canceled": "Abonamentul SSM a fost anulat",
}


def send_subscription_email(
    s: "Session",
    sender: EmailSender | None,
    org: "Organization",
    *,
    plan_id: str | None,
    status: str,
    now: datetime | None = None,
) -> DeliveryResult:
    """Single-attempt email about a subscription change; never raises."""
    now = now or datetime.utcnow()
    if sender is None or not sender.configured:
        result = DeliveryResult("email", "skipped", org.contact_email, error="email not configured")
    elif not org.contact_email:
        result = DeliveryResult("email", "skipped", None, error="organization has no contact email")
    else:
        subject = SUBSCRIPTION_SUBJECTS.get(status, "Actualizare abonament SSM")
        body = (
            f"<p>Bună ziua,</p><p>Abonamentul organizației <strong>{html.escape(org.name)}</strong> "
            f"are acum starea <strong>{html.escape(status)}</strong>"
            + (f" (plan <strong>{html.escape(plan_id)}</strong>)" if plan_id else "")
            + ".</p>"
        )
        if status == "past_due":
            body += (
                "<p>Modulele plătite sunt suspendate până la confirmarea plății. "
                "Actualizați metoda de plată în cel mult 3 zile pentru a evita anularea abonamentului.</p>"
            )
        result = _attempt("email", org.contact_email, lambda: sender.send(org.contact_email, subject, body))
    _log(s, org.id, KIND_SUBSCRIPTION, result, 0, now)
    return result
