"""
📧 TableReview – E-Mail-Benachrichtigungen
----------------------------------------------
✅ Sichere Verbindung (STARTTLS / Port 587)
✅ Neue Bewertung, Tisch-Scan, "keine Bewertung"
✅ Gibt True/False zurück – wirft nie
✅ Kompatibel mit FastAPI BackgroundTasks
"""

from __future__ import annotations

import html
import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Optional, Protocol

from utils import config
from utils.cooldown_store import CooldownStore

logger = logging.getLogger(__name__)

COMPANY_NAME = "TableReview"


class Notifier(Protocol):
    def send_review_notification(self, restaurant, notification, table_number: Optional[str] = None,
                                 scan_time: Optional[datetime] = None) -> bool: ...

    def send_scan_notification(self, restaurant, table, scan) -> bool: ...

    def send_no_review_notification(self, restaurant, table_number: Optional[str],
                                    scan_time: Optional[datetime], attempts: int) -> bool: ...


def recipient_for(restaurant) -> Optional[str]:
    """notification_email → Restaurant-E-Mail → NOTIFICATION_EMAIL"""
    return (
        (restaurant.notification_email or "").strip()
        or (restaurant.email or "").strip()
        or config.NOTIFICATION_EMAIL.strip()
        or None
    )


def _fmt_time(ts: Optional[datetime]) -> str:
    if ts is None:
        return "-"
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.strftime("%d.%m.%Y %H:%M UTC")


def _wrap(title: str, body: str) -> str:
    year = datetime.now(timezone.utc).year
    return f"""
    <html>
      <body style="font-family:Arial,Helvetica,sans-serif;background:#f5f6fa;padding:30px;">
        <div style="max-width:640px;margin:auto;background:white;border-radius:12px;padding:30px;
                    box-shadow:0 4px 16px rgba(0,0,0,0.05);line-height:1.6;">
          <h2 style="color:#0D2A78;text-align:center;">{title}</h2>
          {body}
          <hr style="margin:30px 0;border:none;border-top:1px solid #eee;">
          <p style="font-size:12px;color:#888;text-align:center;">
            © {year} {COMPANY_NAME}<br>
            <a href="{config.APP_DOMAIN}" style="color:#0D2A78;text-decoration:none;">{config.APP_DOMAIN}</a>
          </p>
        </div>
      </body>
    </html>
    """


# ===============================================================
# 📬 SMTP-Versand
# ===============================================================
class EmailNotifier:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
    ):
        self.host = host if host is not None else config.SMTP_HOST
        self.port = port or config.SMTP_PORT
        self.user = user if user is not None else config.SMTP_USER
        self.password = password if password is not None else config.SMTP_PASS
        self.sender = sender or config.SMTP_FROM

    def _send(self, to: Optional[str], subject: str, html_body: str) -> bool:
        if not to:
            logger.warning("No recipient configured, skipping mail '%s'", subject)
            return False
        if not self.host:
            logger.warning("SMTP_HOST not configured, skipping mail to %s", to)
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = f"{COMPANY_NAME} <{self.sender}>"
        msg["To"] = to
        msg.set_content("Bitte öffnen Sie diese E-Mail in einem HTML-fähigen Programm.")
        msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as server:
                server.ehlo_or_helo_if_needed()
                if self.port != 25:
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo_or_helo_if_needed()
                if self.user:
                    server.login(self.user, self.password)
                refused = server.send_message(msg)
            if refused:
                logger.warning("Mail partially refused: %s", refused)
                return False
            logger.info("Mail sent to %s: %s", to, subject)
            return True
        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP login failed for %s: %s", self.user, e)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Mail to %s failed: %s", to, e)
        return False

    # ===========================================================
    # ⭐ Neue Bewertung erkannt
    # ===========================================================
    def send_review_notification(self, restaurant, notification, table_number=None, scan_time=None) -> bool:
        rating = int(notification.review_rating or 0)
        stars = "⭐" * max(1, rating)
        avg = notification.average_rating
        body = f"""
          <p style="font-size:15px;color:#333;">
            Für <strong>{html.escape(restaurant.name)}</strong> ist eine neue Google-Bewertung eingegangen.
          </p>
          <div style="background:#eef2ff;border-left:4px solid #0D2A78;padding:15px;margin:25px 0;border-radius:6px;">
            <div style="font-size:22px;">{stars}</div>
            <p><strong>{html.escape(notification.review_author or 'Anonym')}</strong></p>
            <p style="font-size:15px;color:#222;">{html.escape(notification.review_text or '')}</p>
          </div>
          <p style="font-size:14px;color:#555;">
            Vermutlicher Auslöser: QR-Scan an Tisch {html.escape(str(table_number or '-'))}
            um {_fmt_time(scan_time)}.<br>
            Bewertungen gesamt: <b>{notification.total_reviews or 0}</b> ·
            Durchschnitt: <b>{(avg or 0.0):.1f}</b>
          </p>
          <p style="font-size:12px;color:#888;">
            Die Zuordnung zum Scan ist eine Schätzung (zeitliche Nähe), kein Nachweis.
          </p>
        """
        return self._send(
            recipient_for(restaurant),
            f"🌟 Neue {rating}-Sterne Bewertung erhalten!",
            _wrap("🌟 Neue Bewertung", body),
        )

    # ===========================================================
    # 📱 Tisch wurde gescannt
    # ===========================================================
    def send_scan_notification(self, restaurant, table, scan) -> bool:
        label = table.name or f"Tisch {table.table_number}"
        body = f"""
          <p style="font-size:15px;color:#333;">
            <strong>{html.escape(label)}</strong> in <strong>{html.escape(restaurant.name)}</strong>
            wurde gerade gescannt.
          </p>
          <p style="font-size:14px;color:#555;">
            Zeit: {_fmt_time(scan.created_at)}<br>
            Gerät: {html.escape(scan.device_type or '-')}<br>
            Scans an diesem Tisch: <b>{table.scan_count or 0}</b>
          </p>
        """
        return self._send(
            recipient_for(restaurant),
            f"📱 QR-Scan: {label}",
            _wrap("📱 Neuer QR-Scan", body),
        )

    # ===========================================================
    # 🕒 Keine Bewertung nach allen Prüfungen
    # ===========================================================
    def send_no_review_notification(self, restaurant, table_number, scan_time, attempts) -> bool:
        body = f"""
          <p style="font-size:15px;color:#333;">
            Nach dem Scan an Tisch {html.escape(str(table_number or '-'))} um {_fmt_time(scan_time)}
            wurde nach {attempts} Prüfungen keine neue Bewertung gefunden.
          </p>
        """
        return self._send(
            recipient_for(restaurant),
            f"🕒 Keine neue Bewertung – {restaurant.name}",
            _wrap("🕒 Keine neue Bewertung", body),
        )


def dispatch_scan_notification(notifier: Notifier, store: CooldownStore, restaurant, table, scan) -> bool:
    """Scan-Mail nur wenn aktiviert und höchstens einmal pro Tisch im Cooldown-Fenster."""
    if not restaurant.notify_on_scan:
        return False
    if not store.hit(f"scan-mail:{table.id}", config.SCAN_NOTIFY_COOLDOWN_SECONDS):
        logger.info("Scan mail for table %s throttled", table.id)
        return False
    return notifier.send_scan_notification(restaurant, table, scan)
