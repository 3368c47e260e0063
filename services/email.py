# services/email.py
"""
SMTP email delivery for gift reminders
"""

import asyncio
import logging
import uuid
from datetime import date, datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, parseaddr
from typing import Any, Dict, Optional, Union

import aiosmtplib

from core.security_manager import SecurityManager
from core.template_engine import get_template_engine, occasion_label

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when an SMTP server rejects a message"""
    pass


class EmailConnectionError(EmailDeliveryError):
    """Raised when the SMTP server cannot be reached; safe to retry"""
    pass


async def _async_send_smtp(msg: MIMEMultipart, smtp_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deliver one message over SMTP

    Port 465 (or EMAIL_SECURE) uses implicit TLS, everything else
    upgrades with STARTTLS when the server offers it.
    """
    implicit_tls = smtp_config['secure'] or smtp_config['port'] == 465
    smtp = aiosmtplib.SMTP(
        hostname=smtp_config['host'],
        port=smtp_config['port'],
        timeout=smtp_config.get('timeout', 30),
        use_tls=implicit_tls,
        start_tls=None if implicit_tls else (True if smtp_config['port'] == 587 else None),
    )
    try:
        await smtp.connect()
    except (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPConnectTimeoutError, OSError) as e:
        raise EmailConnectionError(f"Could not connect to {smtp_config['host']}:{smtp_config['port']}: {e}") from e

    try:
        if smtp_config.get('username') and smtp_config.get('password'):
            await smtp.login(smtp_config['username'], smtp_config['password'])
        errors, response = await smtp.send_message(msg)
    except aiosmtplib.SMTPServerDisconnected as e:
        raise EmailConnectionError(str(e)) from e
    except aiosmtplib.SMTPException as e:
        raise EmailDeliveryError(str(e)) from e
    finally:
        if smtp.is_connected:
            try:
                await smtp.quit()
            except aiosmtplib.SMTPException:
                smtp.close()

    return {
        'success': not errors,
        'response': response,
        'message_id': msg['Message-ID'],
    }


class EmailService:
    """Builds and sends GiftGenie notification emails"""

    def __init__(self, config: Dict[str, Any]):
        self.host = config.get('EMAIL_HOST') or ''
        self.port = int(config.get('EMAIL_PORT') or 587)
        self.secure = bool(config.get('EMAIL_SECURE'))
        self.username = config.get('EMAIL_USER') or ''
        self.password = config.get('EMAIL_PASS') or ''
        self.from_address = config.get('EMAIL_FROM') or self.username
        self.webapp_url = config.get('WEBAPP_URL') or 'http://localhost:3000'
        self.templates = get_template_engine()

        if not self.is_configured:
            logger.info("Email service not configured - missing EMAIL_HOST, EMAIL_USER or EMAIL_PASS")

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    def _smtp_config(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'port': self.port,
            'secure': self.secure,
            'username': self.username,
            'password': self.password,
        }

    def _build_message(self, to: str, subject: str, html: str, text: str) -> MIMEMultipart:
        name, address = parseaddr(self.from_address)
        domain = (address.split('@')[-1] if '@' in address else None) or 'giftgenie.local'

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = formataddr((name or 'GiftGenie', address))
        msg['To'] = to
        msg['Date'] = formatdate(localtime=True)
        msg['Message-ID'] = f"<{uuid.uuid4()}@{domain}>"
        msg['X-Mailer'] = 'GiftGenie'
        msg.attach(MIMEText(text, 'plain', 'utf-8'))
        msg.attach(MIMEText(html, 'html', 'utf-8'))
        return msg

    def _send(self, msg: MIMEMultipart, raise_on_connection_error: bool) -> bool:
        try:
            result = asyncio.run(_async_send_smtp(msg, self._smtp_config()))
        except EmailConnectionError as e:
            logger.error(f"SMTP connection failed for {msg['To']}: {str(e)}")
            if raise_on_connection_error:
                raise
            return False
        except EmailDeliveryError as e:
            logger.error(f"Email delivery to {msg['To']} failed: {str(e)}")
            return False

        if result['success']:
            logger.info(f"Email sent to {msg['To']} ({result['message_id']})")
        else:
            logger.warning(f"Email to {msg['To']} was not accepted: {result['response']}")
        return result['success']

    def send_gift_reminder(self, to: str, friend_name: str, occasion_type: str,
                           occasion_date: Union[date, str], custom_message: Optional[str] = None,
                           title: Optional[str] = None,
                           raise_on_connection_error: bool = False) -> bool:
        """
        Send a gift reminder email

        Args:
            to: Recipient address
            friend_name: Name of the friend the occasion belongs to
            occasion_type: birthday, anniversary, ...
            occasion_date: Date of the occasion
            custom_message: Optional note written by the user
            title: Reminder title shown in the body
            raise_on_connection_error: Re-raise EmailConnectionError so a
                worker can retry instead of returning False

        Returns:
            True when the server accepted the message
        """
        if not self.is_configured:
            logger.info(f"Skipping reminder email to {to}: email not configured")
            return False

        occasion = occasion_label(occasion_type)
        if isinstance(occasion_date, date):
            occasion_date = occasion_date.strftime('%B %d, %Y').replace(' 0', ' ')

        rendered = self.templates.render('gift_reminder.html', {
            'friend_name': friend_name,
            'title': title or f"{occasion} for {friend_name}",
            'occasion_type': occasion_type,
            'occasion_date': occasion_date,
            'message': SecurityManager.sanitize_text(custom_message) if custom_message else None,
            'webapp_url': self.webapp_url,
        })
        msg = self._build_message(to, f"🎁 Gift Reminder: {occasion} for {friend_name}",
                                  rendered.html, rendered.text)
        return self._send(msg, raise_on_connection_error)

    def send_test_email(self, to: str) -> bool:
        if not self.is_configured:
            logger.info(f"Skipping test email to {to}: email not configured")
            return False

        rendered = self.templates.render('test_email.html', {
            'recipient': to,
            'sent_at': datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC'),
        })
        msg = self._build_message(to, '🎁 GiftGenie Email Test', rendered.html, rendered.text)
        return self._send(msg, raise_on_connection_error=False)


def get_email_service() -> EmailService:
    """Email service bound to the current application's configuration"""
    from flask import current_app
    service = current_app.extensions.get('email_service')
    if service is None:
        service = EmailService(current_app.config)
        current_app.extensions['email_service'] = service
    return service
