"""
Outbound notification senders.

- SmtpEmailSender: SMTP with STARTTLS (or SSL on port 465), plain text plus
  optional HTML alternative
- SmsGatewaySender: JSON POST to an HTTP SMS gateway

Both report delivery problems through SendResult instead of raising, so one
bad address never aborts a dispatch batch.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid
from typing import Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class SendResult:
    """Outcome of one channel send."""

    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


class SmtpEmailSender:
    """SMTP email sender."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = '',
        password: str = '',
        from_address: str = '',
        from_name: str = 'Notifications',
        timeout: int = 30,
    ) -> None:
        """
        Initialize SMTP sender.

        Args:
            host: SMTP server hostname
            port: 465 for implicit SSL, anything else uses STARTTLS
            username: SMTP login (skipped when empty)
            password: SMTP password
            from_address: Envelope sender, defaults to username
            from_name: Display name for the sender
            timeout: Socket timeout in seconds
        """
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_address = from_address or username
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> Optional['SmtpEmailSender']:
        """Build a sender from Flask config, or None when SMTP_HOST is unset."""
        if not config.get('SMTP_HOST'):
            return None
        return cls(
            host=config['SMTP_HOST'],
            port=config.get('SMTP_PORT', 587),
            username=config.get('SMTP_USERNAME', ''),
            password=config.get('SMTP_PASSWORD', ''),
            from_address=config.get('SMTP_FROM_ADDRESS', ''),
            from_name=config.get('SMTP_FROM_NAME', 'Notifications'),
            timeout=config.get('SMTP_TIMEOUT', 30),
        )

    def build_message(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
    ) -> MIMEMultipart:
        """Build a multipart/alternative message."""
        msg = MIMEMultipart('alternative')
        msg['From'] = formataddr((self.from_name, self.from_address))
        msg['To'] = to
        msg['Subject'] = subject
        msg['Message-ID'] = make_msgid()

        msg.attach(MIMEText(body, 'plain', 'utf-8'))
        if html_body:
            msg.attach(MIMEText(html_body, 'html', 'utf-8'))
        return msg

    def _open(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)

        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            server.ehlo()
            server.starttls(context=context)
            server.ehlo()
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
    ) -> SendResult:
        """
        Send one email.

        Args:
            to: Recipient address
            subject: Subject line
            body: Plain text body
            html_body: Optional HTML alternative

        Returns:
            SendResult with the Message-ID on success
        """
        msg = self.build_message(to, subject, body, html_body)

        try:
            with self._open() as server:
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed for {self.username}: {e}")
            return SendResult(success=False, error=f"SMTP authentication failed: {e}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return SendResult(success=False, error=str(e))

        logger.info(f"Email sent to {to}: {subject}")
        return SendResult(success=True, message_id=msg['Message-ID'])


class SmsGatewaySender:
    """HTTP SMS gateway sender."""

    def __init__(
        self,
        gateway_url: str,
        api_key: str = '',
        sender_id: str = '',
        timeout: int = 10,
    ) -> None:
        """
        Initialize SMS gateway sender.

        Args:
            gateway_url: Endpoint accepting {"to", "body", "from"} JSON
            api_key: Sent as a Bearer token when set
            sender_id: Sender name/number passed as "from"
            timeout: Request timeout in seconds
        """
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.sender_id = sender_id
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> Optional['SmsGatewaySender']:
        """Build a sender from Flask config, or None when SMS_GATEWAY_URL is unset."""
        if not config.get('SMS_GATEWAY_URL'):
            return None
        return cls(
            gateway_url=config['SMS_GATEWAY_URL'],
            api_key=config.get('SMS_API_KEY', ''),
            sender_id=config.get('SMS_SENDER_ID', ''),
            timeout=config.get('SMS_TIMEOUT', 10),
        )

    def send(self, to: str, body: str) -> SendResult:
        """
        Send one SMS.

        Args:
            to: Phone number
            body: Message text

        Returns:
            SendResult; 2xx responses count as delivered
        """
        headers = {'Content-Type': 'application/json'}
        if self.api_key:
            headers['Authorization'] = f"Bearer {self.api_key}"

        payload = {'to': to, 'body': body}
        if self.sender_id:
            payload['from'] = self.sender_id

        try:
            response = requests.post(
                self.gateway_url,
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning(f"SMS gateway timed out after {self.timeout}s sending to {to}")
            return SendResult(success=False, error=f"Request timed out after {self.timeout}s")
        except requests.RequestException as e:
            logger.error(f"SMS gateway request failed for {to}: {e}")
            return SendResult(success=False, error=str(e))

        if not 200 <= response.status_code < 300:
            error = f"HTTP {response.status_code}: {response.text[:500]}"
            logger.warning(f"SMS gateway rejected message to {to}: {error}")
            return SendResult(success=False, error=error)

        try:
            receipt = response.json()
        except ValueError:
            # Gateways without a JSON receipt
            receipt = None
        message_id = receipt.get('id') if isinstance(receipt, dict) else None

        logger.info(f"SMS sent to {to}")
        return SendResult(success=True, message_id=message_id)
