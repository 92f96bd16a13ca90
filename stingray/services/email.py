"""
Outgoing email over SMTP.

Sending never raises: failures are logged and reported as ``False`` so a
failed delivery cannot change the response of the request that triggered it.
Nothing is sent while ``SMTP_HOST`` is unset.
"""

import asyncio
from email.message import EmailMessage

import aiosmtplib
from aiosmtplib.errors import (
    SMTPAuthenticationError,
    SMTPConnectError,
    SMTPConnectTimeoutError,
    SMTPException,
    SMTPReadTimeoutError,
)

from stingray.config import settings
from stingray.core.logging import get_logger
from stingray.models.user import Users

logger = get_logger(__name__)

MAX_CONNECT_ATTEMPTS = 3


def build_message(to: str, subject: str, body: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    return message


async def send_email(to: str, subject: str, body: str) -> bool:
    """
    Send a plain text email.

    Only connection failures are retried (with 1s, 2s backoff): once the
    server has accepted data a retry could deliver the message twice.
    """
    if not settings.SMTP_HOST:
        logger.warning("email_disabled", to=to, subject=subject)
        return False

    message = build_message(to, subject, body)
    for attempt in range(1, MAX_CONNECT_ATTEMPTS + 1):
        try:
            await aiosmtplib.send(
                message,
                hostname=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USER or None,
                password=settings.SMTP_PASSWORD or None,
                use_tls=settings.SMTP_TLS,
                start_tls=settings.SMTP_STARTTLS,
                timeout=30,
            )
        except (SMTPConnectError, SMTPConnectTimeoutError) as e:
            logger.warning("email_connect_failed", to=to, attempt=attempt, error=str(e))
            if attempt < MAX_CONNECT_ATTEMPTS:
                await asyncio.sleep(2 ** (attempt - 1))
            continue
        except (SMTPReadTimeoutError, SMTPAuthenticationError, SMTPException) as e:
            logger.error(
                "email_send_failed",
                to=to,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        logger.info("email_sent", to=to, subject=subject, attempt=attempt)
        return True

    logger.error("email_connect_gave_up", to=to, subject=subject, attempts=MAX_CONNECT_ATTEMPTS)
    return False


async def send_password_reset_email(user: Users, token: str) -> bool:
    """Mail the reset link; ``token`` is the plain token, not its digest."""
    reset_url = f"{settings.PASSWORD_RESET_URL}?token={token}"
    body = f"""Hi {user.username},

We received a request to reset your password. Use the link below to choose a new one:

{reset_url}

This link expires in {settings.PASSWORD_RESET_TOKEN_HOURS} hour(s) and works once.

If you did not ask for this, ignore this email; your password stays the same.
"""
    return await send_email(to=user.email, subject="Reset your password", body=body)
