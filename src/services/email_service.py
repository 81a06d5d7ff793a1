"""
Resend Email Service для alert emails

Отправляет beforeTP / tpReached уведомления через Resend API
https://resend.com/docs/send-with-python
"""

import asyncio
from typing import Optional

import resend
from loguru import logger

from config.config import RESEND_API_KEY, RESEND_FROM_EMAIL, RESEND_FROM_NAME


class EmailSendError(Exception):
    """Email не отправлен (transport не настроен или Resend вернул ошибку)"""


class ResendEmailService:
    """
    Email transport поверх Resend SDK

    send() бросает EmailSendError вместо возврата False: dispatcher
    должен упасть, чтобы job queue повторила отправку.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
    ):
        self.api_key = api_key if api_key is not None else RESEND_API_KEY
        self.from_email = from_email or RESEND_FROM_EMAIL
        self.from_name = from_name or RESEND_FROM_NAME

        if not self.api_key:
            logger.warning("⚠️ RESEND_API_KEY not set - alert emails will fail")
        else:
            resend.api_key = self.api_key
            logger.info("✅ Resend email service initialized")

    def is_available(self) -> bool:
        """True если API key задан"""
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html: str, tags: Optional[dict] = None) -> str:
        """
        Отправить email

        Args:
            to: Адрес получателя
            subject: Тема
            html: HTML тело
            tags: Resend tags {name: value}

        Returns:
            Resend message id

        Raises:
            EmailSendError: Transport не настроен или отправка не удалась
        """
        if not self.is_available():
            raise EmailSendError("Resend not configured - cannot send email")

        params: resend.Emails.SendParams = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if tags:
            params["tags"] = [{"name": k, "value": str(v)} for k, v in tags.items()]

        try:
            # Resend SDK is synchronous, keep the event loop free
            response = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error(f"❌ Error sending email via Resend to {to}: {e}")
            raise EmailSendError(str(e)) from e

        # Resend возвращает dict с 'id' при успехе
        if not response or "id" not in response:
            raise EmailSendError(f"Unexpected Resend response: {response}")

        logger.info(f"✅ Email sent to {to} (id: {response['id']})")
        return response["id"]
