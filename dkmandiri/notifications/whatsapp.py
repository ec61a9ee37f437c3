"""
WhatsApp gateway client.

Messages are posted to an HTTP gateway (Fonnte-style API): the token goes in
the Authorization header, the body carries ``target`` and ``message``.
"""
import logging
import re

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r'\D+')


class WhatsAppError(Exception):
    """Exception raised when a WhatsApp message cannot be sent."""

    pass


def normalize_phone(phone):
    """
    Normalise an Indonesian phone number to the international 62... form.

    '0812-3456-789' -> '628123456789', '+62 812 3456 789' -> '628123456789'
    """
    digits = _NON_DIGITS.sub('', phone or '')
    if not digits:
        return ''
    if digits.startswith('0'):
        return '62' + digits[1:]
    if digits.startswith('62'):
        return digits
    if digits.startswith('8'):
        return '62' + digits
    return digits


class WhatsAppClient:
    """Sends text messages through the configured WhatsApp gateway."""

    def __init__(self, api_url=None, token=None, timeout=None):
        self.api_url = api_url or getattr(settings, 'WHATSAPP_API_URL', '')
        self.token = token or getattr(settings, 'WHATSAPP_API_TOKEN', '')
        self.timeout = timeout or getattr(settings, 'WHATSAPP_TIMEOUT', 10)

    @property
    def is_configured(self):
        return bool(self.api_url and self.token)

    def send_message(self, phone, message):
        """
        Send a text message.

        Returns:
            The gateway's JSON response

        Raises:
            WhatsAppError: If the gateway is not configured, the number is
            invalid, or the gateway rejects the request
        """
        if not self.is_configured:
            raise WhatsAppError('WhatsApp gateway is not configured')

        target = normalize_phone(phone)
        if len(target) < 10:
            raise WhatsAppError(f'Invalid phone number: {phone!r}')

        try:
            response = requests.post(
                self.api_url,
                headers={'Authorization': self.token},
                data={'target': target, 'message': message, 'countryCode': '62'},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error(f"WhatsApp request failed for {target}: {e}")
            raise WhatsAppError(f'Failed to reach WhatsApp gateway: {e}')
        except ValueError as e:
            logger.error(f"WhatsApp gateway returned invalid JSON: {e}")
            raise WhatsAppError('Invalid response from WhatsApp gateway')

        if isinstance(data, dict) and data.get('status') is False:
            reason = data.get('reason') or data.get('detail') or 'unknown error'
            logger.warning(f"WhatsApp gateway rejected message to {target}: {reason}")
            raise WhatsAppError(f'WhatsApp gateway rejected the message: {reason}')

        logger.info(f"WhatsApp message sent to {target}")
        return data


def send_whatsapp_message(phone, message):
    """Send with a default client"""
    return WhatsAppClient().send_message(phone, message)


def notify_quietly(phone, message):
    """
    Best-effort send used for status notifications.
    Failures are logged and reported as False instead of raised.
    """
    if not phone:
        return False
    try:
        send_whatsapp_message(phone, message)
        return True
    except WhatsAppError as e:
        logger.warning(f"WhatsApp notification skipped: {e}")
        return False
