from abc import ABC, abstractmethod
from flask import current_app
import requests


class NotificationChannel(ABC):
    @abstractmethod
    def send(self, notification):
        pass


class LogChannel(NotificationChannel):
    """Used in development and whenever no push gateway is configured."""

    def send(self, notification):
        current_app.logger.info(
            f'[PUSH] To user {notification.user_id}: {notification.subject} - {notification.message} '
            f'{notification.extra_data or {}}'
        )
        return True


class PushGatewayChannel(NotificationChannel):
    """Hands the notification to the external push gateway, which owns device tokens and APNs."""

    def send(self, notification):
        try:
            headers = {'Content-Type': 'application/json'}
            token = current_app.config.get('PUSH_GATEWAY_TOKEN')
            if token:
                headers['Authorization'] = f'Bearer {token}'

            payload = {
                "user_id": notification.user_id,
                "title": notification.subject,
                "body": notification.message,
                "data": notification.extra_data or {},
            }
            response = requests.post(
                current_app.config['PUSH_GATEWAY_URL'],
                json=payload,
                headers=headers,
                timeout=current_app.config.get('PUSH_GATEWAY_TIMEOUT', 10)
            )
            response.raise_for_status()
            return True
        except Exception as e:
            current_app.logger.error(f"Failed to send push notification {notification.id}: {e}")
            return False


class NotificationDispatcher:
    def __init__(self):
        self.channels = {
            'log': LogChannel(),
            'push': PushGatewayChannel()
        }

    def channel_name(self):
        if current_app.debug or not current_app.config.get('PUSH_GATEWAY_URL'):
            return 'log'
        return 'push'

    def dispatch(self, notification):
        channel = self.channels.get(self.channel_name())
        if channel:
            return channel.send(notification)

        return False
