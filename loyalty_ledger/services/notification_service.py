"""
Notification Service for the loyalty program.

Fire-and-forget messages to members:
- Birthday bonus awarded
- Tier upgrades
- Reward redeemed (with the in-store code)
- Referral bonus credited

Notifications are sent only after the balance change has committed and never
raise: a failed send is logged and the caller carries on.

Configuration:
- NOTIFICATION_WEBHOOK_URL: outbound webhook (email/SMS relay). Unset means
  messages are only logged.
- NOTIFICATION_TIMEOUT_SECONDS: per-request timeout.
"""
from typing import Any, Dict, Optional

import requests
from flask import current_app

from .identity_gateway import get_identity_gateway

EXTENSION_KEY = 'loyalty_notifications'


class NotificationService:
    """
    Renders a template per event and posts it to the configured relay.
    """

    DEFAULT_TEMPLATES = {
        'birthday_bonus': {
            'subject': 'Happy Birthday! {points} points are on us',
            'text': 'Happy Birthday! We added {points} points to your rewards balance. '
                    'Your new balance is {new_balance} points.',
        },
        'tier_upgraded': {
            'subject': 'You reached {new_tier}!',
            'text': 'Congratulations, you moved from {previous_tier} to {new_tier}.',
        },
        'reward_redeemed': {
            'subject': 'Your {reward_name} is ready',
            'text': 'Show code {redemption_code} in store to claim your {reward_name}. '
                    'It expires on {expires_at}.',
        },
        'referral_bonus': {
            'subject': 'You earned {points} referral points',
            'text': 'Thanks for spreading the word! {points} points were added to your balance.',
        },
    }

    def __init__(self, webhook_url: str = None, timeout: float = 3.0):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def render(self, event: str, payload: Dict[str, Any]) -> Dict[str, str]:
        template = self.DEFAULT_TEMPLATES.get(event)
        if not template:
            return {'subject': event, 'text': ''}
        try:
            return {
                'subject': template['subject'].format(**payload),
                'text': template['text'].format(**payload),
            }
        except KeyError as e:
            current_app.logger.warning(f"Notification template {event} missing field {e}")
            return {'subject': event, 'text': ''}

    def send(self, event: str, user_id: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Best effort: always returns a result dict, never raises."""
        payload = payload or {}
        try:
            email = get_identity_gateway().get_email(user_id)
            message = self.render(event, payload)

            if not self.webhook_url:
                current_app.logger.info(f"Notification {event} for {user_id}: {message['subject']}")
                return {'success': True, 'delivered': False}

            response = requests.post(
                self.webhook_url,
                json={
                    'event': event,
                    'user_id': user_id,
                    'email': email,
                    'subject': message['subject'],
                    'text': message['text'],
                    'data': payload,
                },
                timeout=self.timeout,
            )
            if response.status_code >= 400:
                current_app.logger.warning(
                    f"Notification {event} for {user_id} rejected: {response.status_code}"
                )
                return {'success': False, 'error': f"Status code: {response.status_code}"}

            current_app.logger.info(f"Notification {event} sent to {user_id}")
            return {'success': True, 'delivered': True}

        except Exception as e:
            current_app.logger.warning(f"Notification {event} for {user_id} failed: {e}")
            return {'success': False, 'error': str(e)}


def init_notifications(app) -> NotificationService:
    service = NotificationService(
        webhook_url=app.config.get('NOTIFICATION_WEBHOOK_URL') or None,
        timeout=app.config.get('NOTIFICATION_TIMEOUT_SECONDS', 3.0),
    )
    app.extensions[EXTENSION_KEY] = service
    return service


def get_notifier() -> NotificationService:
    return current_app.extensions[EXTENSION_KEY]


def notify_after_commit(uow, event: str, user_id: str, payload: Dict[str, Any]) -> None:
    """Queue a notification on the unit of work; it fires only if the work commits."""
    uow.after_commit(lambda: get_notifier().send(event, user_id, payload))
