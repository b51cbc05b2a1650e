import logging

import requests
from requests.exceptions import ConnectionError, Timeout

from confreview.service import celery

logger = logging.getLogger(__name__)


@celery.task(
    name="deliver_notification",
    bind=True,
    time_limit=60,
    autoretry_for=(ConnectionError, Timeout),
    retry_backoff=10,
    max_retries=5,
    retry_jitter=True,
)
def deliver_notification(self, event, recipients, payload, webhook_url=None):
    """
    Hands a notification to the external mail service.

    Without a webhook the notification is only logged.
    """
    logger.info(
        "{} task received: event={} recipients={}".format(self.name, event, recipients)
    )
    if not webhook_url:
        logger.info("No notification webhook configured, payload={}".format(payload))
        return False

    response = requests.post(
        webhook_url,
        json={"event": event, "recipients": recipients, "payload": payload},
        timeout=10,
    )
    response.raise_for_status()
    return True
