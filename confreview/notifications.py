"""
Best-effort notifications.

Delivery happens in a Celery worker. Nothing here may fail the state change that
triggered it: enqueue errors are logged and dropped.
"""
import logging

ASSIGNMENT_CREATED = "assignment_created"
REVIEW_SUBMITTED = "review_submitted"


class Notifier:
    def __init__(
        self,
        enabled=True,
        webhook_url=None,
        queue="notifications",
        logger=logging.getLogger(__name__),
    ):
        self.enabled = enabled
        self.webhook_url = webhook_url
        self.queue = queue
        self.logger = logger

    def dispatch(self, event, recipients, payload=None):
        recipients = [r for r in recipients if r]
        if not self.enabled or not recipients:
            return False

        # imported here so that the engine can be used without the service package
        from .service.celery_tasks import deliver_notification

        try:
            deliver_notification.apply_async(
                kwargs={
                    "event": event,
                    "recipients": recipients,
                    "payload": payload or {},
                    "webhook_url": self.webhook_url,
                },
                queue=self.queue,
                ignore_result=True,
            )
        # pylint:disable=broad-except
        except Exception as error_handle:
            self.logger.warning(
                "Could not enqueue {} notification for {}: {}".format(event, recipients, error_handle)
            )
            return False

        self.logger.debug("Queued {} notification for {}".format(event, recipients))
        return True


class NullNotifier(Notifier):
    """Used when the engine runs outside the service (CLI, scripts)."""

    def __init__(self, logger=logging.getLogger(__name__)):
        super().__init__(enabled=False, logger=logger)
