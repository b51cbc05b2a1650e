from confreview.service import create_app, create_celery

app = create_app()
celery_app = create_celery(app)

# registers the notification task with the worker
import confreview.service.celery_tasks  # noqa: E402,F401
