from kombu import Queue

task_default_queue = "default"
task_queues = (
    Queue(
        "notifications",
        routing_key="confreview.service.celery_tasks.deliver_notification",
    ),
)
task_ignore_result = True
broker_url = "redis://localhost:6379/0"
result_backend = "redis://localhost:6379/0"
task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]
task_create_missing_queues = True
