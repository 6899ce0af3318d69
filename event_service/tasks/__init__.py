"""Background processing.

- queue.py: taskiq adapter for the durable queue port
- middleware.py: retry policy and queue stats middleware
- broker.py: taskiq-aio-pika broker (``rabbitmq`` backend only)
- events.py / webhooks.py: worker tasks
- scheduler.py: APScheduler maintenance sweeps

Run the worker to execute tasks:
    taskiq worker event_service.tasks.broker:broker
"""
