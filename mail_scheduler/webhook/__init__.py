"""HTTP trigger for the scheduled email dispatcher."""

from mail_scheduler.webhook.server import SCHEDULER_PATH, create_app

__all__ = ["SCHEDULER_PATH", "create_app"]
