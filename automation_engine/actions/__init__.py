"""Built-in action handlers."""

from .base import BaseActionHandler
from .communication import SendEmailHandler, SendSmsHandler, SlackNotificationHandler
from .integrations import DatabaseQueryHandler, DriveUploadHandler
from .task_management import TaskManagementHandler, parse_due_date, task_to_dict

__all__ = [
    "BaseActionHandler",
    "SendEmailHandler",
    "SendSmsHandler",
    "SlackNotificationHandler",
    "DatabaseQueryHandler",
    "DriveUploadHandler",
    "TaskManagementHandler",
    "parse_due_date",
    "task_to_dict",
]
