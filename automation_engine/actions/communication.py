"""Communication actions. Delivery is simulated until providers are wired in."""

from __future__ import annotations

import logging
import time
from typing import Any, TYPE_CHECKING

from .base import BaseActionHandler

if TYPE_CHECKING:
    from ..engine.types import ExecutionResult, WorkflowContext

logger = logging.getLogger(__name__)


def _message_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}"


class SendEmailHandler(BaseActionHandler):
    aliases = ("sendEmail", "email")
    category = "communication"

    @property
    def key(self) -> str:
        return "send_email"

    async def execute(self, config: dict[str, Any], context: WorkflowContext) -> ExecutionResult:
        to = self.get_parameter(config, "to", "email", "recipient")
        if not to:
            return self.fail("Email recipient is required")
        subject = self.get_parameter(config, "subject", default="")
        logger.info(f"Simulated email to {to}: {subject}")
        return self.ok(
            {
                "action": "send_email",
                "to": to,
                "subject": subject,
                "status": "sent",
                "messageId": _message_id("msg"),
            }
        )


class SendSmsHandler(BaseActionHandler):
    aliases = ("sendSms", "sms")
    category = "communication"

    @property
    def key(self) -> str:
        return "send_sms"

    async def execute(self, config: dict[str, Any], context: WorkflowContext) -> ExecutionResult:
        to = self.get_parameter(config, "to", "phone", "phoneNumber")
        if not to:
            return self.fail("SMS recipient is required")
        message = self.get_parameter(config, "message", "body", default="")
        logger.info(f"Simulated SMS to {to}")
        return self.ok(
            {
                "action": "send_sms",
                "to": to,
                "message": message,
                "status": "sent",
                "messageId": _message_id("sms"),
            }
        )


class SlackNotificationHandler(BaseActionHandler):
    aliases = ("slackNotification", "slack")
    category = "communication"

    @property
    def key(self) -> str:
        return "slack_notification"

    async def execute(self, config: dict[str, Any], context: WorkflowContext) -> ExecutionResult:
        channel = self.get_parameter(config, "channel", default="#general")
        message = self.get_parameter(config, "message", "text", default="")
        logger.info(f"Simulated Slack message to {channel}")
        return self.ok(
            {
                "action": "slack_notification",
                "channel": channel,
                "message": message,
                "status": "sent",
                "messageId": _message_id("slack"),
            }
        )
