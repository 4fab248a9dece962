"""Payment event messages and the sinks they are published to.

Publishing is fire-and-forget from the point of view of the payment service:
a publisher may raise, and the service logs the failure and moves on.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from .clock import utcnow

logger = logging.getLogger(__name__)


class PaymentMessage(BaseModel):
    """Common fields of every payment event."""
    message_type: str = ""
    payment_reference: str = ""
    student_number: str = ""
    amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    status: str = ""
    message: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class PaymentProcessedMessage(PaymentMessage):
    message_type: str = "PaymentProcessed"
    status: str = "Processed"
    student_exists: bool = True
    student_is_active: bool = True


class PaymentFailedMessage(PaymentMessage):
    message_type: str = "PaymentFailed"
    status: str = "Failed"
    error_reason: str = ""


class PaymentValidationMessage(PaymentMessage):
    message_type: str = "PaymentValidation"
    status: str = "ValidationFailed"
    validation_errors: List[str] = Field(default_factory=list)


class MessagePublisher(ABC):
    """Sink for payment events."""

    @abstractmethod
    async def publish(self, message: PaymentMessage) -> None:
        raise NotImplementedError

    async def publish_payment_processed(self, message: PaymentProcessedMessage) -> None:
        await self.publish(message)

    async def publish_payment_failed(self, message: PaymentFailedMessage) -> None:
        await self.publish(message)

    async def publish_payment_validation(self, message: PaymentValidationMessage) -> None:
        await self.publish(message)


class LoggingMessagePublisher(MessagePublisher):
    """Writes each event to the log. Used when no broker is configured."""

    async def publish(self, message: PaymentMessage) -> None:
        if isinstance(message, PaymentFailedMessage):
            logger.warning(
                f"Publishing {message.message_type} message: {message.payment_reference} "
                f"for student {message.student_number}, reason: {message.error_reason}"
            )
        else:
            logger.info(
                f"Publishing {message.message_type} message: {message.payment_reference} "
                f"for student {message.student_number}"
            )


class InMemoryMessagePublisher(MessagePublisher):
    """Keeps published events in a list, in publish order."""

    def __init__(self):
        self.messages: List[PaymentMessage] = []

    async def publish(self, message: PaymentMessage) -> None:
        self.messages.append(message)

    def of_type(self, message_type: str) -> List[PaymentMessage]:
        return [m for m in self.messages if m.message_type == message_type]

    def clear(self) -> None:
        self.messages.clear()
