"""
Challenge delivery.

The engine hands OTP codes and magic links to a Notifier and never returns
them to the caller. Real SMS/email transports live outside this package;
LoggingNotifier is the development stand-in.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class DeliveryError(Exception):
    """The transport refused or failed to deliver the message."""


class NotifierTimeout(DeliveryError):
    """The transport did not answer within the caller's timeout."""


class Notifier(Protocol):
    """Delivers a payload to a phone number or email address."""

    def deliver(self, destination: str, payload: str, timeout: float) -> None: ...


class LoggingNotifier:
    """
    Notifier that only logs that a delivery happened.

    The payload carries the secret, so it is never written to the log.
    """

    def deliver(self, destination: str, payload: str, timeout: float) -> None:
        if not destination:
            raise DeliveryError("No destination")
        logger.info(f"Delivered challenge to {destination} ({len(payload)} chars)")
