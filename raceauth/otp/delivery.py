"""
OTP email delivery.

EmailSender is the seam to the host application's mail service.
SimulatedEmailSender stands in for it in development: it waits a little,
fails now and then, and never writes the code to the logs.
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from ..config import APP_NAME
from ..errors import DeliveryError


logger = logging.getLogger(__name__)

DEFAULT_DELAY_RANGE = (1.0, 2.0)
DEFAULT_FAILURE_RATE = 0.05


def build_otp_email(app_name: str, code: str, expiry_minutes: int) -> Tuple[str, str]:
    """
    Render the password-reset email.

    Returns:
        (subject, body)
    """
    subject = f"{app_name} - Password Reset Code"
    body = (
        f"Your password reset code is: {code}\n"
        f"\n"
        f"This code will expire in {expiry_minutes} minutes for security.\n"
        f"If you didn't request this, please ignore this email.\n"
        f"\n"
        f"- {app_name} Team\n"
    )
    return subject, body


class EmailSender(ABC):
    """Sends OTP emails."""

    @abstractmethod
    def send_otp(self, email: str, code: str, expiry_minutes: int) -> None:
        """
        Deliver a code.

        Raises:
            DeliveryError: The message could not be handed off
        """


class SimulatedEmailSender(EmailSender):
    """Development sender with artificial latency and failure rate."""

    def __init__(self, app_name: str = APP_NAME,
                 delay_range: Tuple[float, float] = DEFAULT_DELAY_RANGE,
                 failure_rate: float = DEFAULT_FAILURE_RATE,
                 sleep: Callable[[float], None] = time.sleep,
                 rng: Optional[random.Random] = None):
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0 and 1")
        low, high = delay_range
        if low < 0 or high < low:
            raise ValueError("delay_range must be (low, high) with 0 <= low <= high")
        self.app_name = app_name
        self._delay_range = (low, high)
        self._failure_rate = failure_rate
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.sent = 0

    def send_otp(self, email: str, code: str, expiry_minutes: int) -> None:
        subject, _body = build_otp_email(self.app_name, code, expiry_minutes)
        self._sleep(self._rng.uniform(*self._delay_range))

        if self._rng.random() < self._failure_rate:
            logger.warning("Simulated delivery failure for %r", subject)
            raise DeliveryError("Email delivery failed. Please try again.")

        self.sent += 1
        logger.info("Simulated email sent: %r (expires in %d min)", subject, expiry_minutes)
