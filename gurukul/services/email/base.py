"""
Abstract notifier interface.

The auth core only needs two messages delivered. Delivery failures are
reported as False and never raised, since the OTP or user state they
relate to stays valid and the user can ask for a resend.

Example:
    class SmsNotifier(Notifier):
        async def send_otp(self, email, code, purpose): ...
        async def send_welcome(self, email, name): ...
"""

from abc import ABC, abstractmethod

from gurukul.auth.models import OtpPurpose


class Notifier(ABC):
    """
    Outbound message channel used by the auth core.
    """

    @abstractmethod
    async def send_otp(self, email: str, code: str, purpose: OtpPurpose) -> bool:
        """
        Deliver a one-time passcode.

        Args:
            email: Recipient address
            code: The plain OTP code
            purpose: Signup verification or password reset

        Returns:
            True if the message was handed off, False otherwise
        """
        pass

    @abstractmethod
    async def send_welcome(self, email: str, name: str) -> bool:
        """
        Deliver the welcome message sent after email verification.

        Args:
            email: Recipient address
            name: Display name

        Returns:
            True if the message was handed off, False otherwise
        """
        pass
