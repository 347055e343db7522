"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class LeadHubError(Exception):
    """Base exception for all LeadHub errors."""

    pass


class InsufficientLeadCoinsError(LeadHubError):
    """Raised when a user's LeadCoin balance cannot cover a debit."""

    def __init__(self, balance: int, required: int) -> None:
        self.balance = balance
        self.required = required
        super().__init__(f"Insufficient LeadCoins. Balance: {balance}, Required: {required}")


class UserNotFoundError(LeadHubError):
    """Raised when a user doesn't exist."""

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class ResourceNotFoundError(LeadHubError):
    """Raised when a requested resource doesn't exist."""

    def __init__(self, resource: str, resource_id: int | str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class PlanInactiveError(LeadHubError):
    """Raised when purchasing a plan or package that is switched off."""

    def __init__(self, plan_id: int) -> None:
        self.plan_id = plan_id
        super().__init__(f"Plan {plan_id} is not active")


class PaymentSessionNotFoundError(LeadHubError):
    """Raised when no purchase record references a payment session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"No purchase found for payment session {session_id}")


class DuplicateEmailError(LeadHubError):
    """Raised when registering an email that already has an account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"User with email {email} already exists")


class CouponError(LeadHubError):
    """Raised when a coupon cannot be claimed."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Coupon rejected: {reason}")


class InvalidStateError(LeadHubError):
    """Raised when an operation is not allowed in the resource's current state."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class WriteVerificationError(LeadHubError):
    """Raised when database write verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Write verification failed: {message}")


class DataIntegrityError(LeadHubError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Data integrity error: {message}")


class PaymentProviderError(LeadHubError):
    """Raised when payment provider operation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class WebhookVerificationError(LeadHubError):
    """Raised when webhook verification fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Webhook verification error: {message}")


class AuthenticationError(LeadHubError):
    """Raised when authentication fails (bad credentials, bad or revoked session)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Authentication failed: {message}")


class AuthorizationError(LeadHubError):
    """Raised when user lacks the required role."""

    def __init__(self, required_role: str) -> None:
        self.required_role = required_role
        super().__init__(f"Authorization failed: requires role {required_role}")


class AccountTokenError(LeadHubError):
    """Raised when a verification code or password reset token is wrong or expired."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Account token rejected: {message}")


class EmailDeliveryError(LeadHubError):
    """Raised when an account email cannot be handed to the mail server."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Email delivery failed: {message}")
