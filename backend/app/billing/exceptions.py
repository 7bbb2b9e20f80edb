"""Billing error taxonomy.

Every error carries the HTTP status a router should answer with and a short
machine-readable ``code``. Routers translate these into ``HTTPException``;
services raise them and never swallow data-store or Stripe failures.
"""


class BillingError(Exception):
    """Base class for billing failures surfaced to API callers."""

    status_code: int = 500
    code: str = "BILLING_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_detail(self) -> dict[str, str]:
        return {"message": self.message, "code": self.code}


class ValidationError(BillingError):
    """Malformed or out-of-range input (e.g. a non-positive amount)."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(BillingError):
    """A referenced admin, condominium, supplier, job or invoice does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ConfigurationError(BillingError):
    """Missing connected account, price id, secret or unconfigured processor.

    Defaults to 400 (the caller can fix it, e.g. by onboarding a payee);
    operator-side misconfiguration is raised with ``status_code=503``.
    """

    status_code = 400
    code = "CONFIG_ERROR"


class DependencyError(BillingError):
    """The data store or the payment processor call itself failed."""

    status_code = 502
    code = "DEPENDENCY_ERROR"


class SignatureError(BillingError):
    """Webhook payload failed signature verification."""

    status_code = 400
    code = "INVALID_SIGNATURE"
