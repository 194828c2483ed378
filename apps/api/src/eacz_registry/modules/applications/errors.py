"""Application service errors, translated to problem responses by the routers."""

from eacz_registry.modules.shared.errors import ServiceError


class ApplicationServiceError(ServiceError):
    """Base exception for application service errors."""


class ApplicationNotFoundError(ApplicationServiceError):
    """Raised when an application is not found."""

    def __init__(self, application_id: str | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(
            message=message,
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class EligibilityFailedError(ApplicationServiceError):
    """Raised when the applicant does not meet the admission criteria."""

    title = "Eligibility Check Failed"

    def __init__(self, reason: str, requirements: list[str] | None = None):
        extra = {"reason": reason}
        if requirements:
            extra["requirements"] = requirements
        super().__init__(
            message=reason,
            error_code="ELIGIBILITY_FAILED",
            status_code=400,
            **extra,
        )


class InvalidApplicationStateError(ApplicationServiceError):
    """Raised when an operation is attempted in the wrong application status."""

    title = "Invalid Application State"

    def __init__(self, current_status: str, action: str, allowed: list[str] | None = None):
        extra = {"currentStatus": current_status}
        if allowed is not None:
            extra["allowedStatuses"] = allowed
        super().__init__(
            message=f"Cannot {action} application in current state: {current_status}",
            error_code="INVALID_APPLICATION_STATE",
            status_code=409,
            **extra,
        )


class InvalidTransitionError(ApplicationServiceError):
    """Raised when a requested status change is not allowed by the workflow."""

    title = "Invalid Status Transition"

    def __init__(self, current_status: str, new_status: str, valid: list[str]):
        super().__init__(
            message=f"Cannot move application from {current_status} to {new_status}",
            error_code="INVALID_STATUS_TRANSITION",
            status_code=409,
            currentStatus=current_status,
            requestedStatus=new_status,
            allowedStatuses=valid,
        )


class MissingDocumentsError(ApplicationServiceError):
    title = "Missing Documents"

    def __init__(self, requirements: list[str]):
        super().__init__(
            message="Missing required documents",
            error_code="MISSING_DOCUMENTS",
            status_code=400,
            requirements=requirements,
        )


class FeeRequiredError(ApplicationServiceError):
    """Raised when submitting before the application fee is settled."""

    title = "Payment Required"

    def __init__(self, **extra):
        super().__init__(
            message=(
                "Application fee must be paid before submission. "
                "Either pay via Paynow or upload proof of payment."
            ),
            error_code="FEE_REQUIRED",
            status_code=409,
            **extra,
        )


class SubmissionCheckError(ApplicationServiceError):
    """Raised when the submission checks could not be evaluated."""

    def __init__(self):
        super().__init__(
            message="Unable to verify application state and payment status",
            error_code="SUBMISSION_CHECK_FAILED",
            status_code=500,
        )


class ApplicationAccessDeniedError(ApplicationServiceError):
    def __init__(self, message: str = "You do not have access to this application."):
        super().__init__(
            message=message,
            error_code="APPLICATION_ACCESS_DENIED",
            status_code=403,
        )


class InvalidOtpError(ApplicationServiceError):
    def __init__(self, message: str = "Invalid or expired code", attempts_remaining: int | None = None):
        extra = {}
        if attempts_remaining is not None:
            extra["attemptsRemaining"] = attempts_remaining
        super().__init__(
            message=message,
            error_code="INVALID_OTP",
            status_code=401,
            **extra,
        )


class InvalidPaymentAmountError(ApplicationServiceError):
    def __init__(self, expected: str, currency: str):
        super().__init__(
            message=f"Payment amount must equal the application fee of {expected} {currency}",
            error_code="INVALID_PAYMENT_AMOUNT",
            status_code=400,
            expectedAmount=expected,
            currency=currency,
        )


class FeeAlreadySettledError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="The application fee has already been paid",
            error_code="FEE_ALREADY_SETTLED",
            status_code=409,
        )


class PaymentUnavailableError(ApplicationServiceError):
    def __init__(self, message: str = "Payment service unavailable"):
        super().__init__(
            message=message,
            error_code="PAYMENT_UNAVAILABLE",
            status_code=502,
        )


class InvalidPaymentCallbackError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="Payment notification could not be verified",
            error_code="INVALID_PAYMENT_CALLBACK",
            status_code=400,
        )


class RecordCreationError(ApplicationServiceError):
    """Raised when the member or organization record cannot be created."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            error_code="RECORD_CREATION_FAILED",
            status_code=500,
        )
