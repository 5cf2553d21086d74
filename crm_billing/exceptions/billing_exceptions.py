class BillingException(Exception):
    """Base class for billing errors that carry a human-readable message."""
    default_message = "Billing error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class CompanyNotFoundException(BillingException):
    """Company does not exist or belongs to another workspace."""
    default_message = "Company not found"


class NoSubscriptionItemsException(BillingException):
    """Company has no billing items to charge."""
    default_message = "No subscription items configured"


class SenderNotConfiguredException(BillingException):
    default_message = "Billing sender email is not configured"


class AlreadyBilledException(BillingException):
    """A SENT proforma already exists for the company and month."""
    default_message = "Already billed this month"


class BlobUploadException(BillingException):
    default_message = "Failed to upload proforma PDF"


class PermissionDeniedException(BillingException):
    default_message = "You do not have permission to modify this configuration"
