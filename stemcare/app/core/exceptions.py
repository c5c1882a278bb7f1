"""Custom exception classes for StemCare application."""


class StemCareException(Exception):
    """Base exception for all StemCare-specific errors."""

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def extra_fields(self) -> dict:
        """Additional fields merged into the JSON error body."""
        return {}


class InvalidReportRequestError(StemCareException):
    """Raised when a report request is missing fields or has malformed inputs."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            details="Fix the request and submit it again"
        )


class UnknownCustomerError(StemCareException):
    """Raised when the customer referenced by a request does not exist."""

    def __init__(self, customer_id: str):
        super().__init__(
            message=f"Customer not found: {customer_id}",
            details="Create the customer record before requesting a report"
        )
        self.customer_id = customer_id


class CustomerInactiveError(StemCareException):
    """Raised when the customer record has been deactivated."""

    def __init__(self, customer_id: str):
        super().__init__(
            message=f"Customer {customer_id} is inactive",
            details="Reports cannot be generated for an inactive customer"
        )
        self.customer_id = customer_id


class ExamNotFoundError(StemCareException):
    """Raised when a medical exam has no data for the given customer."""

    def __init__(self, exam_id: str, customer_id: str):
        super().__init__(
            message=f"No exam data found for exam {exam_id} of customer {customer_id}",
            details="Every input id must belong to the customer"
        )
        self.exam_id = exam_id
        self.customer_id = customer_id


class ReportNotFoundError(StemCareException):
    """Raised when a report is not found."""

    def __init__(self, report_id: str):
        super().__init__(
            message=f"Report not found: {report_id}",
            details="The requested report does not exist"
        )
        self.report_id = report_id


class DuplicateReportError(StemCareException):
    """Raised when an identical report was requested within the suppression window."""

    def __init__(self, report_id: str, status: str):
        super().__init__(
            message=f"An identical report was already requested (report {report_id}, status {status})",
            details="Poll the existing report instead of submitting again"
        )
        self.report_id = report_id
        self.status = status

    def extra_fields(self) -> dict:
        return {"reportId": self.report_id, "status": self.status}


class ReportNotReadyError(StemCareException):
    """Raised when an artifact or download is requested before the report completed."""

    def __init__(self, report_id: str, status: str):
        super().__init__(
            message=f"Report {report_id} is not completed (status: {status})",
            details="Wait until the report reaches the completed state"
        )
        self.report_id = report_id
        self.status = status

    def extra_fields(self) -> dict:
        return {"reportId": self.report_id, "status": self.status}


class AnalysisServiceError(StemCareException):
    """Raised when the external analysis service fails."""

    def __init__(
        self,
        operation: str,
        original_error: Exception | None = None,
        transient: bool = False,
    ):
        message = f"Analysis service error during {operation}"
        if original_error:
            message += f": {str(original_error)}"
        super().__init__(
            message=message,
            details="The analysis service is temporarily unavailable"
        )
        self.operation = operation
        self.original_error = original_error
        self.transient = transient


class DocumentConversionError(StemCareException):
    """Raised when the document converter fails."""

    def __init__(
        self,
        operation: str,
        original_error: Exception | None = None,
        transient: bool = False,
    ):
        message = f"Document conversion error during {operation}"
        if original_error:
            message += f": {str(original_error)}"
        super().__init__(
            message=message,
            details="The document conversion service is temporarily unavailable"
        )
        self.operation = operation
        self.original_error = original_error
        self.transient = transient


class StorageError(StemCareException):
    """Raised when the database layer fails."""

    def __init__(self, operation: str, original_error: Exception | None = None):
        message = f"Storage error during {operation}"
        if original_error:
            message += f": {str(original_error)}"
        super().__init__(
            message=message,
            details="The database is temporarily unavailable"
        )
        self.operation = operation
        self.original_error = original_error
