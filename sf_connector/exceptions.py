"""
Salesforce Connector - Exceptions

Centralized exception hierarchy for all connector operations.
"""


class SalesforceError(Exception):
    """Base exception for all Salesforce operations."""
    pass


class SFConnectionError(SalesforceError):
    """Exception for org connection failures.

    Raised when:
    - Org alias or username cannot be resolved
    - An external sf CLI command returns a non-zero status
    """
    pass


class SFAuthError(SFConnectionError):
    """Exception for Salesforce authentication errors.

    Raised when:
    - SF CLI is not authenticated
    - Access token is invalid or expired
    - Org alias is not found
    """
    pass


class SFAPIError(SFConnectionError):
    """Exception for Salesforce API errors.

    Raised when:
    - REST API request fails
    - Resource not found (404)
    - Permission denied
    """
    pass


class SFNetworkError(SFAPIError):
    """Exception for Salesforce network or service errors.

    Raised when:
    - Network connection fails
    - API service returns non-auth fatal errors (5xx/4xx non-404)
    """
    pass


class SFQueryError(SFConnectionError):
    """Exception for SOQL query execution errors."""
    pass


class ProcessError(SFConnectionError):
    """Exception for sf CLI process failures.

    Carries the structured response name and message reported by the CLI.
    """

    def __init__(self, message: str, name: str = "", status: int = 1):
        super().__init__(message)
        self.name = name
        self.status = status


class DataRequiredError(SalesforceError):
    """Raised when a mandatory input (org alias, job id, query) is missing."""
    pass


class OperationNotAllowedError(SalesforceError):
    """Raised when a primary operation starts while another is still open."""
    pass


class PathValidationError(SalesforceError):
    """Raised when a file or folder argument is missing or of the wrong kind."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class FormatError(SalesforceError):
    """Raised when a selection filter does not match the metadata tree shape."""
    pass


class RetrieveTimeoutError(SalesforceError):
    """Raised when retrieved files never appear in the scratch project."""
    pass
