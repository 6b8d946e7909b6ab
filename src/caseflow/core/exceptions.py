"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class MalformedPayloadException(ValidationException):
    """Inbound webhook payload cannot be normalized into alert events."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class CaseImmutableException(DomainException):
    """A CLOSED or CANCELLED case accepts audit entries only."""

    def __init__(self, case_number: str, status: str):
        self.case_number = case_number
        self.status = status
        super().__init__(
            f"Case {case_number} is {status} and can no longer change",
            {"case_number": case_number, "status": status}
        )


class InvalidTransitionException(DomainException):
    """Raised when a case status change is not in the transition table."""

    def __init__(
        self,
        case_number: str,
        from_status: str,
        to_status: str,
        details: Optional[dict] = None
    ):
        self.case_number = case_number
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Case {case_number} cannot move from {from_status} to {to_status}",
            details or {"case_number": case_number, "from": from_status, "to": to_status}
        )


class ConcurrentUpdateException(RepositoryException):
    """A concurrent writer won a race; the unit of work can be retried."""


class ActiveCaseConflictException(ConcurrentUpdateException):
    """Another non-terminal case already holds the fingerprint."""

    def __init__(self, fingerprint: str, details: Optional[dict] = None):
        self.fingerprint = fingerprint
        super().__init__(
            f"An active case already exists for fingerprint {fingerprint}",
            details or {"fingerprint": fingerprint}
        )


class PersistenceTimeoutException(RepositoryException):
    """A persistence operation did not complete within its time bound."""
