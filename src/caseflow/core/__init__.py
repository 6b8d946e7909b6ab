"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from caseflow.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    ValidationException,
    MalformedPayloadException,
    ResourceNotFoundException,
    ConfigurationException,
    InvalidTransitionException,
    CaseImmutableException,
    ConcurrentUpdateException,
    ActiveCaseConflictException,
    PersistenceTimeoutException,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "ValidationException",
    "MalformedPayloadException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "InvalidTransitionException",
    "CaseImmutableException",
    "ConcurrentUpdateException",
    "ActiveCaseConflictException",
    "PersistenceTimeoutException",
]
