"""
Abstract interfaces for template collection providers.

All providers follow a standardized contract:
1. Async methods that may suspend on network I/O
2. Never raise for expected failures: return a ProviderResult
3. ProviderResult carries a FailureKind so callers can map it exhaustively
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from dataconvert.models import AccessToken, TemplateCollection
from dataconvert.reference import TemplateReference


class FailureKind(str, Enum):
    """Failure kinds reported by registry collaborators."""
    AUTH_FAILED = "auth_failed"
    NOT_CONFIGURED = "not_configured"
    FETCH_FAILED = "fetch_failed"
    VALIDATION_FAILED = "validation_failed"


@dataclass
class ProviderResult:
    """
    Standardized result from a provider call.

    Attributes:
        success: Whether the call succeeded
        data: AccessToken or TemplateCollection if successful
        failure: FailureKind if failed
        error: Diagnostic message if failed
        cause: Underlying exception, if any
        metadata: Additional details (status codes, digests, ...)
    """
    success: bool
    data: Optional[Any] = None
    failure: Optional[FailureKind] = None
    error: Optional[str] = None
    cause: Optional[BaseException] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata) -> "ProviderResult":
        """Create successful result."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        failure: FailureKind,
        error: str,
        cause: Optional[BaseException] = None,
        **metadata
    ) -> "ProviderResult":
        """Create failed result."""
        return cls(success=False, failure=failure, error=error, cause=cause, metadata=metadata)


class TokenProvider(ABC):
    """Issues access tokens for container registries"""

    @abstractmethod
    async def get_token(self, server: str) -> ProviderResult:
        """
        Acquire an access token for a registry server.

        Args:
            server: Registry login server, e.g. 'myacr.azurecr.io'

        Returns:
            ProviderResult with AccessToken data or a failure kind
        """
        pass


class TemplateCollectionProvider(ABC):
    """Supplies a template collection"""

    @abstractmethod
    async def get_collection(self) -> ProviderResult:
        """Return a ProviderResult with TemplateCollection data or a failure kind"""
        pass


class TemplateCollectionProviderFactory(ABC):
    """Creates providers bound to a reference and token"""

    @abstractmethod
    def create_provider(self, reference: TemplateReference, token: AccessToken) -> TemplateCollectionProvider:
        pass
