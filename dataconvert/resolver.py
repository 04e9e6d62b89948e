"""
Template Collection Resolver

Turns a template collection reference into a TemplateCollection:

1. Default reference -> embedded collection, no token requested
2. Registry reference -> token from the token provider, then a provider
   bound to (reference, token) downloads the collection

Every collaborator failure leaves this module as a ConversionError of
kind RegistryAuthFailed or TemplateFetchFailed.
"""
import asyncio
import logging
from typing import Awaitable, Dict, Optional, TypeVar

from dataconvert.errors import ConversionError, ErrorKind, OperationCancelledError
from dataconvert.models import TemplateCollection
from dataconvert.providers.base import (
    FailureKind,
    ProviderResult,
    TemplateCollectionProvider,
    TemplateCollectionProviderFactory,
    TokenProvider,
)
from dataconvert.reference import InvalidReferenceError, TemplateReference, is_default_reference

logger = logging.getLogger(__name__)

T = TypeVar("T")

FAILURE_TO_ERROR_KIND: Dict[FailureKind, ErrorKind] = {
    FailureKind.AUTH_FAILED: ErrorKind.REGISTRY_AUTH_FAILED,
    FailureKind.NOT_CONFIGURED: ErrorKind.TEMPLATE_FETCH_FAILED,
    FailureKind.FETCH_FAILED: ErrorKind.TEMPLATE_FETCH_FAILED,
    FailureKind.VALIDATION_FAILED: ErrorKind.TEMPLATE_FETCH_FAILED,
}

# Time given to a cancelled transport call to unwind
CANCEL_GRACE_SECONDS = 1.0


class TemplateCollectionResolver:
    """
    Resolves template collection references.

    Usage:
        resolver = TemplateCollectionResolver(default_provider, token_provider, factory)
        templates = await resolver.resolve("myacr.azurecr.io/hl7v2:v1")
    """

    def __init__(
        self,
        default_provider: TemplateCollectionProvider,
        token_provider: TokenProvider,
        provider_factory: TemplateCollectionProviderFactory,
        fetch_timeout: Optional[float] = None,
    ):
        """
        Initialize the resolver.

        Args:
            default_provider: Supplies the embedded default collection
            token_provider: Issues registry access tokens
            provider_factory: Creates registry-backed providers
            fetch_timeout: Overall budget in seconds for token issuance and
                download of a registry collection (None for no limit)
        """
        self.default_provider = default_provider
        self.token_provider = token_provider
        self.provider_factory = provider_factory
        self.fetch_timeout = fetch_timeout

    async def resolve(
        self,
        reference: str,
        registry_server: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TemplateCollection:
        """
        Resolve a reference to a template collection.

        Args:
            reference: Template collection reference
            registry_server: Registry login server; derived from the
                reference when empty
            cancel_event: Setting it aborts in-flight network calls

        Returns:
            The resolved TemplateCollection

        Raises:
            ConversionError: RegistryAuthFailed or TemplateFetchFailed
        """
        if is_default_reference(reference):
            # The default collection is embedded, no token needed
            logger.info("Using the default template collection for data conversion.")
            try:
                result = await self.default_provider.get_collection()
            except Exception as e:
                raise self._unexpected(e, reference, "") from e
            return self._unwrap(result, reference, "")

        logger.info("Using a custom template collection for data conversion.")

        try:
            image = TemplateReference.parse(reference)
        except InvalidReferenceError as e:
            logger.error("Invalid template collection reference %r.", reference)
            raise ConversionError(ErrorKind.TEMPLATE_FETCH_FAILED, str(e), e) from e

        server = (registry_server or "").strip() or image.registry
        deadline = self._deadline()

        try:
            token_result = await self._bounded(
                self.token_provider.get_token(server), cancel_event, deadline
            )
            if not token_result.success:
                raise self._failure(token_result, reference, server)

            provider = self.provider_factory.create_provider(image, token_result.data)
            result = await self._bounded(provider.get_collection(), cancel_event, deadline)
        except ConversionError:
            raise
        except OperationCancelledError as e:
            logger.error(
                "Template collection resolution was cancelled (reference=%s, server=%s): %s",
                reference, server, e
            )
            raise ConversionError(
                ErrorKind.TEMPLATE_FETCH_FAILED,
                f"Failed to fetch the template collection: {e}",
                e
            ) from e
        except Exception as e:
            raise self._unexpected(e, reference, server) from e

        return self._unwrap(result, reference, server)

    def _unwrap(self, result: ProviderResult, reference: str, server: str) -> TemplateCollection:
        if not result.success:
            raise self._failure(result, reference, server)

        collection = result.data
        if not isinstance(collection, TemplateCollection) or collection.is_empty:
            logger.error("Template collection %s resolved to no templates.", reference)
            raise ConversionError(
                ErrorKind.TEMPLATE_FETCH_FAILED,
                "Failed to fetch the template collection: the collection is empty."
            )
        return collection

    def _failure(self, result: ProviderResult, reference: str, server: str) -> ConversionError:
        """Map a failed provider result to a conversion error."""
        kind = FAILURE_TO_ERROR_KIND.get(result.failure, ErrorKind.TEMPLATE_FETCH_FAILED)
        context = {"reference": reference, "server": server, "error_kind": kind.value}

        if kind == ErrorKind.REGISTRY_AUTH_FAILED:
            logger.error(
                "Failed to access container registry (reference=%s, server=%s): %s",
                reference, server, result.error,
                exc_info=result.cause,
                extra=context
            )
            message = f"Failed to access container registry '{server}'."
        elif result.failure == FailureKind.VALIDATION_FAILED:
            logger.error(
                "Failed to validate the downloaded template collection (reference=%s): %s",
                reference, result.error,
                exc_info=result.cause,
                extra=context
            )
            message = f"Failed to fetch the template collection: {result.error}"
        else:
            logger.error(
                "Failed to fetch the templates from remote (reference=%s, server=%s): %s",
                reference, server, result.error,
                exc_info=result.cause,
                extra=context
            )
            message = f"Failed to fetch the template collection: {result.error}"

        error = ConversionError(kind, message, result.cause)
        error.__cause__ = result.cause
        return error

    def _unexpected(self, e: Exception, reference: str, server: str) -> ConversionError:
        logger.error(
            "Unhandled exception: failed to get template collection (reference=%s, server=%s).",
            reference, server,
            exc_info=e
        )
        return ConversionError(
            ErrorKind.TEMPLATE_FETCH_FAILED,
            "Failed to fetch the template collection: unexpected error.",
            e
        )

    def _deadline(self) -> Optional[float]:
        if self.fetch_timeout is None:
            return None
        return asyncio.get_running_loop().time() + self.fetch_timeout

    async def _bounded(
        self,
        call: Awaitable[T],
        cancel_event: Optional[asyncio.Event],
        deadline: Optional[float],
    ) -> T:
        """
        Await a collaborator call until it finishes, the cancel event is set
        or the deadline passes. The call is cancelled in the latter cases.

        Raises:
            OperationCancelledError: On cancel event or deadline
        """
        if cancel_event is not None and cancel_event.is_set():
            if asyncio.iscoroutine(call):
                call.close()
            raise OperationCancelledError("the operation was cancelled")

        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(call)
        waiters = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        timeout = None if deadline is None else max(0.0, deadline - loop.time())
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.wait({task}, timeout=CANCEL_GRACE_SECONDS)
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("the operation was cancelled")
        raise OperationCancelledError("the operation timed out")
