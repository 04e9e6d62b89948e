"""
Convert data service.

Chains the two phases for one request: the template collection is
resolved first, and only then is the conversion dispatched.
"""
import asyncio
import logging
from typing import Optional

from dataconvert.config import Settings, settings as default_settings
from dataconvert.dispatcher import ConversionDispatcher
from dataconvert.logging_config import setup_logging
from dataconvert.models import ConversionRequest
from dataconvert.providers.factory import ProviderFactory
from dataconvert.registry import build_converter_registry
from dataconvert.resolver import TemplateCollectionResolver

logger = logging.getLogger(__name__)


class ConvertDataService:
    """
    Resolve-then-convert pipeline.

    Usage:
        service = ConvertDataService(resolver, dispatcher)
        bundle_json = await service.process(request)
    """

    def __init__(self, resolver: TemplateCollectionResolver, dispatcher: ConversionDispatcher):
        self.resolver = resolver
        self.dispatcher = dispatcher

    async def process(
        self,
        request: ConversionRequest,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """
        Convert one request.

        Raises:
            ConversionError: From either phase
        """
        templates = await self.resolver.resolve(
            request.template_collection_reference,
            request.registry_server,
            cancel_event,
        )
        logger.debug(
            "Resolved %d templates for %s",
            len(templates), request.template_collection_reference
        )
        return await self.dispatcher.convert(request, templates, cancel_event)


def build_service(config: Optional[Settings] = None) -> ConvertDataService:
    """
    Create a service wired from settings.

    Configures logging from ``log_level``/``log_format``, then builds the
    resolver and converter registry from the same settings.

    Args:
        config: Optional settings override. If None, uses module settings
    """
    config = config or default_settings
    setup_logging(config.log_level, config.log_format)
    return ConvertDataService(
        resolver=ProviderFactory.create_resolver(config),
        dispatcher=ConversionDispatcher(build_converter_registry(config))
    )
