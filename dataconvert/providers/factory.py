from typing import Optional

from dataconvert.config import Settings, settings as default_settings
from dataconvert.resolver import TemplateCollectionResolver
from .default import DefaultTemplateCollectionProvider
from .registry import RegistryTemplateProviderFactory
from .token import ContainerRegistryTokenProvider


class ProviderFactory:
    """Factory for creating template collection providers from configuration"""

    @staticmethod
    def create_token_provider(config: Optional[Settings] = None) -> ContainerRegistryTokenProvider:
        config = config or default_settings
        return ContainerRegistryTokenProvider(
            registry_servers=config.container_registry_servers,
            username=config.registry_username,
            password=config.registry_password,
            timeout=config.registry_http_timeout
        )

    @staticmethod
    def create_registry_factory(config: Optional[Settings] = None) -> RegistryTemplateProviderFactory:
        config = config or default_settings
        return RegistryTemplateProviderFactory(
            registry_servers=config.container_registry_servers,
            timeout=config.registry_http_timeout,
            max_layer_size_bytes=config.max_layer_size_bytes
        )

    @staticmethod
    def create_resolver(config: Optional[Settings] = None) -> TemplateCollectionResolver:
        """
        Create a resolver wired from settings.

        Args:
            config: Optional settings override. If None, uses module settings
        """
        config = config or default_settings
        return TemplateCollectionResolver(
            default_provider=DefaultTemplateCollectionProvider(),
            token_provider=ProviderFactory.create_token_provider(config),
            provider_factory=ProviderFactory.create_registry_factory(config),
            fetch_timeout=config.fetch_timeout
        )
