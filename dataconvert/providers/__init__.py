"""Template collection providers module"""
from .base import (
    FailureKind,
    ProviderResult,
    TemplateCollectionProvider,
    TemplateCollectionProviderFactory,
    TokenProvider,
)
from .default import DefaultTemplateCollectionProvider
from .registry import RegistryTemplateCollectionProvider, RegistryTemplateProviderFactory
from .token import ContainerRegistryTokenProvider

__all__ = [
    "FailureKind",
    "ProviderResult",
    "TemplateCollectionProvider",
    "TemplateCollectionProviderFactory",
    "TokenProvider",
    "DefaultTemplateCollectionProvider",
    "RegistryTemplateCollectionProvider",
    "RegistryTemplateProviderFactory",
    "ContainerRegistryTokenProvider",
]
