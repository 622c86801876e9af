from docproc.providers.base import BaseProviderAdapter
from docproc.providers.registry import ProviderRegistry, ResolvedProvider

__all__ = ["BaseProviderAdapter", "ProviderRegistry", "ResolvedProvider"]
