"""
Translation provider implementations.
"""

from .base import TranslationProvider, ProviderResult
from .google_mt import GoogleMTProvider
from .openai import OpenAICompatibleProvider

__all__ = [
    'TranslationProvider',
    'ProviderResult',
    'GoogleMTProvider',
    'OpenAICompatibleProvider',
]
