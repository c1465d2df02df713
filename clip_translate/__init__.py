"""
Incremental page translation for clipped web content
"""
from .core.controller import PageTranslator, DiagnosticReport
from .core.document import HtmlDocument

__all__ = [
    'PageTranslator',
    'DiagnosticReport',
    'HtmlDocument',
]
