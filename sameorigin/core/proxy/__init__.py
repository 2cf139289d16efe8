# core/proxy/__init__.py
"""
Proxy modules package.

Компоненты конвейера: заголовки запроса, вызов upstream, перезапись
cookie, Location, CORS и HTML.
"""

from sameorigin.core.proxy.content_rewriter import ContentRewriter
from sameorigin.core.proxy.cookie_rewriter import rewrite_set_cookie, rewrite_set_cookies
from sameorigin.core.proxy.errors import ProxyError, UpstreamUnavailable, InvalidPayload
from sameorigin.core.proxy.origin import Origin
from sameorigin.core.proxy.redirect_rewriter import rewrite_location
from sameorigin.core.proxy.upstream import UpstreamCaller

__all__ = [
    'ContentRewriter',
    'InvalidPayload',
    'Origin',
    'ProxyError',
    'UpstreamCaller',
    'UpstreamUnavailable',
    'rewrite_location',
    'rewrite_set_cookie',
    'rewrite_set_cookies',
]
