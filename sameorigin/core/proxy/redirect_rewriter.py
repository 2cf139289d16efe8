# core/proxy/redirect_rewriter.py
"""Перезапись Location, указывающего на upstream"""

import logging
from urllib.parse import urljoin, urlsplit

from sameorigin.core.proxy.origin import Origin

logger = logging.getLogger(__name__)


def rewrite_location(location: str, upstream: Origin, *aliases: Origin, base_path: str = '/') -> str:
    """
    Переводит редирект на upstream в относительный путь

    Args:
        location: Исходное значение Location (абсолютное или относительное)
        upstream: Origin upstream, относительно которого разрешается значение
        aliases: Другие origin того же upstream (например, http после fallback)
        base_path: Путь исходного запроса для разрешения относительных значений

    Returns:
        str: path + query + fragment для того же origin, иначе исходное значение
    """
    if not location:
        return location

    try:
        base = f"{upstream.serialize()}{base_path or '/'}"
        resolved = urljoin(base, location.strip())
        target = Origin.parse(resolved)
        if target != upstream and target not in aliases:
            return location

        parts = urlsplit(resolved)
        relative = parts.path or '/'
        if parts.query:
            relative += f"?{parts.query}"
        if parts.fragment:
            relative += f"#{parts.fragment}"
        return relative

    except ValueError as e:
        logger.debug(f"Location {location!r} left as is: {e}")
        return location
