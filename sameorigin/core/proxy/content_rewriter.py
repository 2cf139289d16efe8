# core/proxy/content_rewriter.py
"""Модуль для перезаписи URL в HTML контенте"""

import re
import logging

from sameorigin.core.proxy.navigation_guard import render_guard

logger = logging.getLogger(__name__)

HTML_CONTENT_TYPE = 'text/html; charset=utf-8'


def _alternatives(literals) -> str:
    # Длинные варианты первыми
    return '|'.join(re.escape(literal) for literal in sorted(set(literals), key=len, reverse=True))


def is_html(content_type: str) -> bool:
    """Переписывается только text/html, остальное идёт потоком без изменений"""
    return (content_type or '').split(';', 1)[0].strip().lower() == 'text/html'


class ContentRewriter:
    """Класс для удаления абсолютных URL upstream из HTML и внедрения guard"""

    _HEAD_CLOSE_PATTERN = re.compile(r'</head\s*>', re.IGNORECASE)
    _BODY_CLOSE_PATTERN = re.compile(r'</body\s*>', re.IGNORECASE)

    def __init__(self, settings):
        """
        Инициализация ContentRewriter

        Args:
            settings: ProxySettings (upstream origin и политика fallback)
        """
        origins = [settings.upstream]
        if settings.fallback_origin is not None:
            origins.append(settings.fallback_origin)
        self.origins = origins

        ported, bare = [], []
        for origin in origins:
            *with_port, without_port = origin.literals()
            for literal in with_port:
                ported.append(literal)
                # Форма из JSON внутри inline-скриптов: https:\/\/host
                ported.append(literal.replace('/', '\\/'))
            bare.append(without_port)
            bare.append(without_port.replace('/', '\\/'))

        # Origin с явным портом удаляется всегда, если дальше не идёт цифра порта.
        # Origin без порта не трогается, если дальше продолжается другой хост
        # (upstream.example.com, upstream.example-cdn) или указан порт.
        self._origin_pattern = re.compile(
            rf'(?:{_alternatives(ported)})(?!\d)|(?:{_alternatives(bare)})(?![\w\-]|\.[\w\-]|:\d)',
            re.IGNORECASE,
        )
        self._guard = render_guard(origins)

        logger.debug(f"ContentRewriter: {', '.join(str(o) for o in origins)} → relative")

    def rewrite(self, content: str) -> str:
        """
        Перезаписывает HTML

        Args:
            content: HTML контент целиком

        Returns:
            str: Контент без абсолютных ссылок на upstream и с одним guard
        """
        content, replaced = self._origin_pattern.subn('', content)
        if replaced:
            logger.debug(f"ContentRewriter: removed {replaced} upstream origin literal(s)")
        return self._inject_guard(content)

    def _inject_guard(self, content: str) -> str:
        """
        Вставляет guard перед </head>, иначе перед </body>, иначе в начало

        Args:
            content: HTML контент

        Returns:
            str: HTML с guard
        """
        for pattern in (self._HEAD_CLOSE_PATTERN, self._BODY_CLOSE_PATTERN):
            match = pattern.search(content)
            if match:
                return f"{content[:match.start()]}{self._guard}{content[match.start():]}"

        return self._guard + content
