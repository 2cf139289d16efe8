# core/proxy/upstream.py
"""Вызов upstream с таймаутом и резервной попыткой по http"""

import asyncio
import logging
from typing import Optional

from aiohttp import ClientError, ClientResponse

from sameorigin.core.proxy.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

# Ошибки, при которых запрос считается не состоявшимся.
# HTTP статусы (4xx/5xx) сюда не относятся - это обычный ответ.
CALL_FAILURES = (asyncio.TimeoutError, ClientError, OSError)


class UpstreamCaller:
    """
    Выполняет ровно одну попытку к upstream и не более одной резервной.

    Резервная попытка повторяет тот же путь по http, если основная
    (https) не завершилась: таймаут, отказ соединения, ошибка TLS.
    """

    def __init__(self, session, settings):
        """
        Args:
            session: aiohttp.ClientSession (или совместимый объект с request())
            settings: ProxySettings
        """
        self.session = session
        self.settings = settings

    async def call(self, method: str, path_qs: str, headers, body: Optional[bytes]) -> ClientResponse:
        """
        Отправляет запрос к upstream

        Args:
            method: HTTP метод
            path_qs: Путь с query string
            headers: Заголовки исходящего запроса
            body: Тело запроса (одни и те же bytes для обеих попыток)

        Returns:
            ClientResponse: Ответ upstream с любым HTTP статусом.
            Вызывающий обязан освободить его через release().

        Raises:
            UpstreamUnavailable: если ни одна попытка не завершилась
        """
        primary_url = f"{self.settings.upstream_origin}{path_qs}"

        try:
            return await self._attempt(method, primary_url, headers, body)
        except CALL_FAILURES as primary_error:
            fallback = self.settings.fallback_origin
            if fallback is None:
                logger.error(f"❌ Upstream недоступен: {method} {primary_url} ({primary_error!r})")
                raise UpstreamUnavailable(primary_url, primary_error) from primary_error

            fallback_url = f"{fallback.serialize()}{path_qs}"
            logger.warning(
                f"⚠️ {method} {primary_url} failed ({primary_error!r}), "
                f"retrying once over http: {fallback_url}"
            )

            try:
                return await self._attempt(method, fallback_url, headers, body)
            except CALL_FAILURES as fallback_error:
                logger.error(
                    f"❌ Upstream недоступен (обе попытки):\n"
                    f"   Primary: {primary_url} -> {primary_error!r}\n"
                    f"   Fallback: {fallback_url} -> {fallback_error!r}"
                )
                raise UpstreamUnavailable(primary_url, primary_error, fallback_error) from fallback_error

    async def _attempt(self, method: str, url: str, headers, body: Optional[bytes]) -> ClientResponse:
        logger.debug(f"🔐 Proxying to upstream: {method} {url}")
        # wait_for отменяет незавершённый запрос по истечении таймаута
        return await asyncio.wait_for(
            self.session.request(
                method,
                url,
                headers=headers,
                data=body or None,
                allow_redirects=False,
            ),
            timeout=self.settings.timeout,
        )
