# core/proxy/errors.py
"""Исключения конвейера проксирования"""

import asyncio
from typing import Optional


class ProxyError(Exception):
    """Базовое исключение прокси"""


class UpstreamUnavailable(ProxyError):
    """
    Upstream не ответил ни на основную, ни на резервную (http) попытку.

    Attributes:
        primary_error: Ошибка основной попытки
        fallback_error: Ошибка резервной попытки (None если её не было)
    """

    def __init__(self, url: str, primary_error: BaseException,
                 fallback_error: Optional[BaseException] = None):
        self.url = url
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(self.describe())

    @property
    def timed_out(self) -> bool:
        """True если последняя попытка завершилась по таймауту"""
        last = self.fallback_error or self.primary_error
        return isinstance(last, asyncio.TimeoutError)

    def describe(self) -> str:
        message = f"Upstream {self.url} unreachable: {_format_error(self.primary_error)}"
        if self.fallback_error is not None:
            message += f"; http fallback failed: {_format_error(self.fallback_error)}"
        return message


class InvalidPayload(ProxyError):
    """Тело запроса не удалось разобрать"""


def _format_error(error: BaseException) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    text = str(error)
    return f"{type(error).__name__}: {text}" if text else type(error).__name__
