# core/proxy/origin.py
"""Разбор и сравнение origin (scheme + host + port)"""

from typing import NamedTuple, Optional
from urllib.parse import urlsplit

DEFAULT_PORTS = {'http': 80, 'https': 443, 'ws': 80, 'wss': 443}


class Origin(NamedTuple):
    scheme: str
    host: str
    port: Optional[int]

    @classmethod
    def parse(cls, url: str) -> 'Origin':
        """
        Разбирает URL в origin

        Raises:
            ValueError: если у URL нет схемы или хоста, либо порт некорректен
        """
        parts = urlsplit(url)
        if not parts.scheme or not parts.hostname:
            raise ValueError(f"Not an absolute URL: {url!r}")
        scheme = parts.scheme.lower()
        # .port сам бросает ValueError на мусорном порте
        port = parts.port
        if port is None:
            port = DEFAULT_PORTS.get(scheme)
        return cls(scheme, parts.hostname.lower(), port)

    @property
    def netloc(self) -> str:
        """host[:port], порт опускается если он стандартный для схемы"""
        host = f"[{self.host}]" if ':' in self.host else self.host
        if self.port is None or DEFAULT_PORTS.get(self.scheme) == self.port:
            return host
        return f"{host}:{self.port}"

    def with_scheme(self, scheme: str) -> 'Origin':
        """Тот же host с другой схемой; нестандартный порт сохраняется"""
        port = self.port
        if port is None or DEFAULT_PORTS.get(self.scheme) == port:
            port = DEFAULT_PORTS.get(scheme)
        return Origin(scheme, self.host, port)

    def literals(self) -> list:
        """Строковые формы origin для поиска в разметке: с явным портом и без"""
        host = f"[{self.host}]" if ':' in self.host else self.host
        bare = f"{self.scheme}://{host}"
        if self.port is None:
            return [bare]
        return [f"{bare}:{self.port}", bare]

    def serialize(self) -> str:
        return f"{self.scheme}://{self.netloc}"

    def __str__(self) -> str:
        return self.serialize()
