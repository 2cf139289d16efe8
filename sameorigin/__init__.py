"""SameOrigin Proxy: reverse proxy, делающий ответы одного upstream same-origin для браузера"""

__version__ = "1.0.0"
