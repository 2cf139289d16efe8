# core/proxy/headers.py
"""Формирование заголовков запроса к upstream"""

from multidict import CIMultiDict, CIMultiDictProxy

# Заголовки транспортного уровня, которые нельзя пересылать как есть
HOP_BY_HOP_HEADERS = frozenset({
    'host', 'content-length', 'accept-encoding', 'connection',
    'keep-alive', 'transfer-encoding', 'te', 'trailer', 'upgrade',
    'proxy-authorization', 'proxy-connection',
})

# Заголовки, раскрывающие реальный origin браузера, перезаписываются
IDENTITY_HEADERS = frozenset({
    'origin', 'referer', 'sec-fetch-site', 'sec-fetch-mode',
    'sec-fetch-dest', 'sec-fetch-user',
})

BROWSER_DEFAULTS = (
    ('User-Agent', 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
                   '(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'),
    ('Accept', 'text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8'),
    ('Accept-Language', 'ar,en-US;q=0.9,en;q=0.8'),
)

# Ответные заголовки, которые не копируются клиенту
RESPONSE_SKIP_HEADERS = frozenset({
    'connection', 'keep-alive', 'transfer-encoding', 'content-encoding',
    'proxy-connection', 'te', 'trailer', 'upgrade',
})


def is_navigation(method: str, headers) -> bool:
    """GET с Accept: text/html выглядит как переход по странице"""
    return method.upper() == 'GET' and 'text/html' in headers.get('Accept', '')


def build_upstream_headers(method: str, path: str, headers, settings) -> CIMultiDict:
    """
    Собирает заголовки исходящего запроса

    Args:
        method: HTTP метод входящего запроса
        path: Путь входящего запроса (для Referer)
        headers: Заголовки входящего запроса (multimap)
        settings: ProxySettings

    Returns:
        CIMultiDict: Заголовки для upstream
    """
    spoof = settings.spoof_browser_headers
    outbound = CIMultiDict()

    for name, value in headers.items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS:
            continue
        if spoof and name_lower in IDENTITY_HEADERS:
            continue
        outbound.add(name, value)

    outbound['Host'] = settings.upstream.netloc

    if spoof:
        origin = settings.upstream_origin
        outbound['Origin'] = origin
        outbound['Referer'] = f"{origin}{path or '/'}"

        for name, value in BROWSER_DEFAULTS:
            outbound.setdefault(name, value)

        outbound['Sec-Fetch-Site'] = 'same-site'
        if is_navigation(method, outbound):
            outbound['Sec-Fetch-Mode'] = 'navigate'
            outbound['Sec-Fetch-Dest'] = 'document'
        else:
            outbound['Sec-Fetch-Mode'] = 'cors'
            outbound['Sec-Fetch-Dest'] = 'empty'

    for name, value in settings.extra_headers:
        outbound[name] = value

    return outbound


def copy_response_headers(upstream_headers: CIMultiDictProxy, skip=()) -> CIMultiDict:
    """Копирует заголовки ответа upstream без hop-by-hop и перечисленных в skip"""
    skip = {name.lower() for name in skip}
    copied = CIMultiDict()
    for name, value in upstream_headers.items():
        name_lower = name.lower()
        if name_lower in RESPONSE_SKIP_HEADERS or name_lower in skip:
            continue
        if name_lower.startswith('access-control-'):
            continue
        copied.add(name, value)
    return copied
