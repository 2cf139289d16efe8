# core/proxy/cookie_rewriter.py
"""Перезапись Set-Cookie под хост прокси"""

# Атрибуты, которые strict-политика выставляет принудительно
STRICT_ATTRIBUTES = ('Secure', 'HttpOnly', 'SameSite=None')
_STRICT_NAMES = {'secure', 'httponly', 'samesite'}


def _attribute_name(attribute: str) -> str:
    return attribute.split('=', 1)[0].strip().lower()


def rewrite_set_cookie(line: str, policy: str = 'strip_domain') -> str:
    """
    Делает cookie host-only для прокси

    Домен удаляется целиком, Expires/Max-Age и прочие атрибуты сохраняются
    в исходном порядке, Path=/ добавляется если его не было.

    Args:
        line: Одна строка Set-Cookie от upstream
        policy: 'strip_domain' или 'strict' (дополнительно Secure; HttpOnly; SameSite=None)

    Returns:
        str: Переписанная строка Set-Cookie
    """
    # Expires содержит запятую, поэтому режем только по ';'
    parts = [part.strip() for part in line.split(';')]
    pair, attributes = parts[0], [part for part in parts[1:] if part]

    kept = []
    has_path = False
    for attribute in attributes:
        name = _attribute_name(attribute)
        if name == 'domain':
            continue
        if policy == 'strict' and name in _STRICT_NAMES:
            continue
        if name == 'path':
            has_path = True
        kept.append(attribute)

    if not has_path:
        kept.append('Path=/')
    if policy == 'strict':
        kept.extend(STRICT_ATTRIBUTES)

    return '; '.join([pair] + kept)


def rewrite_set_cookies(lines, policy: str = 'strip_domain') -> list:
    """Переписывает каждую строку Set-Cookie отдельно, без склейки"""
    return [rewrite_set_cookie(line, policy) for line in lines]
