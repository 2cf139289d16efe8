# core/api_endpoints.py
"""
JSON endpoints поверх API бронирования upstream.

/login и /rs/add переводят статусы и длины ответов upstream в понятные
сообщения, /health отвечает сразу (прогрев после деплоя).
"""

import json
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, Optional

from aiohttp import web, ClientError
from multidict import CIMultiDict

from sameorigin.core.proxy.cookie_rewriter import rewrite_set_cookies
from sameorigin.core.proxy.errors import InvalidPayload, UpstreamUnavailable

logger = logging.getLogger(__name__)

UPSTREAM_LOGIN_PATH = '/secure/auth/login'
UPSTREAM_BOOKING_PATH = '/rs/add'

DEFAULT_SERVICE_ID = 113
DEFAULT_COPIES = 1

MESSAGE_FULLY_BOOKED = "All appointments for this service are booked, please choose another day"
MESSAGE_NOT_OPEN_YET = "This day is not open yet, try again later"
MESSAGE_SESSION_EXPIRED = "Session expired"
MESSAGE_ALREADY_BOOKED = "You already have a booking"
MESSAGE_BOOKED = "Booking confirmed"
MESSAGE_UNEXPECTED = "Unexpected response from the server"
MESSAGE_TIMEOUT = "Upstream request timed out"

# Upstream отличает отказы только длиной тела ответа 400
ALREADY_BOOKED_LENGTHS = (225, 189, 186)


def booking_message(status: int, content_length: int) -> str:
    """
    Переводит ответ upstream на /rs/add в сообщение для пользователя

    Args:
        status: HTTP статус upstream
        content_length: Content-Length ответа upstream (0 если нет)

    Returns:
        str: Сообщение
    """
    if status == 400 and content_length == 220:
        return MESSAGE_FULLY_BOOKED
    if status == 400 and content_length == 165:
        return MESSAGE_NOT_OPEN_YET
    if status == 403:
        return MESSAGE_SESSION_EXPIRED
    if status == 400 and content_length in ALREADY_BOOKED_LENGTHS:
        return MESSAGE_ALREADY_BOOKED
    if status == 200:
        return MESSAGE_BOOKED
    return MESSAGE_UNEXPECTED


def json_response(payload: Dict[str, Any], status: int = 200, headers=None) -> web.Response:
    return web.json_response(
        payload,
        status=status,
        headers=headers,
        dumps=partial(json.dumps, ensure_ascii=False),
    )


async def read_json_object(request: web.Request) -> Dict[str, Any]:
    """
    Читает тело запроса как JSON объект

    Raises:
        InvalidPayload: если тело не JSON или не объект
    """
    try:
        data = await request.json()
    except ValueError as e:
        raise InvalidPayload(f"Request body is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise InvalidPayload("Request body must be a JSON object")
    return data


def int_field(data: Dict[str, Any], names, default: int) -> int:
    """Первое непустое значение из names, приведённое к int"""
    value = default
    for name in names:
        candidate = data.get(name)
        if candidate not in (None, '', 0, False):
            value = candidate
            break
    if isinstance(value, bool):
        raise InvalidPayload(f"{names[0]} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidPayload(f"{names[0]} must be an integer, got {value!r}") from None


def booking_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Тело запроса /rs/add в формате upstream"""
    date = data.get('date')
    return {
        'missionId': int_field(data, ('missionId', 'city'), 0),
        'serviceId': int_field(data, ('serviceId', 'service'), DEFAULT_SERVICE_ID),
        'copies': int_field(data, ('copies',), DEFAULT_COPIES),
        'date': date or None,
    }


def is_ok(status: int) -> bool:
    return 200 <= status < 300


def parse_content_length(headers) -> int:
    try:
        return int(headers.get('Content-Length') or 0)
    except ValueError:
        return 0


class BookingApi:
    """Обработчики JSON endpoints, используют тот же UpstreamCaller, что и прокси"""

    def __init__(self, proxy):
        """
        Args:
            proxy: SameOriginProxy (сессия, UpstreamCaller и настройки)
        """
        self.proxy = proxy
        self.settings = proxy.settings

    def _upstream_headers(self, cookie: Optional[str] = None) -> CIMultiDict:
        headers = CIMultiDict(self.settings.extra_headers)
        headers['Content-Type'] = 'application/json'
        headers.setdefault('Source', 'WEB')
        if cookie:
            headers['Cookie'] = cookie
        return headers

    async def _post_json(self, path: str, payload: Dict[str, Any], headers: CIMultiDict):
        await self.proxy.initialize()
        body = json.dumps(payload).encode('utf-8')
        return await self.proxy.caller.call('POST', path, headers, body)

    def _upstream_error(self, error: UpstreamUnavailable) -> web.Response:
        message = MESSAGE_TIMEOUT if error.timed_out else str(error)
        return json_response({'ok': False, 'error': message}, status=502)

    async def health(self, request):
        return json_response({'ok': True, 'now': datetime.now(timezone.utc).isoformat()})

    async def login(self, request):
        """Логин в upstream: cookies возвращаются в JSON и переписанными Set-Cookie"""
        try:
            data = await read_json_object(request)
            username, password = data.get('username'), data.get('password')
            if not isinstance(username, str) or not isinstance(password, str) or not username:
                raise InvalidPayload("username and password are required")
        except InvalidPayload as e:
            logger.warning(f"⚠️ /login: {e}")
            return json_response({'ok': False, 'error': str(e)}, status=400)

        headers = self._upstream_headers()
        headers['Referer'] = f"{self.settings.upstream_origin}{UPSTREAM_LOGIN_PATH}"

        try:
            upstream = await self._post_json(
                UPSTREAM_LOGIN_PATH,
                {'username': username, 'password': password},
                headers,
            )
        except UpstreamUnavailable as e:
            return self._upstream_error(e)

        set_cookies = upstream.headers.getall('Set-Cookie', [])
        try:
            message = await upstream.text(errors='replace')
        except ClientError as e:
            logger.error(f"❌ /login: upstream body failed: {e!r}")
            return json_response({'ok': False, 'error': f"Upstream response failed: {e}"}, status=502)
        finally:
            upstream.release()

        logger.info(f"🔑 Login via upstream: status={upstream.status}, cookies={len(set_cookies)}")

        response_headers = CIMultiDict()
        for line in rewrite_set_cookies(set_cookies, self.settings.cookie_policy):
            response_headers.add('Set-Cookie', line)

        return json_response(
            {
                'ok': is_ok(upstream.status),
                'upstreamStatus': upstream.status,
                'cookies': '\n'.join(set_cookies),
                'message': message,
            },
            headers=response_headers,
        )

    async def add_booking(self, request):
        """Бронирование: cookie браузера пересылаются upstream как есть"""
        try:
            payload = booking_payload(await read_json_object(request))
        except InvalidPayload as e:
            logger.warning(f"⚠️ /rs/add: {e}")
            return json_response({'ok': False, 'error': str(e)}, status=400)

        headers = self._upstream_headers(cookie=request.headers.get('Cookie'))
        headers['Alt-Used'] = self.settings.upstream.netloc
        headers['Sec-Fetch-Site'] = 'same-site'

        try:
            upstream = await self._post_json(UPSTREAM_BOOKING_PATH, payload, headers)
        except UpstreamUnavailable as e:
            return self._upstream_error(e)

        content_length = parse_content_length(upstream.headers)
        upstream.release()

        message = booking_message(upstream.status, content_length)
        logger.info(f"📅 Booking: status={upstream.status}, length={content_length} → {message}")

        return json_response({
            'ok': is_ok(upstream.status),
            'upstreamStatus': upstream.status,
            'message': message,
        })


def register_api_routes(app: web.Application, proxy) -> BookingApi:
    """Регистрирует endpoints раньше catch-all маршрута прокси"""
    api = BookingApi(proxy)
    app.router.add_get('/health', api.health)
    app.router.add_post('/login', api.login)
    app.router.add_post('/rs/add', api.add_booking)
    return api
