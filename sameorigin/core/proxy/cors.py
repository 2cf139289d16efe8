# core/proxy/cors.py
"""CORS заголовки и ответ на preflight"""

from aiohttp import web

PREFLIGHT_MAX_AGE = '86400'


def _allow_origin(request_headers) -> str:
    return request_headers.get('Origin') or '*'


def apply_cors_headers(response_headers, request_headers, settings) -> None:
    """
    Проставляет CORS заголовки на ответ

    Origin вызывающего отражается обратно; '*' только без credentials.
    """
    for name in [name for name in response_headers if name.lower().startswith('access-control-')]:
        response_headers.popall(name, None)

    allow_origin = _allow_origin(request_headers)
    response_headers['Access-Control-Allow-Origin'] = allow_origin
    if allow_origin != '*':
        response_headers['Access-Control-Allow-Credentials'] = 'true'
        response_headers.add('Vary', 'Origin')
    response_headers['Access-Control-Allow-Methods'] = ', '.join(settings.allow_methods)
    response_headers['Access-Control-Allow-Headers'] = (
        request_headers.get('Access-Control-Request-Headers') or '*'
    )
    if settings.expose_headers:
        response_headers['Access-Control-Expose-Headers'] = ', '.join(settings.expose_headers)


def preflight_response(request: web.Request, settings) -> web.Response:
    """Отвечает на OPTIONS сразу, без обращения к upstream"""
    response = web.Response(status=204)
    apply_cors_headers(response.headers, request.headers, settings)
    response.headers['Access-Control-Max-Age'] = PREFLIGHT_MAX_AGE
    return response


def make_cors_middleware(settings):
    """Preflight короткозамыкается, остальные ответы получают CORS заголовки"""

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        if request.method == 'OPTIONS':
            return preflight_response(request, settings)

        try:
            response = await handler(request)
        except web.HTTPException as exc:
            apply_cors_headers(exc.headers, request.headers, settings)
            raise
        # StreamResponse уже мог отправить заголовки сам (prepare в обработчике)
        if not response.prepared:
            apply_cors_headers(response.headers, request.headers, settings)
        return response

    return cors_middleware
