# proxy_manager.py
import asyncio
import logging

from aiohttp import web, ClientSession, TCPConnector, ClientTimeout, ClientError, DummyCookieJar

from sameorigin.core.api_endpoints import register_api_routes
from sameorigin.core.proxy.content_rewriter import ContentRewriter, HTML_CONTENT_TYPE, is_html
from sameorigin.core.proxy.cookie_rewriter import rewrite_set_cookies
from sameorigin.core.proxy.cors import apply_cors_headers, make_cors_middleware
from sameorigin.core.proxy.errors import UpstreamUnavailable
from sameorigin.core.proxy.headers import build_upstream_headers, copy_response_headers
from sameorigin.core.proxy.redirect_rewriter import rewrite_location
from sameorigin.core.proxy.upstream import UpstreamCaller
from sameorigin.utils.port_utils import check_port_availability, get_process_using_port

logger = logging.getLogger(__name__)

STREAM_CHUNK_SIZE = 64 * 1024


class SameOriginProxy:
    def __init__(self, settings):
        """
        Args:
            settings: ProxySettings - upstream origin и политики конвейера
        """
        self.settings = settings
        self.content_rewriter = ContentRewriter(settings)

        # Connection pool для переиспользования соединений
        self.connector = None
        self.session = None
        self.caller = None

    async def initialize(self):
        """Инициализация connection pool для upstream"""
        if self.session is None:
            self.connector = TCPConnector(
                ssl=self.settings.verify_ssl,
                limit=100,  # Максимум 100 одновременных соединений
                ttl_dns_cache=300,  # DNS кэш на 5 минут
                keepalive_timeout=60,  # Keep-alive 60 секунд
            )
            self.session = ClientSession(
                connector=self.connector,
                # Cookie между запросами не хранятся: каждый запрос независим
                cookie_jar=DummyCookieJar(),
                timeout=ClientTimeout(total=None, sock_read=self.settings.timeout),
            )
            self.caller = UpstreamCaller(self.session, self.settings)

    async def cleanup(self):
        """Очистка ресурсов"""
        if self.session:
            await self.session.close()
            self.session = None
            self.caller = None
        if self.connector:
            await self.connector.close()
            self.connector = None

    async def handle_http(self, request):
        """Обработка HTTP запросов через upstream"""
        try:
            return await self._proxy_to_upstream(request)

        except ConnectionResetError:
            # Ответ уже начат потоком или браузер отключился, новый ответ отправить нельзя
            raise
        except (ClientError, asyncio.TimeoutError) as e:
            logger.error(f"❌ Ошибка чтения ответа upstream: {e!r}")
            return self._gateway_error(f"Upstream response failed: {e!r}")
        except Exception as e:
            logger.error(f"❌ Ошибка проксирования {request.method} {request.path_qs}: {e!r}", exc_info=True)
            return self._gateway_error(f"Proxy error: {e!r}")

    async def _proxy_to_upstream(self, request):
        """
        Проксирует запрос на upstream и переписывает ответ

        Заголовки ответа переписываются только после того, как результат
        upstream известен.
        """
        # Тело читается ровно один раз, те же bytes уходят и в резервную попытку
        body = await request.read()
        headers = build_upstream_headers(request.method, request.path, request.headers, self.settings)

        await self.initialize()

        try:
            upstream = await self.caller.call(request.method, request.path_qs, headers, body)
        except UpstreamUnavailable as e:
            return self._gateway_error(str(e))

        try:
            logger.debug(f"Upstream response: {upstream.status} {request.method} {request.path_qs}")
            response_headers = self._rewrite_response_headers(request, upstream)

            if is_html(upstream.headers.get('Content-Type', '')):
                return await self._rewrite_html(upstream, response_headers)
            return await self._stream_body(request, upstream, response_headers)
        finally:
            # Освобождаем соединение и при отмене (клиент отключился)
            upstream.release()

    def _rewrite_response_headers(self, request, upstream):
        """Cookie и Location переписываются построчно, остальное копируется"""
        response_headers = copy_response_headers(upstream.headers, skip=('set-cookie', 'location'))

        # Тело уже распаковано aiohttp, исходная длина неверна
        if 'Content-Encoding' in upstream.headers:
            response_headers.popall('Content-Length', None)

        for line in rewrite_set_cookies(upstream.headers.getall('Set-Cookie', ()), self.settings.cookie_policy):
            response_headers.add('Set-Cookie', line)

        location = upstream.headers.get('Location')
        if location is not None:
            aliases = [self.settings.fallback_origin] if self.settings.fallback_origin else []
            rewritten = rewrite_location(location, self.settings.upstream, *aliases, base_path=request.path)
            if rewritten != location:
                logger.debug(f"Location rewritten: {location} → {rewritten}")
            response_headers['Location'] = rewritten

        return response_headers

    async def _rewrite_html(self, upstream, response_headers):
        # HTML приходится буферизовать целиком
        text = await asyncio.wait_for(upstream.text(errors='replace'), timeout=self.settings.timeout)
        content = self.content_rewriter.rewrite(text).encode('utf-8')

        response_headers.popall('Content-Length', None)
        response_headers['Content-Type'] = HTML_CONTENT_TYPE

        return web.Response(
            body=content,
            status=upstream.status,
            reason=upstream.reason,
            headers=response_headers,
        )

    async def _stream_body(self, request, upstream, response_headers):
        """Не-HTML тело отдаётся потоком байт в байт"""
        response = web.StreamResponse(
            status=upstream.status,
            reason=upstream.reason,
            headers=response_headers,
        )
        # Заголовки уходят в prepare(), middleware их уже не увидит
        apply_cors_headers(response.headers, request.headers, self.settings)
        await response.prepare(request)

        while True:
            try:
                chunk = await upstream.content.read(STREAM_CHUNK_SIZE)
            except (ClientError, asyncio.TimeoutError) as e:
                # Заголовки уже отправлены, остаётся только оборвать соединение
                logger.error(f"❌ Upstream оборвал передачу {request.path_qs}: {e!r}")
                raise ConnectionResetError(f"Upstream body interrupted: {e!r}") from e
            if not chunk:
                break
            # Отключение браузера (ClientConnectionResetError) уходит наверх как есть
            await response.write(chunk)

        await response.write_eof()
        return response

    def _gateway_error(self, details: str) -> web.Response:
        return web.Response(
            text=f"❌ Upstream недоступен\n\n{self.settings.upstream_origin}\n\nДетали: {details}",
            status=502,
            content_type='text/plain',
            charset='utf-8',
        )

    async def router(self, request):
        """Маршрутизация всех запросов через upstream"""
        return await self.handle_http(request)


def create_app(settings) -> web.Application:
    """
    Собирает aiohttp приложение: CORS middleware, API endpoints и
    catch-all маршрут прокси
    """
    proxy = SameOriginProxy(settings)

    app = web.Application(middlewares=[make_cors_middleware(settings)])
    if settings.api_enabled:
        register_api_routes(app, proxy)
    app.router.add_route('*', '/{path:.*}', proxy.router)

    async def close_upstream_session(app):
        await proxy.cleanup()

    app.on_cleanup.append(close_upstream_session)
    return app


class ProxyManager:
    def __init__(self, settings):
        self.settings = settings
        self.is_running = False
        self.app = None
        self.runner = None
        self.site = None

        # Error tracking
        self.last_error_type = None  # Тип последней ошибки: 'port', 'unknown'
        self.last_error_details = None

    def check_port(self) -> bool:
        """Проверяет, что порт прослушивания свободен"""
        port = self.settings.local_port
        port_available, port_message = check_port_availability(port, self.settings.local_host)
        if port_available:
            return True

        logger.error(f"❌ {port_message}")
        process_info = get_process_using_port(port)
        if process_info:
            logger.info(
                f"📌 Процесс на порту {port}:\n"
                f"   PID: {process_info.get('pid')}\n"
                f"   Name: {process_info.get('name')}\n"
                f"   User: {process_info.get('username', 'N/A')}"
            )
        self.last_error_type = 'port'
        self.last_error_details = port_message
        return False

    async def start(self):
        """Асинхронный запуск сервера"""
        if self.is_running:
            logger.warning("⚠️ Прокси уже запущен")
            return

        self.app = create_app(self.settings)

        # handler_cancellation: отключение клиента отменяет запрос к upstream
        self.runner = web.AppRunner(self.app, access_log=None, handler_cancellation=True)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner,
            host=self.settings.local_host,
            port=self.settings.local_port,
        )
        await self.site.start()
        self.is_running = True

        logger.info("=" * 60)
        logger.info(f"🚀 Прокси сервер запущен на http://{self.settings.local_host}:{self.settings.local_port}")
        logger.info(f"🌐 Проксируется на: {self.settings.upstream_origin}")
        logger.info(
            f"⚙️ cookie_policy={self.settings.cookie_policy}, "
            f"scheme_fallback={self.settings.enable_scheme_fallback}, "
            f"spoof_browser_headers={self.settings.spoof_browser_headers}, "
            f"timeout={self.settings.timeout}s"
        )
        logger.info("=" * 60)

    async def stop(self):
        """Асинхронная остановка сервера"""
        if not self.is_running:
            return

        logger.info("🛑 Stopping proxy...")
        self.is_running = False
        if self.site:
            await self.site.stop()
        if self.runner:
            await self.runner.cleanup()
        logger.info("✅ Proxy stopped")

    async def serve_forever(self):
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    def run(self) -> int:
        """Блокирующий запуск до Ctrl+C, возвращает код выхода"""
        if not self.check_port():
            return 1

        try:
            asyncio.run(self.serve_forever())
        except KeyboardInterrupt:
            logger.info("🛑 Завершение работы по Ctrl+C")
        except OSError as e:
            logger.error(f"❌ Ошибка запуска сервера: {e}")
            self.last_error_type = 'unknown'
            self.last_error_details = str(e)
            return 1
        return 0

    def get_status(self):
        """Возвращает статус прокси"""
        return {
            'running': self.is_running,
            'host': self.settings.local_host,
            'port': self.settings.local_port,
            'upstream': self.settings.upstream_origin,
            'last_error_type': self.last_error_type,
            'last_error_details': self.last_error_details,
        }
