import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

from sameorigin.core.proxy.origin import Origin

logger = logging.getLogger(__name__)

COOKIE_POLICIES = ('strip_domain', 'strict')

# Переменные окружения, перекрывающие значения из файла
ENV_OVERRIDES = {
    'PORT': ('proxy.local_port', int),
    'HOST': ('proxy.local_host', str),
    'UPSTREAM_URL': ('proxy.upstream_url', str),
    'LOG_LEVEL': ('logging.level', str),
}


def get_app_data_dir() -> Path:
    """Возвращает путь для хранения данных приложения (конфиг, логи)"""
    override = os.getenv('SAMEORIGIN_HOME')
    if override:
        app_data_dir = Path(override)
    elif os.name == 'nt':  # Windows
        appdata_dir = Path(os.getenv('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
        app_data_dir = appdata_dir / 'SameOrigin'
    else:  # Linux/Mac
        app_data_dir = Path.home() / '.config' / 'sameorigin'

    app_data_dir.mkdir(parents=True, exist_ok=True)
    return app_data_dir


class ConfigManager:
    def __init__(self, config_path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None):
        self.config_path = Path(config_path) if config_path else self._get_config_path()
        self.config = self._load_config()
        self._apply_env_overrides(os.environ if environ is None else environ)

    def _get_config_path(self) -> Path:
        """Возвращает путь к файлу конфигурации"""
        explicit = os.getenv('SAMEORIGIN_CONFIG')
        if explicit:
            return Path(explicit)
        return get_app_data_dir() / 'config.json'

    def _get_default_config(self) -> dict:
        """Возвращает конфигурацию по умолчанию"""
        return {
            'proxy': {
                'local_host': '0.0.0.0',
                'local_port': 8000,
                'upstream_url': 'https://ecsc-expat.sy:8443',
                'timeout': 8.0,
                'enable_scheme_fallback': True,
                'spoof_browser_headers': True,
                'cookie_policy': 'strip_domain',
                'verify_ssl': True,
                'extra_headers': {'Source': 'WEB'},
                'allow_methods': ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS', 'HEAD'],
                'expose_headers': ['Content-Type', 'Content-Length', 'Location'],
            },

            'api': {
                'enabled': True,
            },

            'logging': {
                'level': 'INFO',
                'file': True,
            }
        }

    def _load_config(self) -> Dict[str, Any]:
        """Загружает конфигурацию из файла"""
        default_config = self._get_default_config()

        try:
            if self.config_path.exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                    # Объединяем с дефолтными значениями
                    return self._deep_merge(default_config, loaded_config)
        except (OSError, ValueError) as e:
            logger.error(f"Ошибка загрузки конфига {self.config_path}: {e}")

        return default_config

    def _apply_env_overrides(self, environ) -> None:
        for env_name, (key, cast) in ENV_OVERRIDES.items():
            raw = environ.get(env_name)
            if raw is None or raw == '':
                continue
            try:
                self.set(key, cast(raw))
                logger.debug(f"{key} overridden from ${env_name}")
            except ValueError:
                logger.warning(f"⚠️ Игнорируем ${env_name}={raw!r}: ожидался {cast.__name__}")

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Рекурсивное объединение словарей"""
        result = base.copy()

        for key, value in update.items():
            if (key in result and
                    isinstance(result[key], dict) and
                    isinstance(value, dict)):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def save(self) -> bool:
        """Сохраняет конфигурацию в файл"""
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=2, ensure_ascii=False)
            logger.info("Конфигурация сохранена")
            return True
        except OSError as e:
            logger.error(f"Ошибка сохранения конфига: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Получает значение по ключу (dot notation)"""
        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any, save: bool = False) -> bool:
        """Устанавливает значение по ключу (dot notation)"""
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref or not isinstance(config_ref[k], dict):
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

        if save:
            return self.save()
        return True

    def get_proxy_config(self) -> Dict[str, Any]:
        """Возвращает настройки прокси"""
        return self.get('proxy', {})

    def reset_to_defaults(self) -> bool:
        """Сбрасывает настройки к значениям по умолчанию"""
        self.config = self._get_default_config()
        return self.save()


@dataclass(frozen=True)
class ProxySettings:
    """
    Неизменяемые настройки конвейера, собираются один раз при старте.

    Политики (cookie_policy, enable_scheme_fallback, spoof_browser_headers)
    заменяют отдельные обработчики под каждый вариант поведения.
    """
    upstream_url: str
    local_host: str = '0.0.0.0'
    local_port: int = 8000
    timeout: float = 8.0
    enable_scheme_fallback: bool = True
    spoof_browser_headers: bool = True
    cookie_policy: str = 'strip_domain'
    verify_ssl: bool = True
    extra_headers: Tuple[Tuple[str, str], ...] = ()
    allow_methods: Tuple[str, ...] = ('GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS', 'HEAD')
    expose_headers: Tuple[str, ...] = ('Content-Type', 'Content-Length', 'Location')
    api_enabled: bool = True
    upstream: Origin = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if self.cookie_policy not in COOKIE_POLICIES:
            raise ValueError(
                f"Unknown cookie_policy {self.cookie_policy!r}, expected one of {COOKIE_POLICIES}"
            )
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        upstream = Origin.parse(self.upstream_url)
        if upstream.scheme not in ('http', 'https'):
            raise ValueError(f"Upstream must be http(s), got {self.upstream_url!r}")
        object.__setattr__(self, 'upstream', upstream)

    @property
    def upstream_origin(self) -> str:
        return self.upstream.serialize()

    @property
    def fallback_origin(self) -> Optional[Origin]:
        """Origin резервной попытки (https → http) или None если она не положена"""
        if not self.enable_scheme_fallback or self.upstream.scheme != 'https':
            return None
        return self.upstream.with_scheme('http')

    @classmethod
    def from_config(cls, config: ConfigManager) -> 'ProxySettings':
        proxy = config.get_proxy_config()
        return cls(
            upstream_url=proxy['upstream_url'],
            local_host=proxy.get('local_host', '0.0.0.0'),
            local_port=int(proxy.get('local_port', 8000)),
            timeout=float(proxy.get('timeout', 8.0)),
            enable_scheme_fallback=bool(proxy.get('enable_scheme_fallback', True)),
            spoof_browser_headers=bool(proxy.get('spoof_browser_headers', True)),
            cookie_policy=proxy.get('cookie_policy', 'strip_domain'),
            verify_ssl=bool(proxy.get('verify_ssl', True)),
            extra_headers=tuple((proxy.get('extra_headers') or {}).items()),
            allow_methods=tuple(proxy.get('allow_methods') or cls.allow_methods),
            expose_headers=tuple(proxy.get('expose_headers') or cls.expose_headers),
            api_enabled=bool(config.get('api.enabled', True)),
        )


# Синглтон для глобального доступа
_config_instance = None


def get_config() -> ConfigManager:
    """Возвращает глобальный экземпляр ConfigManager"""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance
