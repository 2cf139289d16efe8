# main.py
import sys
import logging
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(level: str = 'INFO', to_file: bool = True):
    """Настраивает логирование ДО всех операций с ротацией"""
    from sameorigin.core.config_manager import get_app_data_dir

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers = [console_handler]

    if to_file:
        logs_dir = get_app_data_dir() / "logs"
        logs_dir.mkdir(exist_ok=True)

        # Ротирующий обработчик: макс 5MB, 5 резервных копий
        file_handler = RotatingFileHandler(
            logs_dir / "sameorigin_proxy.log",
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        handlers=handlers,
        force=True,
    )


def setup_exception_handler():
    """Настраивает глобальный обработчик исключений"""

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Необработанное исключение:",
                        exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = exception_handler


def main():
    """Основная функция приложения"""
    from sameorigin.core.config_manager import ProxySettings, get_config
    from sameorigin.core.proxy_manager import ProxyManager

    config = get_config()
    setup_logging(config.get('logging.level', 'INFO'), config.get('logging.file', True))
    setup_exception_handler()

    logger.info(f"🚀 Запуск SameOrigin Proxy (config: {config.config_path})")

    try:
        settings = ProxySettings.from_config(config)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(f"❌ Некорректная конфигурация: {e}")
        return 1

    proxy_manager = ProxyManager(settings)
    return proxy_manager.run()


if __name__ == "__main__":
    sys.exit(main())
