import logging
import sys
import os
from pathlib import Path
from loguru import logger
import json
from datetime import date

from notifier.utils.context import get_request_id

DEFAULT_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[request_id]}</cyan> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    loglevel_mapping = {
        50: "CRITICAL",
        40: "ERROR",
        30: "WARNING",
        20: "INFO",
        10: "DEBUG",
        0: "NOTSET",
    }

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except (AttributeError, ValueError):
            level = self.loglevel_mapping[record.levelno]

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        # Get request ID from context
        request_id = get_request_id() or "app"
        log = logger.bind(request_id=request_id)
        log.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


class CustomizeLogger:
    intercepted_loggers = [
        "uvicorn",
        "uvicorn.error",
        "uvicorn.access",
        "fastapi",
        "httpx",
        "celery",
    ]

    @classmethod
    def make_logger(cls, config_path: Path, environment: str = "logger"):
        if not config_path.exists():
            return cls.customize_console_only(os.getenv("LOG_LEVEL", "INFO"))

        config = cls.load_logging_config(config_path)
        logging_config = config.get(environment, config.get("logger"))

        return cls.customize_logging(
            log_dir=logging_config.get("log_dir"),
            filename=f"{date.today().strftime('%Y-%m-%d')}-{logging_config.get('filename')}",
            level=logging_config.get("level"),
            rotation=logging_config.get("rotation"),
            retention=logging_config.get("retention"),
            console_format=logging_config.get("console_format", DEFAULT_CONSOLE_FORMAT),
            file_format=logging_config.get("file_format"),
            use_json_logs=logging_config.get("use_json_logs", False),
        )

    @classmethod
    def customize_console_only(cls, level: str):
        logger.remove()
        logger.configure(extra={"request_id": "app"})
        logger.add(
            sys.stdout,
            backtrace=True,
            level=level.upper(),
            format=DEFAULT_CONSOLE_FORMAT,
            colorize=True,
        )
        cls._setup_intercept_handlers()
        return logger

    @classmethod
    def customize_logging(
        cls,
        log_dir: str,
        filename: str,
        level: str,
        rotation: str,
        retention: str,
        console_format: str,
        file_format: str,
        use_json_logs: bool = False,
    ):
        logger.remove()
        logger.configure(extra={"request_id": "app"})

        # Console logger with colors
        logger.add(
            sys.stdout,
            enqueue=True,
            backtrace=True,
            level=level.upper(),
            format=console_format,
            colorize=True,
        )

        # File logger without colors
        if use_json_logs and file_format == "json":
            logger.add(
                str(f"{log_dir}/{filename}"),
                rotation=rotation,
                retention=retention,
                enqueue=True,
                backtrace=True,
                level=level.upper(),
                serialize=True,
                colorize=False,
            )
        else:
            logger.add(
                str(f"{log_dir}/{filename}"),
                rotation=rotation,
                retention=retention,
                enqueue=True,
                backtrace=True,
                level=level.upper(),
                format=file_format,
                colorize=False,
            )

        # Redirect standard logging to loguru
        cls._setup_intercept_handlers()

        return logger

    @classmethod
    def _setup_intercept_handlers(cls):
        logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

        for log_name in cls.intercepted_loggers:
            _logger = logging.getLogger(log_name)
            _logger.handlers = [InterceptHandler()]
            _logger.propagate = False

    @staticmethod
    def load_logging_config(config_path: Path):
        with open(config_path) as config_file:
            return json.load(config_file)


# Initialize logger from the repository-level config file
config_path = Path(
    os.getenv(
        "LOGGING_CONFIG_PATH",
        Path(__file__).resolve().parents[2] / "logging_config.json",
    )
)
environment = (
    "production"
    if os.getenv("ENVIRONMENT", "development") == "production"
    else "logger"
)
custom_logger = CustomizeLogger.make_logger(config_path, environment)


def get_logger():
    """Get the custom logger instance with request ID binding."""
    request_id = get_request_id() or "app"
    return custom_logger.bind(request_id=request_id)
