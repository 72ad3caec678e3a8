import logging
import sys

import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder

# Bibliotecas que logam cada request em INFO
NOISY_LOGGERS = ("httpx", "httpcore", "backoff")


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,     # session_id, table etc.
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _renderer(json_logs: bool):
    if json_logs:
        return structlog.processors.JSONRenderer(ensure_ascii=False)
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(level: str = "INFO", json_logs: bool = False) -> logging.Handler:
    """
    Configura structlog + logging da stdlib com o mesmo pipeline.

    JSON quando `json_logs` (produção, coletor de logs); console caso contrário.
    Chamar uma vez no ponto de entrada, antes de montar o container.
    Retorna o handler instalado no root logger.
    """
    level = level.upper()
    pre_chain = _shared_processors()

    structlog.configure(
        processors=[
            *pre_chain,
            CallsiteParameterAdder(
                parameters=[
                    CallsiteParameter.MODULE,
                    CallsiteParameter.FUNC_NAME,
                    CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=_renderer(json_logs),
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.captureWarnings(True)
    return handler


def configure_from_settings(settings) -> logging.Handler:
    """Atalho para `configure_logging` com LOG_LEVEL/JSON_LOGS do módulo de settings."""
    return configure_logging(
        level=getattr(settings, "LOG_LEVEL", "INFO"),
        json_logs=getattr(settings, "JSON_LOGS", False),
    )
