"""
Sistema de Logging Estructurado

Configura el logging para todo el generador de carga con:
- Salida a consola (colores en desarrollo, JSON en producción)
- Archivo rotativo para logs generales
- Archivo rotativo para errores
- Soporte para contexto (run_id, vu_id, iteration)

Cada usuario virtual corre en su propia tarea asyncio, y las tareas
copian el contexto al crearse, así que el contexto de un VU no se
mezcla con el de otro.
"""

import logging
import json
import uuid
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

from pydantic import ValidationError

# Context variables para información de contexto
run_id_var: ContextVar[Optional[str]] = ContextVar('run_id', default=None)
vu_id_var: ContextVar[Optional[int]] = ContextVar('vu_id', default=None)
iteration_var: ContextVar[Optional[int]] = ContextVar('iteration', default=None)


# ============================================================================
# FORMATTERS
# ============================================================================

class ColoredFormatter(logging.Formatter):
    """
    Formatter con colores para desarrollo.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        record.context = _context_label()

        # El record es compartido entre handlers: no modificar levelname
        original_levelname = record.levelname
        color = self.COLORS.get(record.levelname, '')
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


class JSONFormatter(logging.Formatter):
    """
    Formatter JSON para producción.

    Genera logs estructurados fáciles de procesar por herramientas
    como ELK Stack, Datadog, etc.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Agregar contexto
        run_id = run_id_var.get()
        if run_id:
            log_data["run_id"] = run_id

        vu_id = vu_id_var.get()
        if vu_id is not None:
            log_data["vu_id"] = vu_id

        iteration = iteration_var.get()
        if iteration is not None:
            log_data["iteration"] = iteration

        # Agregar exception info si existe
        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        # Agregar campos extra
        if hasattr(record, 'extra_data'):
            log_data["extra"] = record.extra_data

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ContextFormatter(logging.Formatter):
    """
    Formatter que incluye contexto en formato legible.

    Uso en el formato: '%(context)s %(message)s'
    """

    def format(self, record: logging.LogRecord) -> str:
        record.context = _context_label()
        return super().format(record)


def _context_label() -> str:
    """Contexto actual en formato corto: [run=abcd1234 vu=3 iter=17]"""
    context_parts = []

    run_id = run_id_var.get()
    if run_id:
        context_parts.append(f"run={run_id[:8]}")

    vu_id = vu_id_var.get()
    if vu_id is not None:
        context_parts.append(f"vu={vu_id}")

    iteration = iteration_var.get()
    if iteration is not None:
        context_parts.append(f"iter={iteration}")

    return f"[{' '.join(context_parts)}]" if context_parts else ""


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

_configured = False
_log_level = logging.INFO

CONSOLE_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(context)s %(message)s'


def setup_logging(
    environment: str = "development",
    log_level: str = "INFO",
    log_dir: str = "logs",
    log_format: Optional[str] = None,
    log_to_file: bool = True,
    force: bool = False
) -> None:
    """
    Configura el sistema de logging según el entorno.

    Args:
        environment: Entorno (development, staging, production)
        log_level: Nivel de log (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directorio para archivos de log
        log_format: "json" o "console"; por defecto depende del entorno
        log_to_file: Si escribir archivos rotativos en log_dir
        force: Reconfigurar aunque ya se haya configurado
    """
    global _configured, _log_level

    if _configured and not force:
        return

    _log_level = getattr(logging, log_level.upper(), logging.INFO)

    if log_format is None:
        log_format = "json" if environment == "production" else "console"

    # Configurar root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Limpiar handlers existentes
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # Handler de consola según formato
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(_log_level)

    if log_format == "json":
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))

    root_logger.addHandler(console_handler)

    if log_to_file:
        # Crear directorio de logs
        logs_path = Path(log_dir)
        logs_path.mkdir(parents=True, exist_ok=True)

        # Handler de archivo general (siempre JSON para procesamiento)
        file_handler = RotatingFileHandler(
            logs_path / "app.log",
            maxBytes=50*1024*1024,  # 50MB
            backupCount=10,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)

        # Handler de errores
        error_handler = RotatingFileHandler(
            logs_path / "errors.log",
            maxBytes=50*1024*1024,  # 50MB
            backupCount=10,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(error_handler)

    # httpx loggea cada request en INFO; con miles de VUs es ruido
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    _configured = True

    root_logger.debug(
        f"Logging configurado: environment={environment}, level={log_level}, format={log_format}"
    )


def configure_from_settings(force: bool = False, log_level: Optional[str] = None) -> None:
    """Configura el logging a partir de config.settings."""
    from config.settings import get_settings

    settings = get_settings()
    setup_logging(
        environment=settings.ENVIRONMENT.value,
        log_level=log_level or settings.get_log_level(),
        log_dir=settings.LOG_DIR,
        log_format=settings.get_log_format(),
        log_to_file=settings.LOG_TO_FILE,
        force=force,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Obtiene un logger configurado para el módulo especificado.

    Args:
        name: Nombre del módulo (típicamente __name__)

    Returns:
        Logger configurado
    """
    # Configurar si no se ha hecho
    if not _configured:
        try:
            configure_from_settings()
        except ValidationError:
            # Configuración inválida: logging por defecto; main() la reporta
            setup_logging(log_to_file=False)

    return logging.getLogger(name)


# ============================================================================
# CONTEXT MANAGEMENT
# ============================================================================

def new_run_id() -> str:
    """
    Genera y establece un nuevo run ID.

    Returns:
        El run ID generado
    """
    rid = str(uuid.uuid4())
    run_id_var.set(rid)
    return rid


def get_run_id() -> Optional[str]:
    """Obtiene el run ID actual."""
    return run_id_var.get()


class LogContext:
    """
    Context manager para establecer contexto de logging temporalmente.

    Uso:
        with LogContext(vu_id=3, iteration=17):
            logger.info("Este log incluirá el contexto")
    """

    def __init__(
        self,
        run_id: Optional[str] = None,
        vu_id: Optional[int] = None,
        iteration: Optional[int] = None
    ):
        self.run_id = run_id
        self.vu_id = vu_id
        self.iteration = iteration
        self._tokens = []

    def __enter__(self):
        if self.run_id is not None:
            self._tokens.append((run_id_var, run_id_var.set(self.run_id)))
        if self.vu_id is not None:
            self._tokens.append((vu_id_var, vu_id_var.set(self.vu_id)))
        if self.iteration is not None:
            self._tokens.append((iteration_var, iteration_var.set(self.iteration)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        # Restaurar estado anterior en orden inverso
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def log_exception(logger: logging.Logger, message: str, exc: BaseException) -> None:
    """
    Loggea una excepción con contexto completo.

    Args:
        logger: Logger a usar
        message: Mensaje descriptivo
        exc: Excepción a loggear
    """
    logger.error(
        f"{message}: {type(exc).__name__}: {str(exc)}",
        exc_info=exc,
        extra={
            "extra_data": {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            }
        }
    )

