import gzip
import logging
import os
import shutil
import time
from logging.handlers import TimedRotatingFileHandler

from fastapi import Request

import config

LOGGER_NAME = "attendance"
LOG_MAX_SIZE = 20 * 1024 * 1024  # 20 MB
LOG_BACKUP_COUNT = 5             # Keep last 5 log files
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_logger(name: str = "") -> logging.Logger:
    """Child of the application logger, e.g. ``attendance.recognition``."""
    return logging.getLogger(f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME)


def _compress_rotated(log_file: str, backup_count: int = LOG_BACKUP_COUNT):
    """Gzip rotated files and keep only the newest backup_count archives."""
    log_dir = os.path.dirname(log_file) or "."
    base = os.path.basename(log_file)
    for file in os.listdir(log_dir):
        if file == base or not file.startswith(base) or file.endswith(".gz"):
            continue
        source_path = os.path.join(log_dir, file)
        if not os.path.isfile(source_path):
            continue
        # A second rollover in the same period reuses the date suffix
        target = f"{source_path}.gz"
        counter = 1
        while os.path.exists(target):
            target = f"{source_path}.{counter}.gz"
            counter += 1
        with open(source_path, "rb") as f_in, gzip.open(target, "wb") as f_out:
            shutil.copyfileobj(f_in, f_out)
        os.remove(source_path)

    archives = sorted(
        (os.path.join(log_dir, f) for f in os.listdir(log_dir) if f.startswith(base) and f.endswith(".gz")),
        key=os.path.getmtime,
        reverse=True
    )
    for path in archives[backup_count:]:
        os.remove(path)


def _file_handler(log_file: str) -> TimedRotatingFileHandler:
    """
    Weekly rotating handler (every Monday at midnight) that also rolls over
    once the file reaches LOG_MAX_SIZE and gzips rotated files.
    """
    handler = TimedRotatingFileHandler(
        log_file,
        when="W0",
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8"
    )

    old_emit = handler.emit
    def emit_with_size_check(record):
        if os.path.exists(log_file) and os.path.getsize(log_file) >= LOG_MAX_SIZE:
            handler.doRollover()
        old_emit(record)

    old_do_rollover = handler.doRollover
    def do_rollover_and_compress():
        old_do_rollover()
        _compress_rotated(log_file)

    handler.emit = emit_with_size_check
    handler.doRollover = do_rollover_and_compress
    return handler


def setup_logger(log_file: str = None, level: str = None) -> logging.Logger:
    """
    Configure the application logger with console and rotating file output.
    Safe to call more than once; handlers are only attached the first time.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    logger.addHandler(console)

    log_file = log_file or config.LOG_FILE
    if log_file:
        handler = _file_handler(log_file)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def create_logging_middleware(app, logger):
    """
    Adds a middleware to log request timing, client IP and status.
    Bodies are not logged: they carry encoded photos.
    """
    @app.middleware("http")
    async def log_request_response_time(request: Request, call_next):
        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "-"

        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        logger.info(
            "IP=%s | %s %s | Status=%s | Time=%.4fs",
            client_ip, request.method, request.url.path, response.status_code, process_time
        )
        response.headers["X-Process-Time"] = str(round(process_time, 4))
        return response

    return app
