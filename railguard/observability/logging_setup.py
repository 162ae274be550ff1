from __future__ import annotations
import logging
import sys
from loguru import logger

# ---- stdlib logging → loguru 인터셉트 ----
class InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())

def _hook_stdlib_logging() -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    # aiomqtt / aiosqlite / uvicorn 은 레벨만 맞춰 흡수
    for noisy in ("uvicorn", "uvicorn.access", "asyncio", "aiosqlite", "aiomqtt"):
        l = logging.getLogger(noisy)
        l.handlers = [InterceptHandler()]
        l.propagate = False

# ---- 개발 콘솔 포맷 (extra 는 끝에 붙임) ----
DEV_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level:<7}</level> | "
    "<cyan>{extra[name]}</cyan> | "
    "<cyan>{file}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> {extra}"
)

def setup_logging_dev(log_level: str = "INFO") -> None:
    """
    개발 콘솔 전용 loguru 초기화.
    - 콘솔 컬러 출력
    - stdlib logging 흡수
    """
    logger.remove()
    logger.configure(extra={"name": "railguard"})
    logger.add(
        sink=sys.stderr,
        format=DEV_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=False,
        level=log_level.upper(),
        enqueue=False,
    )
    _hook_stdlib_logging()

def setup_logging_json(log_level: str = "INFO") -> None:
    """운영용 JSON 라인 출력 (serialize=True)."""
    logger.remove()
    logger.configure(extra={"name": "railguard"})
    logger.add(sys.stdout, serialize=True, level=log_level.upper(), enqueue=True)
    _hook_stdlib_logging()

def get_logger(name: str = "railguard", **ctx):
    """선택적으로 컨텍스트를 바인딩한 logger 반환."""
    return logger.bind(name=name, **ctx)
