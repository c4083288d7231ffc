"""
Utility functions for the application
"""

import sys
import time
import logging
import structlog
from structlog import contextvars as struct_context
from contextlib import contextmanager


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "false": logging.CRITICAL,
}


# 配置structlog
def configure_structlog(level: str = "info") -> None:
    """配置structlog日志系统"""
    processors = [
        struct_context.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=False),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if level in ("debug", "info"):
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        # 禁用模式：只输出致命错误
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS.get(level, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str = None):
    """
    获取一个structlog logger实例

    Args:
        name: logger名称（可选）
    """
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


def bind_request_context(**kwargs) -> None:
    """绑定结构化日志上下文，忽略空值。"""
    filtered = {k: v for k, v in kwargs.items() if v is not None}
    if filtered:
        struct_context.bind_contextvars(**filtered)


def reset_request_context(*keys: str) -> None:
    """清理指定上下文字段，未传入则清空全部。"""
    if keys:
        struct_context.unbind_contextvars(*keys)
    else:
        struct_context.clear_contextvars()


def _format(message: str, args: tuple) -> str:
    return message % args if args else message


def error_log(message: str, *args, **kwargs) -> None:
    """错误日志（所有级别都输出）"""
    get_logger().error(_format(message, args), **kwargs)


def exception_log(message: str, *args, **kwargs) -> None:
    """错误日志，附带当前异常的堆栈"""
    get_logger().exception(_format(message, args), **kwargs)


def info_log(message: str, *args, **kwargs) -> None:
    """信息日志（info和debug级别输出）"""
    get_logger().info(_format(message, args), **kwargs)


def debug_log(message: str, *args, **kwargs) -> None:
    """调试日志（仅debug级别输出）"""
    get_logger().debug(_format(message, args), **kwargs)


def request_stage_log(stage: str, message: str, **kwargs) -> None:
    """
    Log info-level request stage transitions without dumping payload data.

    Args:
        stage: Logical stage identifier (e.g. "received", "upstream_request").
        message: Human readable description for terminal viewers.
        **kwargs: Extra structured fields to enrich the log.
    """
    normalized_stage = (stage or "unknown").strip().lower().replace(" ", "_")
    info_log(f"[REQUEST] {message}", stage=normalized_stage, **kwargs)


@contextmanager
def perf_timer(operation_name: str, log_result: bool = True, threshold_ms: float = 0):
    """
    性能计时上下文管理器

    Example:
        with perf_timer("upstream_call") as timer:
            body = await invoker.invoke(nim_request)
        print(f"耗时: {timer['elapsed_ms']:.2f}ms")
    """
    timer_dict = {"elapsed_ms": 0, "elapsed_s": 0}
    start_time = time.perf_counter()

    try:
        yield timer_dict
    finally:
        elapsed_s = time.perf_counter() - start_time
        elapsed_ms = elapsed_s * 1000
        timer_dict["elapsed_ms"] = elapsed_ms
        timer_dict["elapsed_s"] = elapsed_s

        if log_result and elapsed_ms >= threshold_ms:
            debug_log(
                f"⏱️ {operation_name}",
                elapsed_ms=f"{elapsed_ms:.2f}ms",
            )
