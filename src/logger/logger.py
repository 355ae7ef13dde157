import sys
from pathlib import Path
from typing import Optional
from loguru import logger
from src.config.settings import settings

def setup_logger(level: Optional[str] = None):
    """配置日志记录器

    Args:
        level: 覆盖配置中的日志级别，命令行 --verbose 时传入 DEBUG
    """
    level = (level or settings.log.LOG_LEVEL).upper()
    Path(settings.log.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()

    # 控制台输出走 stderr，标准输出留给命令行结果
    logger.add(
        sink=sys.stderr,
        level=level,
        format=settings.log.LOG_FORMAT,
        colorize=True,
        backtrace=True,
        diagnose=settings.DEBUG,
    )

    # 文件按大小轮转，过期后压缩归档
    logger.add(
        sink=settings.log.LOG_FILE,
        level=level,
        format=settings.log.LOG_FORMAT,
        rotation=settings.log.LOG_ROTATION,
        retention=settings.log.LOG_RETENTION,
        compression="zip",
        backtrace=True,
        diagnose=settings.DEBUG,
        enqueue=True,
    )

    return logger

logger = setup_logger()

__all__ = ["logger", "setup_logger"]
