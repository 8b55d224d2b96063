"""日志配置。"""

from __future__ import annotations

import logging

# 调试模式下这些库会输出大量逐块解码日志
NOISY_LOGGERS = ("PIL", "cairosvg")


def setup_logging(level: int = logging.INFO) -> None:
    """初始化项目日志配置。"""

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(processName)s] %(levelname)s %(name)s: %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.INFO))
