"""颜色工具函数。"""

from __future__ import annotations

import re
from typing import Tuple

from asset_optimizer.core.exceptions import InvalidConfigurationError

HEX_COLOR_RE = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def parse_hex_color(value: str) -> Tuple[int, int, int]:
    """将 HEX 字符串解析为 RGB 三元组。"""

    if not value:
        raise InvalidConfigurationError("颜色值不能为空")

    match = HEX_COLOR_RE.match(value.strip())
    if not match:
        raise InvalidConfigurationError(f"无法解析颜色值: {value}")

    hex_value = match.group(1)
    if len(hex_value) == 3:
        hex_value = "".join(ch * 2 for ch in hex_value)

    r = int(hex_value[0:2], 16)
    g = int(hex_value[2:4], 16)
    b = int(hex_value[4:6], 16)
    return r, g, b


def shorten_hex_color(value: str) -> str:
    """将 #aabbcc 缩写为 #abc，并统一为小写；无法缩写时仅转小写。"""

    lowered = value.lower()
    if len(lowered) == 7 and lowered[1] == lowered[2] and lowered[3] == lowered[4] and lowered[5] == lowered[6]:
        return "#" + lowered[1] + lowered[3] + lowered[5]
    return lowered


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """RGB 三元组转为 HEX 字符串（小写）。"""

    return f"#{r:02x}{g:02x}{b:02x}"
