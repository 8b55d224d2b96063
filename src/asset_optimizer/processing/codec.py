"""编码适配层：栅格图 AVIF 编码、SVG 栅格化编码、SVG 优化与尺寸读取。

策略引擎只通过 Codec 协议调用这里的能力，测试中可替换为桩实现。
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from PIL import Image, ImageOps, UnidentifiedImageError

from asset_optimizer.core.config import DEFAULT_AVIF_SPEED
from asset_optimizer.core.exceptions import CodecError
from asset_optimizer.processing.svg_tools import optimize_svg, svg_dimensions
from asset_optimizer.utils.colors import parse_hex_color

LOGGER = logging.getLogger(__name__)

_RESAMPLING = getattr(Image, "Resampling", Image)

AVIF_FORMAT = "AVIF"
EXIF_ORIENTATION = 0x0112
SWAPPED_ORIENTATIONS = {5, 6, 7, 8}


class Codec(Protocol):
    """策略引擎依赖的编码能力。所有方法失败时抛出 CodecError。"""

    def read_dimensions(self, data: bytes) -> tuple[int, int]: ...

    def encode_raster(
        self,
        data: bytes,
        *,
        max_width: Optional[int],
        flatten_background: Optional[str],
        quality: int,
    ) -> bytes: ...

    def encode_vector(self, data: bytes, *, resize_width: int, quality: int) -> bytes: ...

    def optimize_vector(self, data: bytes) -> Optional[bytes]: ...


def looks_like_svg(data: bytes) -> bool:
    return b"<svg" in data[:4096].lower()


@dataclass(slots=True)
class PillowCodec:
    """基于 Pillow / CairoSVG / lxml 的默认实现。"""

    speed: int = DEFAULT_AVIF_SPEED
    float_precision: int = 4

    def read_dimensions(self, data: bytes) -> tuple[int, int]:
        """返回显示方向上的宽高；SVG 无法确定时对应值为 0。"""

        if looks_like_svg(data):
            width, height = svg_dimensions(data)
            return width or 0, height or 0

        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                orientation = img.getexif().get(EXIF_ORIENTATION)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise CodecError(f"无法识别图像: {exc}") from exc

        if orientation in SWAPPED_ORIENTATIONS:
            return height, width
        return width, height

    def encode_raster(
        self,
        data: bytes,
        *,
        max_width: Optional[int],
        flatten_background: Optional[str],
        quality: int,
    ) -> bytes:
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                working = ImageOps.exif_transpose(img)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise CodecError(f"无法加载图像: {exc}") from exc

        if max_width and working.width > max_width:
            height = max(1, round(working.height * max_width / working.width))
            LOGGER.info("缩放 %dpx -> %dpx", working.width, max_width)
            working = working.resize((max_width, height), _RESAMPLING.LANCZOS)

        if flatten_background:
            working = _flatten(working, parse_hex_color(flatten_background))
        elif working.mode not in {"RGB", "RGBA"}:
            working = working.convert("RGBA")

        return self._encode_avif(working, quality)

    def encode_vector(self, data: bytes, *, resize_width: int, quality: int) -> bytes:
        png_bytes = self._rasterize_svg(data, resize_width)
        try:
            with Image.open(io.BytesIO(png_bytes)) as img:
                img.load()
                working = img.convert("RGBA")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
            raise CodecError(f"SVG 栅格化结果无法读取: {exc}") from exc

        if working.width != resize_width:
            height = max(1, round(working.height * resize_width / working.width))
            working = working.resize((resize_width, height), _RESAMPLING.LANCZOS)
        return self._encode_avif(working, quality)

    def optimize_vector(self, data: bytes) -> Optional[bytes]:
        return optimize_svg(data, precision=self.float_precision)

    def _rasterize_svg(self, data: bytes, width: int) -> bytes:
        try:
            import cairosvg  # 依赖系统 Cairo 库，只在真正栅格化时加载
        except (ImportError, OSError) as exc:
            raise CodecError(f"SVG 栅格化不可用: {exc}") from exc

        try:
            return cairosvg.svg2png(bytestring=data, output_width=width, unsafe=False)
        except Exception as exc:  # noqa: BLE001
            raise CodecError(f"SVG 栅格化失败: {exc}") from exc

    def _encode_avif(self, image: Image.Image, quality: int) -> bytes:
        buffer = io.BytesIO()
        try:
            image.save(buffer, format=AVIF_FORMAT, quality=quality, speed=self.speed)
        except (KeyError, OSError, ValueError) as exc:
            raise CodecError(f"AVIF 编码失败: {exc}") from exc
        finally:
            image.close()
        return buffer.getvalue()


def _flatten(image: Image.Image, background: tuple[int, int, int]) -> Image.Image:
    """将透明区域合成到纯色背景上，返回 RGB 图像。"""

    if image.mode in {"RGBA", "LA"} or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, background)
        canvas.paste(rgba, mask=rgba.split()[-1])
        return canvas

    if image.mode != "RGB":
        return image.convert("RGB")
    return image
