"""SVG 解析、尺寸读取与安全模式优化。

优化只做不影响渲染结果的改写：
- 删除注释、<metadata> 以及编辑器（Inkscape/Sodipodi/Illustrator/Sketch）私有节点和属性；
- 坐标类属性的小数位截断到 4 位；
- 颜色写法归一（rgb() -> #hex，#aabbcc -> #abc）；
- 去掉标签之间的空白（文本元素除外）。

不合并路径、不烘焙 transform、不删除隐藏元素、不改动 stroke/fill 取值。
"""

from __future__ import annotations

import logging
import math
import re
from typing import Optional

from lxml import etree

from asset_optimizer.core.exceptions import CodecError
from asset_optimizer.utils.colors import rgb_to_hex, shorten_hex_color

LOGGER = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"

EDITOR_NAMESPACES = {
    "http://www.inkscape.org/namespaces/inkscape",
    "http://sodipodi.sourceforge.net/DTD/sodipodi-0.dtd",
    "http://ns.adobe.com/AdobeIllustrator/10.0/",
    "http://ns.adobe.com/Graphs/1.0/",
    "http://ns.adobe.com/Variables/1.0/",
    "http://ns.adobe.com/SaveForWeb/1.0/",
    "http://ns.adobe.com/Extensibility/1.0/",
    "http://ns.adobe.com/Flows/1.0/",
    "http://ns.adobe.com/ImageReplacement/1.0/",
    "http://ns.adobe.com/GenericCustomNamespace/1.0/",
    "http://ns.adobe.com/XPath/1.0/",
    "http://www.bohemiancoding.com/sketch/ns",
}

SCALAR_ATTRIBUTES = {"x", "y", "x1", "y1", "x2", "y2", "cx", "cy", "r", "rx", "ry", "width", "height"}
LIST_ATTRIBUTES = {"d", "points", "viewBox"}
COLOR_ATTRIBUTES = {"fill", "stroke", "stop-color", "flood-color", "lighting-color", "color"}
TEXT_ELEMENTS = {"text", "tspan", "textPath", "style", "script", "title", "desc"}

NUMBER_RE = re.compile(r"\d*\.\d+(?:[eE][-+]?\d+)?")
SCALAR_RE = re.compile(r"^\s*(-?\d*\.\d+)(px)?\s*$")
RGB_RE = re.compile(r"^\s*rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)\s*$", re.IGNORECASE)
HEX_RE = re.compile(r"^#[0-9a-fA-F]{6}$")
LENGTH_RE = re.compile(r"^\s*([0-9]*\.?[0-9]+(?:[eE][-+]?\d+)?)\s*(px|pt|pc|mm|cm|in)?\s*$")

# 以 CSS 像素计算的单位换算
UNIT_TO_PX = {
    None: 1.0,
    "px": 1.0,
    "pt": 4.0 / 3.0,
    "pc": 16.0,
    "mm": 96.0 / 25.4,
    "cm": 96.0 / 2.54,
    "in": 96.0,
}


def parse_svg(data: bytes) -> etree._ElementTree:
    """解析 SVG 字节串；禁止网络访问与外部实体展开。"""

    parser = etree.XMLParser(
        remove_comments=True,
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
    )
    try:
        root = etree.fromstring(data, parser=parser)
    except etree.XMLSyntaxError as exc:
        raise CodecError(f"无法解析 SVG: {exc}") from exc
    if root is None or etree.QName(root).localname != "svg":
        raise CodecError("根节点不是 <svg>")
    return root.getroottree()


def svg_dimensions(data: bytes) -> tuple[Optional[int], Optional[int]]:
    """读取 SVG 的固有尺寸，优先 width/height 属性，其次 viewBox。"""

    root = parse_svg(data).getroot()
    width = _parse_length(root.get("width"))
    height = _parse_length(root.get("height"))

    view_box = root.get("viewBox")
    if view_box and (width is None or height is None):
        parts = re.split(r"[\s,]+", view_box.strip())
        if len(parts) == 4:
            try:
                vb_width, vb_height = float(parts[2]), float(parts[3])
            except ValueError:
                vb_width = vb_height = 0.0
            if all(math.isfinite(v) and v > 0 for v in (vb_width, vb_height)):
                if width is None and height is None:
                    width, height = vb_width, vb_height
                elif width is None:
                    width = height * vb_width / vb_height
                else:
                    height = width * vb_height / vb_width

    return _to_pixels(width), _to_pixels(height)


def optimize_svg(data: bytes, precision: int = 4) -> Optional[bytes]:
    """安全模式优化，返回新的字节串；没有可输出内容时返回 None。"""

    tree = parse_svg(data)
    root = tree.getroot()

    _strip_editor_nodes(root)
    for element in root.iter(etree.Element):
        _clean_attributes(element, precision)
    _strip_whitespace(root)
    etree.cleanup_namespaces(root)

    output = etree.tostring(tree, encoding="utf-8", xml_declaration=False)
    if not output:
        return None
    LOGGER.debug("SVG 优化: %d -> %d 字节", len(data), len(output))
    return output


def round_numbers(value: str, precision: int) -> str:
    """截断数值列表中超出精度的小数位，保持数字之间的隐式分隔。"""

    def _replace(match: re.Match[str]) -> str:
        text = match.group(0)
        if "e" in text.lower():
            return text
        fraction = text.split(".", 1)[1]
        if len(fraction) <= precision:
            return text

        formatted = f"{round(float(text), precision):.{precision}f}".rstrip("0").rstrip(".")
        if text.startswith("."):
            # 形如 1.5.25 的紧凑写法依赖前导小数点分隔
            previous = match.string[match.start() - 1 : match.start()]
            if formatted.startswith("0."):
                formatted = formatted[1:]
            elif previous.isdigit():
                formatted = " " + formatted
        following = match.string[match.end() : match.end() + 1]
        if following == "." and "." not in formatted:
            formatted += ".0"
        return formatted

    return NUMBER_RE.sub(_replace, value)


def _to_pixels(value: Optional[float]) -> Optional[int]:
    if not value or not math.isfinite(value):
        return None
    return int(round(value))


def _parse_length(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    match = LENGTH_RE.match(value)
    if not match:
        return None  # 百分比等相对单位无法确定固有尺寸
    number = float(match.group(1)) * UNIT_TO_PX[match.group(2)]
    return number if math.isfinite(number) and number > 0 else None


def _strip_editor_nodes(root: etree._Element) -> None:
    doomed = []
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        qname = etree.QName(element)
        if qname.namespace in EDITOR_NAMESPACES or (qname.namespace == SVG_NS and qname.localname == "metadata"):
            doomed.append(element)
    for element in doomed:
        parent = element.getparent()
        if parent is not None:
            _remove_preserving_tail(parent, element)


def _remove_preserving_tail(parent: etree._Element, element: etree._Element) -> None:
    tail = element.tail
    if tail and tail.strip():
        previous = element.getprevious()
        if previous is not None:
            previous.tail = (previous.tail or "") + tail
        else:
            parent.text = (parent.text or "") + tail
    parent.remove(element)


def _clean_attributes(element: etree._Element, precision: int) -> None:
    for name in list(element.attrib):
        qname = etree.QName(name)
        if qname.namespace in EDITOR_NAMESPACES:
            del element.attrib[name]
            continue
        if qname.namespace:
            continue

        local = qname.localname
        value = element.attrib[name]
        if local in LIST_ATTRIBUTES:
            element.attrib[name] = round_numbers(value, precision)
        elif local in SCALAR_ATTRIBUTES:
            element.attrib[name] = _round_scalar(value, precision)
        elif local in COLOR_ATTRIBUTES:
            element.attrib[name] = _normalize_color(value)


def _round_scalar(value: str, precision: int) -> str:
    match = SCALAR_RE.match(value)
    if not match:
        return value
    number = match.group(1)
    fraction = number.split(".", 1)[1]
    if len(fraction) <= precision:
        return value
    formatted = f"{round(float(number), precision):.{precision}f}".rstrip("0").rstrip(".")
    if formatted in {"-0", ""}:
        formatted = "0"
    return formatted + (match.group(2) or "")


def _normalize_color(value: str) -> str:
    match = RGB_RE.match(value)
    if match:
        channels = [int(part) for part in match.groups()]
        if all(0 <= channel <= 255 for channel in channels):
            return shorten_hex_color(rgb_to_hex(*channels))
        return value
    stripped = value.strip()
    if HEX_RE.match(stripped):
        return shorten_hex_color(stripped)
    return value


def _strip_whitespace(root: etree._Element) -> None:
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        if _inside_text(element):
            continue
        if element.text is not None and not element.text.strip():
            element.text = None
        for child in element:
            if child.tail is not None and not child.tail.strip():
                child.tail = None


def _inside_text(element: etree._Element) -> bool:
    current: Optional[etree._Element] = element
    while current is not None:
        if isinstance(current.tag, str) and etree.QName(current).localname in TEXT_ELEMENTS:
            return True
        if current.get("{http://www.w3.org/XML/1998/namespace}space") == "preserve":
            return True
        current = current.getparent()
    return False
