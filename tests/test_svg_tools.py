"""SVG 尺寸读取与安全模式优化。"""

from __future__ import annotations

import pytest
from lxml import etree

from asset_optimizer.core.exceptions import CodecError
from asset_optimizer.processing.codec import PillowCodec, looks_like_svg
from asset_optimizer.processing.svg_tools import optimize_svg, round_numbers, svg_dimensions

EDITOR_SVG = b"""<?xml version="1.0" encoding="UTF-8"?>
<!-- Generator: Inkscape -->
<svg xmlns="http://www.w3.org/2000/svg"
     xmlns:inkscape="http://www.inkscape.org/namespaces/inkscape"
     xmlns:sodipodi="http://sodipodi.sourceforge.net/DTD/sodipodi-0.dtd"
     width="120" height="60" viewBox="0 0 120 60">
  <metadata><rdf>ignored</rdf></metadata>
  <sodipodi:namedview inkscape:zoom="2"/>
  <title>Chart</title>
  <g inkscape:label="Layer 1" transform="translate(10.123456789 0)">
    <path d="M1.123456 2.5L3.000001 4" stroke="#FFFFFF" stroke-width="0.5" fill="rgb(255, 0, 0)"/>
    <rect x="10.1234567px" y="0" width="5" height="5" opacity="0"/>
  </g>
  <text x="1" y="2">  spaced <tspan>words</tspan> here </text>
</svg>
"""


def test_dimensions_from_attributes_and_viewbox() -> None:
    assert svg_dimensions(b'<svg xmlns="http://www.w3.org/2000/svg" width="300" height="150"/>') == (300, 150)
    assert svg_dimensions(b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 400 200"/>') == (400, 200)
    assert svg_dimensions(b'<svg xmlns="http://www.w3.org/2000/svg" width="2in" height="1in"/>') == (192, 96)
    assert svg_dimensions(
        b'<svg xmlns="http://www.w3.org/2000/svg" width="100%" viewBox="0 0 80 40"/>'
    ) == (80, 40)
    assert svg_dimensions(b'<svg xmlns="http://www.w3.org/2000/svg"/>') == (None, None)


def test_codec_reads_svg_dimensions() -> None:
    codec = PillowCodec()
    data = b'<svg xmlns="http://www.w3.org/2000/svg" width="64" height="32"/>'

    assert looks_like_svg(data)
    assert codec.read_dimensions(data) == (64, 32)


def test_invalid_svg_raises_codec_error() -> None:
    with pytest.raises(CodecError):
        optimize_svg(b"<svg><unclosed></svg>")
    with pytest.raises(CodecError):
        svg_dimensions(b"<html></html>")


def test_optimizer_strips_editor_noise_and_keeps_content() -> None:
    output = optimize_svg(EDITOR_SVG)

    assert output is not None
    assert len(output) < len(EDITOR_SVG)
    assert b"<!--" not in output
    assert b"metadata" not in output
    assert b"inkscape" not in output
    assert b"sodipodi" not in output

    root = etree.fromstring(output)
    ns = {"svg": "http://www.w3.org/2000/svg"}
    assert root.find("svg:title", ns).text == "Chart"
    group = root.find("svg:g", ns)
    # transform 保持原样，不做烘焙或截断
    assert group.get("transform") == "translate(10.123456789 0)"
    path = group.find("svg:path", ns)
    assert path.get("d") == "M1.1235 2.5L3 4"
    assert path.get("stroke") == "#fff"
    assert path.get("fill") == "#f00"
    assert path.get("stroke-width") == "0.5"
    rect = group.find("svg:rect", ns)
    # 透明元素仍然保留
    assert rect.get("opacity") == "0"
    assert rect.get("x") == "10.1235px"


def test_optimizer_preserves_text_whitespace() -> None:
    output = optimize_svg(EDITOR_SVG)

    assert b"<text x=\"1\" y=\"2\">  spaced <tspan>words</tspan> here </text>" in output


def test_round_numbers_keeps_compact_path_syntax() -> None:
    assert round_numbers("M1.123456 2.5", 4) == "M1.1235 2.5"
    assert round_numbers("M1.5.123456", 4) == "M1.5.1235"
    assert round_numbers("M1.5.999999", 4) == "M1.5 1"
    assert round_numbers("L.999999.5", 4) == "L1.0.5"
    assert round_numbers("M-.123456-.5", 4) == "M-.1235-.5"
    assert round_numbers("M1e-7 2", 4) == "M1e-7 2"
    assert round_numbers("0 0 100.5 50.25", 4) == "0 0 100.5 50.25"


def test_non_finite_dimensions_are_treated_as_unknown() -> None:
    assert svg_dimensions(b'<svg xmlns="http://www.w3.org/2000/svg" width="1e999" height="50"/>') == (None, 50)
    assert svg_dimensions(b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 1e999 10"/>') == (None, None)
    assert PillowCodec().read_dimensions(
        b'<svg xmlns="http://www.w3.org/2000/svg" width="1e999" height="1e999"/>'
    ) == (0, 0)
