"""转换决策引擎：阈值分层、试转换与比例测试。"""

from __future__ import annotations

import builtins
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import pytest

from asset_optimizer.core.config import EncodeConfig, PolicyConfig
from asset_optimizer.core.exceptions import CodecError
from asset_optimizer.core.identity import fingerprint
from asset_optimizer.core.models import (
    KIND_RASTER,
    KIND_VECTOR,
    PATH_CONVERT,
    PATH_OPTIMIZE,
    REASON_INLINE_ASSET,
    REASON_RATIO,
    REASON_SIZE,
    Asset,
)
from asset_optimizer.processing.codec import PillowCodec
from asset_optimizer.processing.policy import (
    decide_raster,
    decide_vector,
    has_inline_assets,
    ratio_limit,
    vector_target_width,
)
from asset_optimizer.processing.worker import ProcessingTask, run_task

KIB = 1024
POLICY = PolicyConfig()
ENCODE = EncodeConfig()


@dataclass
class FakeCodec:
    """记录调用的桩编码器，输出大小可控。"""

    vector_size: int = 100
    width: int = 300
    fail_encode: bool = False
    optimized: Optional[bytes] = b"<svg/>"
    calls: list = field(default_factory=list)

    def read_dimensions(self, data: bytes) -> tuple[int, int]:
        return self.width, self.width // 2

    def encode_raster(self, data, *, max_width, flatten_background, quality) -> bytes:
        self.calls.append(("raster", max_width, quality))
        return b"R" * 64

    def encode_vector(self, data, *, resize_width, quality) -> bytes:
        self.calls.append(("vector", resize_width, quality))
        if self.fail_encode:
            raise CodecError("encoder exploded")
        return b"V" * self.vector_size

    def optimize_vector(self, data: bytes) -> Optional[bytes]:
        self.calls.append(("optimize",))
        return self.optimized


def make_svg(size: int, extra: str = "") -> bytes:
    """生成恰好 size 字节的 SVG。"""

    head = f'<svg xmlns="http://www.w3.org/2000/svg" width="300" height="150">{extra}<!--'.encode()
    tail = b"--></svg>"
    padding = size - len(head) - len(tail)
    assert padding >= 0
    return head + b"x" * padding + tail


def vector_calls(codec: FakeCodec) -> list:
    return [call for call in codec.calls if call[0] == "vector"]


def test_force_tier_at_exact_threshold() -> None:
    codec = FakeCodec()
    decision = decide_vector(make_svg(100 * KIB), codec, POLICY, ENCODE)

    assert decision.path == PATH_CONVERT
    assert decision.reason == REASON_SIZE
    assert decision.resize_width == 600
    assert decision.quality == ENCODE.vector_quality
    assert decision.payload is None
    assert vector_calls(codec) == []


def test_one_byte_below_force_tier_runs_trial() -> None:
    codec = FakeCodec(vector_size=10)
    decision = decide_vector(make_svg(100 * KIB - 1), codec, POLICY, ENCODE)

    assert decision.reason == REASON_RATIO
    assert len(vector_calls(codec)) == 1


def test_inline_asset_tier_boundaries() -> None:
    font = "<style>@font-face{font-family:x}</style>"

    at_threshold = decide_vector(make_svg(40 * KIB, font), FakeCodec(), POLICY, ENCODE)
    assert at_threshold.path == PATH_CONVERT
    assert at_threshold.reason == REASON_INLINE_ASSET

    # 低于 40 KiB 时不做内容检查，进入试转换
    codec = FakeCodec(vector_size=40 * KIB)
    below = decide_vector(make_svg(40 * KIB - 1, font), codec, POLICY, ENCODE)
    assert below.path == PATH_OPTIMIZE
    assert len(vector_calls(codec)) == 1


def test_inline_asset_signatures() -> None:
    assert has_inline_assets(b'<image href="data:image/png;base64,AAAA"/>')
    assert has_inline_assets(b"<style>@FONT-FACE { }</style>")
    assert has_inline_assets(b"<font horiz-adv-x='1'></font>")
    assert not has_inline_assets(b"<svg><path d='M0 0'/></svg>")


def test_large_trial_uses_half_ratio() -> None:
    size = 60 * KIB
    limit = int(size * 0.5)

    accepted = decide_vector(make_svg(size), FakeCodec(vector_size=limit - 1), POLICY, ENCODE)
    rejected = decide_vector(make_svg(size), FakeCodec(vector_size=limit), POLICY, ENCODE)

    assert accepted.path == PATH_CONVERT
    assert accepted.payload == b"V" * (limit - 1)
    assert rejected.path == PATH_OPTIMIZE
    assert rejected.payload is None


def test_small_trial_uses_fifth_ratio() -> None:
    size = 20000
    limit = int(size * 0.2)

    accepted = decide_vector(make_svg(size), FakeCodec(vector_size=limit - 1), POLICY, ENCODE)
    rejected = decide_vector(make_svg(size), FakeCodec(vector_size=limit), POLICY, ENCODE)

    assert accepted.path == PATH_CONVERT
    assert accepted.reason == REASON_RATIO
    assert rejected.path == PATH_OPTIMIZE
    assert ratio_limit(size, POLICY) == 0.2
    assert ratio_limit(40 * KIB, POLICY) == 0.5


def test_trial_threshold_boundary() -> None:
    below_codec = FakeCodec(vector_size=1)
    below = decide_vector(make_svg(10 * KIB - 1), below_codec, POLICY, ENCODE)
    assert below.path == PATH_OPTIMIZE
    assert vector_calls(below_codec) == []

    at_codec = FakeCodec(vector_size=1)
    at = decide_vector(make_svg(10 * KIB), at_codec, POLICY, ENCODE)
    assert at.path == PATH_CONVERT
    assert vector_calls(at_codec) == [("vector", 600, ENCODE.vector_quality)]


def test_failed_trial_encode_falls_back_to_optimize() -> None:
    codec = FakeCodec(fail_encode=True)
    decision = decide_vector(make_svg(20 * KIB), codec, POLICY, ENCODE)

    assert decision.path == PATH_OPTIMIZE


def test_custom_thresholds_are_honoured() -> None:
    policy = PolicyConfig(vector_force_bytes=500, vector_inspect_bytes=400, vector_trial_bytes=300)
    decision = decide_vector(make_svg(500), FakeCodec(), policy, ENCODE)

    assert decision.reason == REASON_SIZE


def test_vector_target_width_is_capped() -> None:
    assert vector_target_width(300, POLICY) == 600
    assert vector_target_width(540, POLICY) == 1080
    assert vector_target_width(800, POLICY) == 1080
    assert vector_target_width(None, POLICY) == 1080


def test_raster_decision_downscales_only_wide_images() -> None:
    wide = decide_raster(5000, POLICY, ENCODE)
    exact = decide_raster(2560, POLICY, ENCODE)

    assert wide.path == PATH_CONVERT
    assert wide.resize_width == 2560
    assert wide.quality == ENCODE.raster_quality
    assert exact.resize_width is None


def test_accepted_trial_output_is_committed(tmp_path: Path) -> None:
    source = tmp_path / "diagram.svg"
    source.write_bytes(make_svg(20 * KIB))
    codec = FakeCodec(vector_size=100)

    outcome = run_task(
        ProcessingTask(
            asset=Asset(path=source, root=tmp_path, relative_path=Path("diagram.svg"), kind=KIND_VECTOR),
            codec=codec,
            policy=POLICY,
            encode=ENCODE,
        )
    )

    assert outcome.status == "converted"
    assert not source.exists()
    assert outcome.output_path is not None
    assert outcome.output_path.suffix == ".avif"
    assert outcome.output_path.read_bytes() == b"V" * 100
    assert outcome.fingerprint == fingerprint(b"V" * 100)
    # 试转换结果直接复用，不再二次编码
    assert len(vector_calls(codec)) == 1
    assert list(tmp_path.glob("*.tmp")) == []


def test_forced_conversion_encodes_once(tmp_path: Path) -> None:
    source = tmp_path / "huge.svg"
    source.write_bytes(make_svg(120 * KIB))
    codec = FakeCodec(vector_size=500)

    outcome = run_task(
        ProcessingTask(
            asset=Asset(path=source, root=tmp_path, relative_path=Path("huge.svg"), kind=KIND_VECTOR),
            codec=codec,
            policy=POLICY,
            encode=ENCODE,
        )
    )

    assert outcome.status == "converted"
    assert outcome.reason == REASON_SIZE
    assert vector_calls(codec) == [("vector", 600, ENCODE.vector_quality)]


def test_rejected_trial_optimizes_in_place(tmp_path: Path) -> None:
    source = tmp_path / "chart.svg"
    source.write_bytes(make_svg(20 * KIB))
    codec = FakeCodec(vector_size=20 * KIB, optimized=b"<svg>small</svg>")

    outcome = run_task(
        ProcessingTask(
            asset=Asset(path=source, root=tmp_path, relative_path=Path("chart.svg"), kind=KIND_VECTOR),
            codec=codec,
            policy=POLICY,
            encode=ENCODE,
        )
    )

    assert outcome.status == "optimized"
    assert source.read_bytes() == b"<svg>small</svg>"
    assert outcome.new_size == len(b"<svg>small</svg>")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["chart.svg"]


def test_optimizer_without_output_leaves_file_untouched(tmp_path: Path) -> None:
    source = tmp_path / "icon.svg"
    original = make_svg(2 * KIB)
    source.write_bytes(original)

    outcome = run_task(
        ProcessingTask(
            asset=Asset(path=source, root=tmp_path, relative_path=Path("icon.svg"), kind=KIND_VECTOR),
            codec=FakeCodec(optimized=None),
            policy=POLICY,
            encode=ENCODE,
        )
    )

    assert outcome.status == "unchanged"
    assert not outcome.succeeded
    assert source.read_bytes() == original


class ExplodingCodec(FakeCodec):
    def read_dimensions(self, data: bytes) -> tuple[int, int]:
        raise RuntimeError("unexpected decoder state")


def test_unexpected_error_becomes_failed_outcome(tmp_path: Path) -> None:
    source = tmp_path / "photo.png"
    source.write_bytes(b"png bytes")

    outcome = run_task(
        ProcessingTask(
            asset=Asset(path=source, root=tmp_path, relative_path=Path("photo.png"), kind=KIND_RASTER),
            codec=ExplodingCodec(),
            policy=POLICY,
            encode=ENCODE,
        )
    )

    assert outcome.status == "error-unexpected"
    assert outcome.failed
    assert "unexpected decoder state" in outcome.message
    assert source.read_bytes() == b"png bytes"


@pytest.fixture(params=[ImportError, OSError])
def cairo_unavailable(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    real_import = builtins.__import__
    error = request.param

    def _import(name, *args, **kwargs):
        if name == "cairosvg":
            raise error('no library called "cairo-2" was found')
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", _import)


@pytest.mark.usefixtures("cairo_unavailable")
def test_missing_rasterizer_is_a_codec_error() -> None:
    with pytest.raises(CodecError):
        PillowCodec().encode_vector(make_svg(20 * KIB), resize_width=600, quality=60)


@pytest.mark.usefixtures("cairo_unavailable")
def test_trial_without_rasterizer_falls_back_to_optimize(tmp_path: Path) -> None:
    source = tmp_path / "chart.svg"
    source.write_bytes(make_svg(20 * KIB))

    outcome = run_task(
        ProcessingTask(
            asset=Asset(path=source, root=tmp_path, relative_path=Path("chart.svg"), kind=KIND_VECTOR),
            codec=PillowCodec(),
            policy=POLICY,
            encode=ENCODE,
        )
    )

    assert outcome.status == "optimized"
    assert outcome.new_size < 20 * KIB
    assert sorted(p.name for p in tmp_path.iterdir()) == ["chart.svg"]
