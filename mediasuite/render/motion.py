"""Motion preset catalog.

Every preset is a pure generator that turns a ``MotionContext`` (frame
variable, total frame count, duration, speed) into a ``Motion``: closed-form
zoom and offset expressions for FFmpeg's ``zoompan`` plus optional rotation,
blur, noise and RGB shift stages.

A resolved motion is always wrapped in the same two fixed stages:

1. pre-normalize: oversize/crop the source to ``supersample x canonical`` so
   pan and zoom never reveal empty edges
2. post-normalize: scale back to the canonical size, reset timestamps, force
   the canonical frame rate and pixel format

so every intermediate clip comes out geometrically interchangeable no matter
which preset ran.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable

from mediasuite.config import get_settings
from mediasuite.render.filtergraph import Filter, format_number, render_chain

logger = logging.getLogger(__name__)

settings = get_settings()

DEFAULT_MOTION = "kenBurns"

# zoompan frame variables: output frame number for stills (one input frame
# expanded to `d` output frames), input frame number for real video (d=1).
IMAGE_FRAME_VAR = "on"
VIDEO_FRAME_VAR = "in"

CENTER_X = "iw/2-(iw/zoom/2)"
CENTER_Y = "ih/2-(ih/zoom/2)"

# Rotation exposes the corners of the frame; crop this factor back in.
ROTATE_CROP = 1.2


@dataclass(frozen=True)
class MotionContext:
    """Inputs shared by every preset generator."""

    frame: str
    frames: int
    duration: float
    speed: float = 1.0

    @property
    def progress(self) -> str:
        """Normalized time in [0, 1] as an expression."""
        return f"min({self.frame}/{self.frames},1)"

    def rate(self, per_frame: float) -> str:
        """Per-frame increment scaled by the clip speed."""
        return format_number(per_frame * self.speed)


@dataclass(frozen=True)
class Motion:
    """Zoompan parameters plus optional extra stages."""

    zoom: str = "1"
    x: str = CENTER_X
    y: str = CENTER_Y
    rotate: str | None = None  # radians, expression of t
    blur: int = 0
    blur_enable: str | None = None  # timeline window; None = whole clip
    noise: int = 0
    rgb_shift: int = 0


MotionGenerator = Callable[[MotionContext], Motion]

_REGISTRY: dict[str, MotionGenerator] = {}


def register(*names: str) -> Callable[[MotionGenerator], MotionGenerator]:
    """Register a generator under one or more preset ids."""

    def decorator(fn: MotionGenerator) -> MotionGenerator:
        for name in names:
            if name in _REGISTRY:
                raise ValueError(f"Duplicate motion preset: {name}")
            _REGISTRY[name] = fn
        return fn

    return decorator


def offset_x(displacement: str) -> str:
    return f"{CENTER_X}+{displacement}"


def offset_y(displacement: str) -> str:
    return f"{CENTER_Y}+{displacement}"


# ============================================================================
# Parameterized families
# ============================================================================


def pan(dx: int, dy: int, zoom: float = 1.2, rate: float = 1.0) -> MotionGenerator:
    """Linear pan across the oversized frame.

    dx/dy: +1 travels from the left/top edge, -1 from the right/bottom edge,
    0 stays centered on that axis.
    """

    def generate(ctx: MotionContext) -> Motion:
        p = ctx.progress if rate == 1.0 else f"min({ctx.frame}/{ctx.frames}*{format_number(rate)},1)"

        def axis(direction: int, size: str, center: str) -> str:
            if direction > 0:
                return f"({size}-{size}/zoom)*{p}"
            if direction < 0:
                return f"({size}-{size}/zoom)*(1-{p})"
            return center

        return Motion(
            zoom=format_number(zoom),
            x=axis(dx, "iw", CENTER_X),
            y=axis(dy, "ih", CENTER_Y),
        )

    return generate


def shake(
    amp_x: float,
    amp_y: float,
    freq_x: float,
    freq_y: float,
    zoom: float = 1.1,
    jitter: float = 0.0,
) -> MotionGenerator:
    """Periodic camera displacement with optional random jitter."""

    def generate(ctx: MotionContext) -> Motion:
        f = ctx.frame
        dx = f"{format_number(amp_x)}*sin({f}*{format_number(freq_x)})"
        dy = f"{format_number(amp_y)}*cos({f}*{format_number(freq_y)})"
        if jitter:
            dx += f"+{format_number(jitter)}*random(1)"
            dy += f"+{format_number(jitter)}*random(2)"
        return Motion(zoom=format_number(zoom), x=offset_x(dx), y=offset_y(dy))

    return generate


def random_shake(amp: float, zoom: float, axes: str = "xy") -> MotionGenerator:
    """Uncorrelated per-frame displacement."""

    def generate(ctx: MotionContext) -> Motion:
        x = offset_x(f"{format_number(amp)}*random(1)") if "x" in axes else CENTER_X
        y = offset_y(f"{format_number(amp)}*random(2)") if "y" in axes else CENTER_Y
        return Motion(zoom=format_number(zoom), x=x, y=y)

    return generate


def pulse(base: float, amp: float, freq: float, wave: str = "sin", rectify: bool = False) -> MotionGenerator:
    """Zoom oscillating around ``base``."""

    def generate(ctx: MotionContext) -> Motion:
        term = f"{wave}({ctx.frame}*{format_number(freq)})"
        if rectify:
            term = f"abs({term})"
        return Motion(zoom=f"{format_number(base)}+{format_number(amp)}*{term}")

    return generate


def zoom_in(per_frame: float, limit: float) -> MotionGenerator:
    def generate(ctx: MotionContext) -> Motion:
        return Motion(zoom=f"min(1+{ctx.rate(per_frame)}*{ctx.frame},{format_number(limit)})")

    return generate


def zoom_out(per_frame: float, start: float) -> MotionGenerator:
    def generate(ctx: MotionContext) -> Motion:
        return Motion(zoom=f"max({format_number(start)}-{ctx.rate(per_frame)}*{ctx.frame},1)")

    return generate


def blurred(radius: int, window: Callable[[MotionContext], str | None], zoom: float = 1.1) -> MotionGenerator:
    def generate(ctx: MotionContext) -> Motion:
        return Motion(zoom=format_number(zoom), blur=radius, blur_enable=window(ctx))

    return generate


# ============================================================================
# Static & smooth
# ============================================================================


@register("static")
def _static(ctx: MotionContext) -> Motion:
    return Motion(zoom="1", x="0", y="0")


@register("kenBurns")
def _ken_burns(ctx: MotionContext) -> Motion:
    return Motion(zoom=f"min(1+{ctx.rate(0.0003)}*{ctx.frame},1.15)")


@register("mov-3d-float")
def _float(ctx: MotionContext) -> Motion:
    f = ctx.frame
    return Motion(
        zoom=f"1.05+0.02*sin({f}*0.01)",
        x=offset_x(f"5*sin({f}*0.02)"),
        y=offset_y(f"5*cos({f}*0.02)"),
    )


_REGISTRY["mov-tilt-up-slow"] = pan(0, 1, zoom=1.1)
_REGISTRY["mov-tilt-down-slow"] = pan(0, -1, zoom=1.1)

# ============================================================================
# Dynamic zoom
# ============================================================================

_REGISTRY["zoom-in"] = zoom_in(0.001, 1.5)
_REGISTRY["zoom-out"] = zoom_out(0.001, 1.5)
_REGISTRY["mov-zoom-crash-in"] = zoom_in(0.008, 2.0)
_REGISTRY["mov-zoom-crash-out"] = zoom_out(0.008, 2.0)
_REGISTRY["mov-zoom-bounce-in"] = pulse(1.2, 0.1, 0.1, rectify=True)
_REGISTRY["mov-zoom-pulse-slow"] = pulse(1.1, 0.05, 0.05)
_REGISTRY["mov-scale-pulse"] = pulse(1.2, 0.1, 0.2, wave="cos")
_REGISTRY["mov-dolly-vertigo"] = zoom_in(0.003, 3.0)


@register("mov-zoom-twist-in")
def _twist_in(ctx: MotionContext) -> Motion:
    # Rotation grows linearly with time up to ~3 degrees.
    return Motion(
        zoom=f"min(1+{ctx.rate(0.002)}*{ctx.frame},1.6)",
        rotate=f"0.05*t/{format_number(ctx.duration)}",
    )


@register("mov-zoom-wobble")
def _zoom_wobble(ctx: MotionContext) -> Motion:
    f = ctx.frame
    return Motion(
        zoom=f"1.1+0.05*sin({f}*0.1)",
        x=offset_x(f"10*sin({f}*0.2)"),
        y=offset_y(f"10*cos({f}*0.2)"),
    )


@register("mov-spiral-out")
def _spiral_out(ctx: MotionContext) -> Motion:
    f = ctx.frame
    return Motion(
        zoom=f"max(1.5-{ctx.rate(0.002)}*{f},1)",
        x=offset_x(f"20*sin({f}*0.1)"),
        y=offset_y(f"20*cos({f}*0.1)"),
    )


# ============================================================================
# Pans
# ============================================================================

_REGISTRY["pan-left"] = _REGISTRY["mov-pan-slow-l"] = pan(1, 0)
_REGISTRY["pan-right"] = _REGISTRY["mov-pan-slow-r"] = pan(-1, 0)
_REGISTRY["mov-pan-slow-u"] = pan(0, 1)
_REGISTRY["mov-pan-slow-d"] = pan(0, -1)
_REGISTRY["mov-pan-fast-l"] = pan(1, 0, rate=2.0)
_REGISTRY["mov-pan-fast-r"] = pan(-1, 0, rate=2.0)
_REGISTRY["mov-pan-diag-tl"] = _REGISTRY["mov-diag-tl"] = pan(1, 1)
_REGISTRY["mov-pan-diag-br"] = _REGISTRY["mov-diag-tr"] = pan(-1, -1)

# ============================================================================
# Realism & chaos
# ============================================================================

_REGISTRY["handheld-1"] = shake(8, 8, 0.5, 0.7, zoom=1.1)
_REGISTRY["handheld-2"] = shake(15, 15, 0.3, 0.4, zoom=1.15, jitter=5)
_REGISTRY["earthquake"] = shake(25, 25, 0.7, 0.7, zoom=1.2)
_REGISTRY["mov-jitter-x"] = random_shake(10, 1.1, axes="x")
_REGISTRY["mov-vibrate"] = random_shake(2, 1.05)
_REGISTRY["mov-shake-violent"] = random_shake(40, 1.3)


def _gait(bounce: float, bounce_freq: float, sway: float, sway_freq: float) -> MotionGenerator:
    def generate(ctx: MotionContext) -> Motion:
        f = ctx.frame
        return Motion(
            zoom="1.1",
            x=offset_x(f"{format_number(sway)}*sin({f}*{format_number(sway_freq)})"),
            y=offset_y(f"{format_number(bounce)}*abs(sin({f}*{format_number(bounce_freq)}))"),
        )

    return generate


_REGISTRY["mov-walk"] = _gait(15, 0.15, 5, 0.07)
_REGISTRY["mov-run"] = _gait(25, 0.4, 10, 0.2)

# ============================================================================
# 3D, glitch & effects
# ============================================================================

_REGISTRY["mov-3d-spin-axis"] = shake(100, 100, 0.1, 0.1, zoom=1.2)
_REGISTRY["mov-3d-flip-x"] = pulse(1, 0.5, 0.1, rectify=True)
_REGISTRY["mov-3d-flip-y"] = pulse(1, 0.5, 0.1, wave="cos", rectify=True)
_REGISTRY["mov-3d-swing-l"] = shake(50, 0, 0.05, 0, zoom=1.1)
_REGISTRY["mov-3d-swing-r"] = shake(-50, 0, 0.05, 0, zoom=1.1)


@register("mov-3d-roll")
def _roll(ctx: MotionContext) -> Motion:
    f = ctx.frame
    return Motion(
        zoom="1.3",
        x=offset_x(f"50*sin({f}*0.1)"),
        y=offset_y(f"50*cos({f}*0.1)"),
        rotate="0.05*sin(t*2)",
    )


@register("mov-glitch-snap")
def _glitch_snap(ctx: MotionContext) -> Motion:
    return Motion(zoom=f"if(between(mod({ctx.frame},20),0,2),1.4,1.1)")


@register("mov-glitch-skid")
def _glitch_skid(ctx: MotionContext) -> Motion:
    return Motion(
        zoom="1.1",
        x=f"if(between(mod({ctx.frame},10),0,1),{CENTER_X}+100,{CENTER_X})",
        noise=8,
    )


@register("mov-rgb-shift-move")
def _rgb_shift_move(ctx: MotionContext) -> Motion:
    return Motion(zoom="1.1", x=offset_x(f"10*sin({ctx.frame}*0.5)"), rgb_shift=10)


_REGISTRY["mov-blur-in"] = blurred(10, lambda ctx: f"lt(t,{format_number(ctx.duration * 0.3)})")
_REGISTRY["mov-blur-out"] = blurred(10, lambda ctx: f"gt(t,{format_number(ctx.duration * 0.7)})")
_REGISTRY["mov-blur-pulse"] = blurred(5, lambda ctx: "lt(mod(t,2),0.5)")
_REGISTRY["mov-tilt-shift"] = blurred(5, lambda ctx: None, zoom=1.0)

# ============================================================================
# Elastic
# ============================================================================

_REGISTRY["mov-rubber-band"] = pulse(1, 0.1, 0.2, rectify=True)


@register("mov-jelly-wobble")
def _jelly_wobble(ctx: MotionContext) -> Motion:
    f = ctx.frame
    return Motion(
        zoom=f"1+0.05*sin({f}*0.3)",
        x=offset_x(f"10*sin({f}*0.5)"),
        y=offset_y(f"10*cos({f}*0.5)"),
    )


@register("mov-pop-up")
def _pop_up(ctx: MotionContext) -> Motion:
    return Motion(zoom=f"min(1+{ctx.rate(0.1)}*{ctx.frame},1.2)")


@register("mov-bounce-drop")
def _bounce_drop(ctx: MotionContext) -> Motion:
    return Motion(zoom=f"max(1.5-{ctx.rate(0.1)}*{ctx.frame},1)")


# ============================================================================
# Resolution
# ============================================================================


@dataclass
class MotionPlan:
    """Resolved video chain split into its three stages."""

    preset: str
    pre: list[Filter]
    transform: list[Filter]
    post: list[Filter]

    @property
    def filters(self) -> list[Filter]:
        return [*self.pre, *self.transform, *self.post]

    def render(self) -> str:
        return render_chain(self.filters)


def list_presets() -> list[str]:
    return sorted(_REGISTRY)


def get_generator(preset_id: str | None) -> tuple[str, MotionGenerator]:
    """Look up a preset, falling back to the default for unknown ids."""
    if preset_id and preset_id in _REGISTRY:
        return preset_id, _REGISTRY[preset_id]
    if preset_id:
        logger.info(f"[MOTION] Unknown preset '{preset_id}', using {DEFAULT_MOTION}")
    return DEFAULT_MOTION, _REGISTRY[DEFAULT_MOTION]


def _even(value: float) -> int:
    return int(value) // 2 * 2


def build_plan(
    preset_id: str | None,
    duration: float,
    width: int,
    height: int,
    *,
    is_image: bool = True,
    fps: int | None = None,
    speed: float = 1.0,
    supersample: int | None = None,
) -> MotionPlan:
    fps = fps or settings.render_fps
    supersample = supersample or settings.motion_supersample
    frames = max(1, math.ceil(duration * fps))
    ss_w, ss_h = _even(width * supersample), _even(height * supersample)

    name, generator = get_generator(preset_id)
    ctx = MotionContext(
        frame=IMAGE_FRAME_VAR if is_image else VIDEO_FRAME_VAR,
        frames=frames,
        duration=duration,
        speed=speed if speed > 0 else 1.0,
    )
    motion = generator(ctx)

    pre: list[Filter] = []
    if not is_image:
        # zoompan's `in` counts input frames; pin the cadence first.
        pre.append(Filter("fps", fps))
    pre.extend([
        Filter("scale", ss_w, ss_h, force_original_aspect_ratio="increase"),
        Filter("crop", ss_w, ss_h),
        Filter("setsar", 1),
    ])

    transform = [
        Filter(
            "zoompan",
            z=motion.zoom,
            x=motion.x,
            y=motion.y,
            d=frames if is_image else 1,
            s=f"{ss_w}x{ss_h}",
            fps=fps,
        )
    ]
    if motion.rotate:
        transform.append(Filter("rotate", a=motion.rotate, fillcolor="black"))
        transform.append(Filter("crop", w=f"iw/{ROTATE_CROP}", h=f"ih/{ROTATE_CROP}"))
    if motion.blur:
        transform.append(
            Filter("boxblur", luma_radius=motion.blur, luma_power=1, enable=motion.blur_enable)
        )
    if motion.noise:
        transform.append(Filter("noise", alls=motion.noise, allf="t"))
    if motion.rgb_shift:
        transform.append(Filter("rgbashift", rh=motion.rgb_shift, bv=motion.rgb_shift))

    post = [
        Filter("scale", width, height, flags="lanczos"),
        Filter("setpts", "PTS-STARTPTS"),
        Filter("fps", fps),
        Filter("format", settings.render_pix_fmt),
    ]
    return MotionPlan(preset=name, pre=pre, transform=transform, post=post)


def resolve(
    preset_id: str | None,
    duration: float,
    width: int,
    height: int,
    **kwargs,
) -> str:
    """Resolve a preset id into a complete video filter chain.

    Unknown ids fall back to ``kenBurns`` instead of failing.
    """
    return build_plan(preset_id, duration, width, height, **kwargs).render()


def build_filters(
    preset_id: str | None,
    duration: float,
    width: int,
    height: int,
    **kwargs,
) -> list[Filter]:
    return build_plan(preset_id, duration, width, height, **kwargs).filters
