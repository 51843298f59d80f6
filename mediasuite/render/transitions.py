"""Transition compiler and scene assembly.

Cross-fade offsets are derived purely from the cumulative clip durations and
one shared transition duration::

    cursor = d[0]
    for each next clip i:
        offset[i] = cursor - td
        cursor += d[i] - td

so the assembled length is always ``sum(d) - (n - 1) * td``. For three 5s
clips with td=1 the offsets are [4, 8] and the output is 13s long.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from mediasuite.config import get_settings
from mediasuite.exceptions import AssemblyError, EngineError
from mediasuite.render.filtergraph import Filter, FilterGraph, format_number
from mediasuite.render.runner import ProcessRunner, get_runner

logger = logging.getLogger(__name__)

CUT = "cut"
DEFAULT_XFADE = "fade"

# Shrink factor applied when two cross-fades would overlap inside one clip
CLAMP_DIVISOR = 2.2

# Client-facing transition ids -> FFmpeg xfade transition names
TRANSITIONS: dict[str, str] = {
    # Basic
    "fade-classic": "fade", "crossfade": "fade", "mix": "fade", "fade": "fade",
    "black": "fadeblack", "white": "fadewhite", "luma-fade": "fade",
    "cut": CUT,
    # Wipes & slides
    "wipe-up": "wipeup", "wipe-down": "wipedown", "wipe-left": "wipeleft", "wipe-right": "wiperight",
    "slide-left": "slideleft", "slide-right": "slideright", "slide-up": "slideup", "slide-down": "slidedown",
    "push-left": "slideleft", "push-right": "slideright", "slideup": "slideup", "slidedown": "slidedown",
    # Shapes
    "circle-open": "circleopen", "circle-close": "circleclose", "circleopen": "circleopen",
    "diamond-in": "diagtl", "diamond-out": "diagbr", "diamond-zoom": "diagtl",
    "clock-wipe": "radial", "iris-in": "circleopen", "iris-out": "circleclose",
    "checker-wipe": "dissolve", "checkerboard": "dissolve", "grid-flip": "dissolve",
    "triangle-wipe": "diagtl", "star-zoom": "circleopen", "spiral-wipe": "radial", "heart-wipe": "circleopen",
    # Glitch & digital
    "glitch": "pixelize", "color-glitch": "hlslice", "urban-glitch": "pixelize",
    "pixelize": "pixelize", "pixel-sort": "pixelize", "rgb-shake": "vuslice", "hologram": "hrslice",
    "block-glitch": "pixelize", "cyber-zoom": "zoomin", "scan-line-v": "wipetl", "color-tear": "hlslice",
    "digital-noise": "dissolve", "glitch-scan": "vuslice", "datamosh": "pixelize", "rgb-split": "hlslice",
    "noise-jump": "dissolve", "cyber-slice": "wipetl", "glitch-chroma": "hlslice",
    # Atmosphere
    "blood-mist": "dissolve", "black-smoke": "fadeblack", "white-smoke": "fadewhite", "fire-burn": "dissolve",
    "visual-buzz": "pixelize", "rip-diag": "wipetl", "zoom-neg": "zoomin", "infinity-1": "dissolve",
    "digital-paint": "dissolve", "brush-wind": "wipeleft", "dust-burst": "dissolve", "filter-blur": "hblur",
    "film-roll-v": "slideup", "astral-project": "dissolve", "lens-flare": "fadewhite", "pull-away": "fadegrays",
    "flash-black": "fadeblack", "flash-white": "fadewhite", "flashback": "fadewhite", "combine-overlay": "dissolve",
    "combine-mix": "dissolve", "nightmare": "dissolve", "bubble-blur": "hblur", "paper-unfold": "slideleft",
    "corrupt-img": "pixelize", "glow-intense": "fadewhite", "dynamic-blur": "hblur", "blur-dissolve": "hblur",
    "liquid-melt": "dissolve", "ink-splash": "dissolve", "oil-paint": "dissolve", "water-ripple": "dissolve",
    "smoke-reveal": "dissolve", "bubble-pop": "circleopen", "hblur": "hblur",
    # Paper & 3D
    "page-turn": "coverleft", "paper-rip": "wipetl", "burn-paper": "dissolve", "sketch-reveal": "dissolve",
    "fold-up": "slideup", "cube-rotate-l": "slideleft", "cube-rotate-r": "slideright",
    "cube-rotate-u": "slideup", "cube-rotate-d": "slidedown",
    "door-open": "wipetl", "flip-card": "slideleft", "room-fly": "zoomin",
    # Movement
    "zoom-in": "zoomin", "zoom-out": "fadegrays", "zoom-spin-fast": "zoomin", "spin-cw": "wipetl", "spin-ccw": "wipetr",
    "whip-left": "smoothleft", "whip-right": "smoothright", "whip-up": "smoothup", "whip-down": "smoothdown",
    "perspective-left": "slideleft", "perspective-right": "slideright",
    "zoom-blur-l": "smoothleft", "zoom-blur-r": "smoothright",
    "spin-zoom-in": "zoomin", "spin-zoom-out": "fadegrays", "whip-diagonal-1": "wipetl", "whip-diagonal-2": "wipetr",
    # Light
    "flash-bang": "fadewhite", "exposure": "fadewhite", "burn": "dissolve", "bokeh-blur": "hblur",
    "light-leak-tr": "fadewhite", "flare-pass": "wipeleft", "prism-split": "dissolve", "god-rays": "fadewhite",
    # Elastic
    "elastic-left": "slideleft", "elastic-right": "slideright", "elastic-up": "slideup", "elastic-down": "slidedown",
    "bounce-scale": "zoomin", "jelly": "wipetl",
    "film-roll": "slideup", "blur-warp": "hblur",
}


def resolve_transition(transition_id: str | None) -> str:
    """Map a transition id to an xfade name; unknown ids become ``fade``."""
    if not transition_id:
        transition_id = get_settings().default_transition
    name = TRANSITIONS.get(transition_id)
    if name is None:
        logger.info(f"[TRANSITION] Unknown transition '{transition_id}', using {DEFAULT_XFADE}")
        return DEFAULT_XFADE
    return name


def list_transitions() -> list[str]:
    return sorted(TRANSITIONS)


def effective_transition_duration(durations: Sequence[float], transition_duration: float) -> float:
    """Clamp the transition so no two cross-fades overlap inside one clip.

    Returns 0 for a non-positive request, which callers treat as a hard cut.
    """
    if transition_duration <= 0 or not durations:
        return 0.0
    shortest = min(durations)
    if transition_duration * 2 > shortest:
        clamped = shortest / CLAMP_DIVISOR
        logger.info(
            f"[TRANSITION] Transition {transition_duration}s too long for {shortest}s clip, "
            f"clamped to {clamped:.3f}s"
        )
        return clamped
    return transition_duration


def compute_offsets(durations: Sequence[float], transition_duration: float) -> list[float]:
    """Start time of each cross-fade on the running chain's timeline."""
    offsets: list[float] = []
    if len(durations) < 2:
        return offsets
    cursor = durations[0]
    for duration in durations[1:]:
        offsets.append(cursor - transition_duration)
        cursor += duration - transition_duration
    return offsets


def expected_duration(durations: Sequence[float], transition_duration: float, cut: bool = False) -> float:
    total = float(sum(durations))
    if cut or len(durations) < 2:
        return total
    return total - (len(durations) - 1) * transition_duration


@dataclass
class CompiledTransition:
    """Cross-fade graph over inputs ``0..n-1`` plus its final pad labels."""

    graph: FilterGraph
    video_label: str
    audio_label: str
    offsets: list[float] = field(default_factory=list)
    transition_duration: float = 0.0
    xfade: str = DEFAULT_XFADE

    def render(self) -> str:
        return self.graph.render()


def compile_crossfade(
    durations: Sequence[float],
    transition_id: str | None,
    transition_duration: float,
) -> CompiledTransition:
    """Chain pairwise xfade/acrossfade over all inputs.

    The running output of step i-1 is the first input of step i, so one
    FFmpeg invocation renders the whole sequence.
    """
    if len(durations) < 2:
        raise ValueError("A cross-fade needs at least two clips")

    xfade = resolve_transition(transition_id)
    if xfade == CUT:
        raise ValueError("Cut transitions are assembled by concatenation")

    td = effective_transition_duration(durations, transition_duration)
    if td <= 0:
        raise ValueError("Cross-fade duration must be positive")
    offsets = compute_offsets(durations, td)

    graph = FilterGraph()
    video_in, audio_in = "0:v", "0:a"
    for i, offset in enumerate(offsets, start=1):
        video_out = graph.new_label("v")
        graph.add(
            [video_in, f"{i}:v"],
            [
                Filter("xfade", transition=xfade, duration=td, offset=offset),
                Filter("format", get_settings().render_pix_fmt),
            ],
            [video_out],
        )
        audio_out = graph.new_label("a")
        graph.add(
            [audio_in, f"{i}:a"],
            [Filter("acrossfade", d=td, c1="tri", c2="tri")],
            [audio_out],
        )
        video_in, audio_in = video_out, audio_out

    return CompiledTransition(
        graph=graph,
        video_label=video_in,
        audio_label=audio_in,
        offsets=offsets,
        transition_duration=td,
        xfade=xfade,
    )


def build_concat_list(paths: Sequence[str | Path]) -> str:
    """Concat demuxer list file contents with single-quote escaping."""
    lines = []
    for path in paths:
        escaped = str(Path(path).resolve()).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


class TransitionAssembler:
    """Joins intermediate clips into one continuous video."""

    def __init__(self, runner: ProcessRunner | None = None):
        self.runner = runner if runner is not None else get_runner()
        self.settings = get_settings()

    def _encode_args(self) -> list[str]:
        s = self.settings
        return [
            "-c:v", s.render_video_codec,
            "-preset", s.render_video_preset,
            "-crf", str(s.render_crf),
            "-pix_fmt", s.render_pix_fmt,
            "-r", str(s.render_fps),
            "-c:a", s.render_audio_codec,
            "-b:a", s.render_audio_bitrate,
            "-ar", str(s.render_audio_sample_rate),
        ]

    def build_crossfade_command(
        self,
        clips: Sequence[str | Path],
        compiled: CompiledTransition,
        total_duration: float,
        output_path: str | Path,
    ) -> list[str]:
        args: list[str] = []
        for clip in clips:
            args.extend(["-i", str(clip)])
        args.extend([
            "-filter_complex", compiled.render(),
            "-map", f"[{compiled.video_label}]",
            "-map", f"[{compiled.audio_label}]",
            *self._encode_args(),
            "-t", format_number(total_duration),
            "-movflags", "+faststart",
            str(output_path),
        ])
        return args

    def build_concat_command(
        self,
        list_path: str | Path,
        output_path: str | Path,
        *,
        reencode: bool = False,
    ) -> list[str]:
        args = ["-f", "concat", "-safe", "0", "-i", str(list_path)]
        if reencode:
            args.extend(self._encode_args())
        else:
            args.extend(["-c", "copy"])
        args.extend(["-movflags", "+faststart", str(output_path)])
        return args

    async def _concat(self, clips: Sequence[str | Path], output_path: Path, work_dir: Path) -> None:
        list_path = work_dir / "concat_list.txt"
        list_path.write_text(build_concat_list(clips), encoding="utf-8")

        try:
            await self.runner.run(self.build_concat_command(list_path, output_path), stage="concat")
            return
        except EngineError as e:
            logger.warning(f"[TRANSITION] Stream-copy concat failed ({e.message}), re-encoding")

        try:
            await self.runner.run(
                self.build_concat_command(list_path, output_path, reencode=True),
                stage="concat (re-encode)",
            )
        except EngineError as e:
            raise AssemblyError(f"Concatenation failed: {e.message}") from e

    async def assemble(
        self,
        clips: Sequence[str | Path],
        durations: Sequence[float],
        transition_id: str | None,
        transition_duration: float,
        output_path: str | Path,
        work_dir: str | Path | None = None,
    ) -> Path:
        """Join the clips in order.

        - one clip: copied through unchanged, no engine invocation
        - ``cut`` (or a non-positive duration): concat demuxer, stream copy
          first, re-encode on failure
        - anything else: one multi-input cross-fade invocation
        """
        if not clips:
            raise AssemblyError("Nothing to assemble")
        if len(clips) != len(durations):
            raise AssemblyError("Clip and duration counts differ")

        output_path = Path(output_path)
        work_dir = Path(work_dir) if work_dir else output_path.parent

        if len(clips) == 1:
            logger.info("[TRANSITION] Single clip, skipping transition stage")
            await asyncio.to_thread(shutil.copyfile, clips[0], output_path)
            return output_path

        xfade = resolve_transition(transition_id)
        td = effective_transition_duration(durations, transition_duration)
        if xfade == CUT or td <= 0:
            logger.info(f"[TRANSITION] Concatenating {len(clips)} clips (cut)")
            await self._concat(clips, output_path, work_dir)
            return output_path

        compiled = compile_crossfade(durations, transition_id, transition_duration)
        total = expected_duration(durations, compiled.transition_duration)
        logger.info(
            f"[TRANSITION] {len(clips)} clips, {compiled.xfade} {compiled.transition_duration:.3f}s, "
            f"offsets={[round(o, 3) for o in compiled.offsets]}, total={total:.3f}s"
        )
        logger.debug(f"[TRANSITION] Graph: {compiled.render()}")

        try:
            await self.runner.run(
                self.build_crossfade_command(clips, compiled, total, output_path),
                stage="transitions",
            )
        except EngineError as e:
            raise AssemblyError(f"Transition render failed: {e.message}") from e
        return output_path
