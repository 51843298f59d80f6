"""Color-grade effect catalog.

Named looks map to a fixed list of filters. Procedural families
(``cg-pro-<n>``, ``vintage-style-<n>``, ...) are generators parameterized by
the trailing number of the id. Unknown ids resolve to no effect.
"""

import logging
import re
from typing import Callable

from mediasuite.render.filtergraph import Filter

logger = logging.getLogger(__name__)


def _eq(**kwargs: float) -> Filter:
    return Filter("eq", **kwargs)


def _balance(**kwargs: float) -> Filter:
    return Filter("colorbalance", **kwargs)


def _noise(strength: int) -> Filter:
    return Filter("noise", alls=strength, allf="t")


def _blur(radius: int) -> Filter:
    return Filter("boxblur", radius, 1)


def _pixelate(factor: int) -> list[Filter]:
    return [
        Filter("scale", f"iw/{factor}", f"ih/{factor}"),
        Filter("scale", f"iw*{factor}", f"ih*{factor}", flags="neighbor"),
    ]


GRAYSCALE = Filter("hue", s=0)

EFFECTS: dict[str, list[Filter]] = {
    # Cinematic
    "teal-orange": [_balance(rs=0.2, bs=-0.2), _eq(contrast=1.1, saturation=1.3)],
    "matrix": [_balance(gs=0.3, rs=-0.2, bs=-0.2), _eq(contrast=1.2)],
    "noir": [GRAYSCALE, _eq(contrast=1.5, brightness=-0.1)],
    "vintage-warm": [_balance(rs=0.2, bs=-0.2), _eq(gamma=1.2, saturation=0.8)],
    "cool-morning": [_balance(bs=0.2, rs=-0.1), _eq(brightness=0.05)],
    "cyberpunk": [_eq(contrast=1.2, saturation=1.5), _balance(bs=0.2, gs=0.1)],
    "dreamy-blur": [_blur(2), _eq(brightness=0.1, saturation=1.2)],
    "horror": [GRAYSCALE, _eq(contrast=1.5, brightness=-0.2), _noise(10)],
    "underwater": [_balance(bs=0.4, gs=0.1, rs=-0.3), _eq(contrast=0.9)],
    "sunset": [_balance(rs=0.3, gs=-0.1, bs=-0.2), _eq(saturation=1.3)],
    "posterize": [_eq(contrast=2.0, saturation=1.5)],
    "fade": [_eq(contrast=0.8, brightness=0.1)],
    "vibrant": [_eq(saturation=2.0)],
    "muted": [_eq(saturation=0.5)],
    "b-and-w-low": [GRAYSCALE, _eq(contrast=0.8)],
    "golden-hour": [_balance(rs=0.2, gs=0.1, bs=-0.2), _eq(saturation=1.2)],
    "cold-blue": [_balance(bs=0.3, rs=-0.1)],
    "night-vision": [GRAYSCALE, _eq(brightness=0.1), _balance(gs=0.5), _noise(20)],
    "scifi": [_balance(bs=0.2, gs=0.1), _eq(contrast=1.3)],
    "pastel": [_eq(saturation=0.7, brightness=0.1, contrast=0.9)],
    # Artistic
    "pop-art": [_eq(saturation=3, contrast=1.5)],
    "sketch-sim": [GRAYSCALE, _eq(contrast=5, brightness=0.3)],
    "invert": [Filter("negate")],
    "sepia-max": [_balance(rs=0.4, gs=0.2, bs=-0.4)],
    "high-contrast": [_eq(contrast=2.0)],
    "low-light": [_eq(brightness=-0.3)],
    "overexposed": [_eq(brightness=0.4)],
    "radioactive": [Filter("hue", h=90, s=2)],
    "deep-fried": [_eq(saturation=3, contrast=2), Filter("unsharp", 5, 5, 2.0)],
    "ethereal": [_blur(3), _eq(brightness=0.2)],
    # Basic
    "dv-cam": [_eq(saturation=0.8), _noise(5)],
    "bling": [_eq(brightness=0.1)],
    "soft-angel": [_blur(2), _eq(brightness=0.1)],
    "sharpen": [Filter("unsharp", 5, 5, 1.5, 5, 5, 0.0)],
    "warm": [_balance(rs=0.1, bs=-0.1)],
    "cool": [_balance(bs=0.1, rs=-0.1)],
    "vivid": [_eq(saturation=1.5)],
    "mono": [GRAYSCALE],
    "bw": [GRAYSCALE],
    "vintage": [_balance(rs=0.2, gs=0.1, bs=-0.2), _eq(contrast=0.9)],
    "dreamy": [_blur(2)],
    "sepia": [_balance(rs=0.3, gs=0.2, bs=-0.2)],
    # Glitch & retro
    "glitch-pro-1": [_balance(gs=0.1), _noise(10)],
    "glitch-pro-2": _pixelate(10),
    "vhs-distort": [_eq(saturation=1.5), _blur(1), _noise(10)],
    "bad-signal": [_noise(30)],
    "chromatic": [_balance(rs=0.1, bs=0.1)],
    "pixelate": _pixelate(20),
    "old-film": [_eq(saturation=0.5), _noise(15)],
    "dust": [_noise(5)],
    "grain": [_noise(15)],
    "vignette": [_eq(brightness=-0.1)],
    "super8": [_eq(saturation=0.8, contrast=1.1), _balance(rs=0.1)],
    "noise": [_noise(20)],
}

# ============================================================================
# Procedural families: "<prefix><n>"
# ============================================================================

EffectFamily = Callable[[int], list[Filter]]

FAMILIES: dict[str, EffectFamily] = {
    "cg-pro-": lambda i: [
        _eq(contrast=round(1 + (i % 5) * 0.1, 2), saturation=round(1 + (i % 3) * 0.2, 2)),
        Filter("hue", h=(i * 15) % 360),
    ],
    "vintage-style-": lambda i: [
        _balance(rs=round(0.1 + (i % 5) * 0.05, 2), bs=-round(0.1 + (i % 5) * 0.05, 2)),
        _eq(contrast=0.9),
    ],
    "cyber-neon-": lambda i: [_eq(contrast=1.2, saturation=1.5), Filter("hue", h=i * 10)],
    "nature-fresh-": lambda i: [_eq(saturation=1.3, brightness=0.05), Filter("hue", h=-i * 2)],
    "art-duo-": lambda i: [GRAYSCALE, _balance(rs=round(0.1 * (i % 3), 2), bs=round(0.1 * (i % 2), 2))],
    "noir-style-": lambda i: [GRAYSCALE, _eq(contrast=round(1 + i * 0.05, 2))],
    "film-stock-": lambda i: [_eq(saturation=0.8, contrast=1.1)],
    "leak-overlay-": lambda i: [_eq(brightness=0.1, gamma=1.1)],
    "light-leak-": lambda i: [_eq(brightness=0.1, gamma=1.1)],
}

_INDEX_RE = re.compile(r"^(\d+)")


def _family_index(suffix: str) -> int:
    match = _INDEX_RE.match(suffix)
    index = int(match.group(1)) if match else 0
    return index or 1


def build_filters(effect_id: str | None) -> list[Filter]:
    """Resolve an effect id into filters; empty list means no effect."""
    if not effect_id:
        return []
    if effect_id in EFFECTS:
        return list(EFFECTS[effect_id])
    for prefix, family in FAMILIES.items():
        if effect_id.startswith(prefix):
            return family(_family_index(effect_id[len(prefix):]))
    logger.info(f"[EFFECT] Unknown effect '{effect_id}', skipping")
    return []


def list_effects() -> list[str]:
    """Named effects plus one example id per procedural family."""
    return sorted(EFFECTS) + sorted(f"{prefix}1" for prefix in FAMILIES)
