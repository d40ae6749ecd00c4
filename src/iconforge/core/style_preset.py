"""Baked style preset and instruction text assembly.

Every edit request carries the same instruction: a short natural-language
brief, the full style preset serialized as JSON, and the output
requirements. The preset is a process-wide constant. Callers get a deep
copy from :func:`style_preset` and can never change what is sent.

Usage
-----
::

    from iconforge.core.style_preset import build_instruction_text

    prompt = build_instruction_text("1024x1024")
"""

from __future__ import annotations

import copy
import json
from functools import lru_cache
from typing import Any

STYLE_NAME = "Scapia 3D Icon – Isometric Matte+Gloss"

BAKED_PROMPT = " ".join(
    [
        "Reinterpret the attached reference as a single-object isometric top-down 3D icon "
        f"in the '{STYLE_NAME}' style.",
        "Keep white background, orthographic camera, base matte with glossy accents, soft shadow.",
        "Generate 1024×1024 PNGs; no captions.",
        "Output should have a transparent background.",
    ]
)

_STYLE_PRESET: dict[str, Any] = {
    "version": "1.1.0",
    "name": STYLE_NAME,
    "id": "scapia-3d-iso-3daf1d84",
    "created_utc": "2025-09-22T10:21:09.489194Z",
    "notes": (
        "Isometric top-down preset. Reduces clay/SSS, adds subtle glossy accents while "
        "keeping the soft toy-miniature look on white."
    ),
    "style_prompt": [
        "single object 3D icon, soft toy-like miniature with rounded silhouette and generous "
        "fillets (6–10% edge radius),",
        "finish is a mix of matte base and subtle glossy accents (like resin/plastic), clean "
        "surfaces, no visible seams,",
        "simple panel insets and windows with beveled rims, minimal small details,",
        "studio render on pure white background with soft ground contact shadow,",
        "orthographic isometric top-down view (35° elevation, 45° azimuth), subject centered "
        "with slight rightward facing,",
        "avoid chunky clay feel; surfaces should feel molded/finished with crisp highlights "
        "and gentle AO.",
    ],
    "negative_prompt": [
        "clay sculpted look, thick subsurface scattering, fingerprints, tool marks,",
        "photorealism, metallic chrome, glass glare, glitter, noisy microtexture,",
        "harsh shadows, specular hotspots, busy backgrounds, text/logos/stickers",
    ],
    "palette": {
        "base_off_white": "#EEEAE3",
        "graphite_grey": "#2F3336",
        "window_tint": "#394048",
        "accent_red": "#E74A3A",
        "accent_yellow": "#F6C55B",
        "accent_blue": "#7AA6D9",
        "notes": "Default palette aligned to the reference icons; override per icon if needed.",
    },
    "materials": {
        "default": {
            "metalness": 0,
            "roughness": 0.58,
            "specular": 0.45,
            "subsurface": 0.05,
            "ior": 1.47,
            "clearcoat": 0.2,
            "clearcoat_roughness": 0.25,
        },
        "gloss_accent": {
            "metalness": 0,
            "roughness": 0.35,
            "specular": 0.55,
            "subsurface": 0.02,
            "ior": 1.48,
            "clearcoat": 0.35,
            "clearcoat_roughness": 0.18,
        },
        "glass_like_windows": {
            "metalness": 0,
            "roughness": 0.12,
            "specular": 0.6,
            "subsurface": 0,
            "ior": 1.5,
            "tint": "window_tint",
        },
        "rubber_tires": {
            "metalness": 0,
            "roughness": 0.88,
            "specular": 0.2,
            "subsurface": 0,
            "tint": "graphite_grey",
        },
    },
    "geometry": {
        "bevel_ratio": [0.06, 0.1],
        "inflation_amount": "medium",
        "window_inset_depth": "small",
        "headlight_shape": "round or rounded-rect",
        "proportions_hint": "toy-like chibi proportions; simplified segmentation",
    },
    "lighting": {
        "scheme": "soft_three_point + low-contrast HDRI",
        "env_intensity": 1.1,
        "key": {"intensity": 1, "direction": "front-left 35°", "softness": "soft"},
        "fill": {"intensity": 0.2, "direction": "front-right", "softness": "very soft"},
        "kicker": {
            "intensity": 0.25,
            "direction": "top-right 60°",
            "size": "small",
            "softness": "semi-soft",
        },
        "rim": {"intensity": 0.05, "direction": "back-right 40°", "softness": "soft"},
        "shadow": {"opacity": [0.18, 0.26], "blur": "medium-soft", "offset": "subtle"},
    },
    "camera": {
        "type": "orthographic",
        "isometric": True,
        "elevation_deg": 35.264,
        "azimuth_deg": 45,
        "tilt_deg": 0,
        "ortho_scale": 1.08,
        "distance_mode": "fit-object-with-margin",
    },
    "render": {
        "style_strength": 0.9,
        "detail_level": "iconic-medium",
        "consistency": {"seed_mode": "fixed_by_subject", "seed_hint": 985349612},
        "background": {"mode": "white", "hex": "#FFFFFF"},
    },
    "post": {"ao_boost": 0.12, "contrast": 0.01, "saturation": -0.02, "sharpen": 0.05},
    "output": {
        "size_px": 1536,
        "padding_ratio": 0.08,
        "filetype": "png",
        "transparent_background": False,
    },
    "controls": {"guidance_scale": 7, "steps": 30},
    "templates": {
        "text_to_image_prompt": (
            "Isometric 3D icon of {subject}, top-down orthographic (35°/45°) in the "
            f"'{STYLE_NAME}' style. White background, centered. Base matte plastic with "
            "subtle glossy accents (use 'gloss_accent' on stripes/trim). Minimal details, "
            "rounded forms. Notes: {details}."
        ),
        "image_to_image_prompt": (
            "Reinterpret the attached reference as a single-object isometric top-down 3D icon "
            f"in the '{STYLE_NAME}' style. Keep white background, orthographic camera, base "
            "matte with glossy accents, soft shadow."
        ),
    },
    "reference_image": {
        "use": "optional",
        "weight": 0.45,
        "notes": "Attach a silhouette-clear image. Style rules enforce isometric view and finish.",
    },
    "overrides": {
        "palette": {},
        "seed": None,
        "camera": {},
        "lighting": {},
        "materials": {},
        "notes": "Per-generation tweaks go here while keeping the preset stable.",
    },
}


def style_preset() -> dict[str, Any]:
    """Return a deep copy of the baked style preset."""
    return copy.deepcopy(_STYLE_PRESET)


@lru_cache(maxsize=1)
def style_preset_json() -> str:
    """Serialize the preset exactly as it is embedded in every instruction.

    Two-space indentation, non-ASCII characters kept as-is.
    """
    return json.dumps(_STYLE_PRESET, indent=2, ensure_ascii=False)


def build_instruction_text(size: str = "1024x1024") -> str:
    """Assemble the full prompt sent with every edit request.

    Args:
        size: Square size token quoted in the requirements block

    Returns:
        Baked brief, serialized preset and output requirements joined by newlines
    """
    return "\n".join(
        [
            BAKED_PROMPT,
            "",
            "Style JSON (do not change):",
            style_preset_json(),
            "",
            "Requirements:",
            f"- {size} square",
            "- transparent background (no text/captions)",
        ]
    )
