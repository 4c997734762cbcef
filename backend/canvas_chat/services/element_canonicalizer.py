"""canvas_chat/services/element_canonicalizer.py

Expands the terse element specs the model writes into complete Excalidraw
scene objects.

The model is told to emit only the fields it cares about (``type``, ``id``,
geometry, a few colours, maybe a ``label``). Everything else a renderer needs
is filled in here from a fixed defaults table, so the same spec always yields
the same shape apart from ``seed``, ``updated`` and synthesized ids.

A labeled shape becomes *two* objects: the shape itself and a text element
bound to it (``boundElements`` on the shape, ``containerId`` on the text).
"""

from __future__ import annotations

import copy
import random
import string
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from canvas_chat.api_models import CanonicalSceneObject, RawElementSpec

SHAPE_TYPES = ("rectangle", "ellipse", "diamond")
LINEAR_TYPES = ("arrow", "line")
NON_RENDERING_TYPES = ("cameraUpdate",)

DEFAULT_FONT_SIZE = 20
DEFAULT_FONT_FAMILY = 1
LABEL_INSET = 10

_DEFAULTS: Dict[str, Any] = {
    "strokeWidth": 2,
    "roughness": 1,
    "opacity": 100,
    "strokeStyle": "solid",
    "fillStyle": "solid",
    "strokeColor": "#e2e8f0",
    "backgroundColor": "transparent",
    "angle": 0,
    "groupIds": [],
    "frameId": None,
    "boundElements": None,
    "link": None,
    "locked": False,
    "version": 1,
    "versionNonce": 0,
    "isDeleted": False,
}

_ID_ALPHABET = string.digits + string.ascii_lowercase


class SeedCounter:
    """Monotonic seed source, safe to share between threads."""

    def __init__(self, start: int = 1):
        self._next = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
            return value


class ElementCanonicalizer:
    """Maps raw element specs to canonical scene objects.

    Pure apart from advancing its :class:`SeedCounter`; inputs are never
    mutated. Give each session its own instance (or an injected counter) so
    seeds of independent sessions do not interleave.
    """

    def __init__(self, seeds: Optional[SeedCounter] = None,
                 clock: Callable[[], float] = time.time):
        self.seeds = seeds or SeedCounter()
        self._clock = clock

    # --------------------------------------------------------------------- #
    #  Public helpers
    # --------------------------------------------------------------------- #

    def convert_elements(self, specs: Iterable[RawElementSpec]) -> List[CanonicalSceneObject]:
        """Canonicalize every spec in *specs* and flatten, keeping input order."""
        result: List[CanonicalSceneObject] = []
        for spec in specs:
            result.extend(self.canonicalize(spec))
        return result

    def canonicalize(self, spec: RawElementSpec) -> List[CanonicalSceneObject]:
        """Return zero, one or two scene objects for a single raw spec."""
        kind = spec.get("type")
        if kind in NON_RENDERING_TYPES:
            return []

        base = self._base(spec)
        if kind == "text":
            return [self._text(spec, base)]
        if kind in LINEAR_TYPES:
            return [self._linear(spec, base)]
        return self._shape(spec, base)

    # --------------------------------------------------------------------- #
    #  Internal helpers
    # --------------------------------------------------------------------- #

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _new_id(self) -> str:
        suffix = "".join(random.choices(_ID_ALPHABET, k=6))
        return f"el-{self._now_ms()}-{suffix}"

    def _defaults(self) -> Dict[str, Any]:
        obj = copy.deepcopy(_DEFAULTS)
        obj["updated"] = self._now_ms()
        obj["seed"] = self.seeds.next()
        return obj

    def _base(self, spec: RawElementSpec) -> Dict[str, Any]:
        obj = self._defaults()
        obj.update(
            id=spec.get("id") or self._new_id(),
            x=_coalesce(spec.get("x"), 0),
            y=_coalesce(spec.get("y"), 0),
            width=_coalesce(spec.get("width"), 100),
            height=_coalesce(spec.get("height"), 100),
            strokeColor=spec.get("strokeColor") or _DEFAULTS["strokeColor"],
            backgroundColor=spec.get("backgroundColor") or _DEFAULTS["backgroundColor"],
            fillStyle=spec.get("fillStyle") or _DEFAULTS["fillStyle"],
            roundness=copy.deepcopy(spec.get("roundness")) or None,
            opacity=_coalesce(spec.get("opacity"), _DEFAULTS["opacity"]),
        )
        return obj

    def _text(self, spec: RawElementSpec, base: Dict[str, Any]) -> CanonicalSceneObject:
        text = spec.get("text") or ""
        font_size = spec.get("fontSize") or DEFAULT_FONT_SIZE
        base.update(
            type="text",
            text=text,
            fontSize=font_size,
            fontFamily=spec.get("fontFamily") or DEFAULT_FONT_FAMILY,
            textAlign="center",
            verticalAlign="middle",
            # An empty string still gets a clickable five-character box.
            width=spec.get("width") or (len(text) or 5) * font_size * 0.6,
            height=spec.get("height") or font_size * 1.5,
            baseline=font_size,
            containerId=None,
            originalText=text,
            autoResize=True,
            lineHeight=1.25,
        )
        return base

    def _linear(self, spec: RawElementSpec, base: Dict[str, Any]) -> CanonicalSceneObject:
        kind = spec["type"]
        points = spec.get("points") or [[0, 0], [spec.get("width") or 100, 0]]
        base.update(
            type=kind,
            points=copy.deepcopy(points),
            startArrowhead=spec.get("startArrowhead") or None,
            endArrowhead=(spec.get("endArrowhead") or "arrow") if kind == "arrow" else None,
            startBinding=copy.deepcopy(spec.get("startBinding")) or None,
            endBinding=copy.deepcopy(spec.get("endBinding")) or None,
            lastCommittedPoint=None,
            elbowed=False,
        )
        return base

    def _shape(self, spec: RawElementSpec, base: Dict[str, Any]) -> List[CanonicalSceneObject]:
        shape = base
        shape["type"] = spec.get("type") or "rectangle"

        label = spec.get("label")
        if label is None or label == "":
            return [shape]
        if isinstance(label, str):
            label = {"text": label}
        elif not isinstance(label, dict):
            label = {}

        text_id = f"{shape['id']}-label"
        shape["boundElements"] = [{"type": "text", "id": text_id}]
        return [shape, self._bound_label(shape, label, text_id)]

    def _bound_label(self, shape: CanonicalSceneObject, label: Dict[str, Any],
                     text_id: str) -> CanonicalSceneObject:
        font_size = label.get("fontSize") or DEFAULT_FONT_SIZE
        text = label.get("text") or ""
        obj = self._defaults()
        obj.update(
            type="text",
            id=text_id,
            x=shape["x"] + LABEL_INSET,
            y=shape["y"] + shape["height"] / 2 - font_size / 2,
            width=shape["width"] - 2 * LABEL_INSET,
            height=font_size,
            text=text,
            fontSize=font_size,
            fontFamily=DEFAULT_FONT_FAMILY,
            textAlign="center",
            verticalAlign="middle",
            containerId=shape["id"],
            originalText=text,
            autoResize=True,
            lineHeight=1.25,
            baseline=font_size,
        )
        return obj


def _coalesce(value: Any, default: Any) -> Any:
    return default if value is None else value


def convert_elements(specs: Iterable[RawElementSpec],
                     canonicalizer: Optional[ElementCanonicalizer] = None) -> List[CanonicalSceneObject]:
    """Convenience wrapper: canonicalize a whole drawing batch."""
    return (canonicalizer or ElementCanonicalizer()).convert_elements(specs)
