#!/usr/bin/env python3
"""
Intermediate representation of an id24 interlevel screen and its builder.

A parsed intermission script becomes a document with up to three layers:

1) one animation layer holding every PIC/ANIMATION (per-anim conditions)
2) a splat layer: one anim per SPOTS entry, shown once the map is visited
3) an arrow layer: one blinking pointer per SPOTS entry, on the current map

The spot layers only show while entering the next map. Frames and condition
lists are interned through a FragmentPool so identical fragments are shared
objects; the serializer relies on that to write each one compactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from envutil import eprint, metadata_application, metadata_author
from intermission import (
    EMPTY_PATCH,
    GUARD_ENTERING,
    GUARD_LEAVING,
    GUARD_VISITED,
    Animation,
    IntermissionScript,
)
from mapinfo import MapInfo

INTERLEVEL_VERSION = "1.0.0"

CONDITION_CURRENT = 2
CONDITION_VISITED = 3
CONDITION_LEAVING = 6
CONDITION_ENTERING = 7

DURATION_INFINITE = 1
DURATION_FIXED = 2

TICRATE = 35
SCREEN_WIDTH = 320
# Pointers are assumed 60px wide like Doom's; spots within that distance of
# the right edge use the second pointer.
POINTER_WIDTH = 60
ARROW_ON_SECONDS = 0.667
ARROW_OFF_SECONDS = 0.333


@dataclass(frozen=True)
class Frame:
    image: str
    type: int = DURATION_INFINITE
    duration: float = 0.0
    maxduration: int = 0


@dataclass(frozen=True)
class Condition:
    condition: int
    param: int = 0


@dataclass(frozen=True)
class Anim:
    x: int
    y: int
    frames: Tuple[Frame, ...]
    conditions: Optional[Tuple[Condition, ...]] = None


@dataclass(frozen=True)
class Layer:
    anims: Tuple[Anim, ...]
    conditions: Optional[Tuple[Condition, ...]] = None


@dataclass
class Interlevel:
    name: str
    background: Optional[str]
    music: Optional[str]
    layers: Optional[List[Layer]]
    metadata: Dict[str, str] = field(default_factory=dict)

    def images(self) -> List[str]:
        """Every image the document references, background first, in order."""
        out: List[str] = []
        if self.background:
            out.append(self.background)
        for layer in self.layers or []:
            for anim in layer.anims:
                for frame in anim.frames:
                    out.append(frame.image)
        return list(dict.fromkeys(out))


class FragmentPool:
    """Interns frames and condition lists so equal fragments are one object."""

    def __init__(self) -> None:
        self._frames: Dict[Frame, Frame] = {}
        self._conditions: Dict[Tuple[Condition, ...], Tuple[Condition, ...]] = {}

    def frame(self, image: str, type: int = DURATION_INFINITE, duration: float = 0.0) -> Frame:
        f = Frame(image=image, type=type, duration=float(duration))
        return self._frames.setdefault(f, f)

    def conditions(self, *conds: Tuple[int, ...]) -> Optional[Tuple[Condition, ...]]:
        if not conds:
            return None
        key = tuple(Condition(*c) for c in conds)
        return self._conditions.setdefault(key, key)

    def __len__(self) -> int:
        return len(self._frames) + len(self._conditions)


def tics_to_seconds(tics: int) -> float:
    return round(tics / TICRATE, 2)


def pointer_for(x: int, pointers: Sequence[str]) -> str:
    return pointers[1] if x > SCREEN_WIDTH - POINTER_WIDTH else pointers[0]


def anim_frames(anim: Animation, pool: FragmentPool) -> Tuple[Frame, ...]:
    """All frames but the last are fixed; the last holds forever for ONCE and PIC."""
    duration = tics_to_seconds(anim.speed or 0)
    *head, last = anim.patches
    frames = [pool.frame(p, DURATION_FIXED, duration) for p in head]
    if anim.once or anim.speed is None:
        frames.append(pool.frame(last))
    else:
        frames.append(pool.frame(last, DURATION_FIXED, duration))
    return tuple(frames)


def arrow_frames(x: int, pointers: Sequence[str], pool: FragmentPool) -> Tuple[Frame, ...]:
    return (
        pool.frame(pointer_for(x, pointers), DURATION_FIXED, ARROW_ON_SECONDS),
        pool.frame(EMPTY_PATCH, DURATION_FIXED, ARROW_OFF_SECONDS),
    )


class InterlevelBuilder:
    def __init__(self, mapinfo: MapInfo, *, pool: Optional[FragmentPool] = None) -> None:
        self.mapinfo = mapinfo
        self.map_nums = mapinfo.ordinals()
        self.records = mapinfo.by_map()
        self.pool = pool or FragmentPool()

    def _map_num(self, script: str, token: str) -> Optional[int]:
        num = self.map_nums.get(token)
        if num is None:
            eprint(f"⚠️ {script}: map {token} is not declared in MAPINFO; skipping")
        return num

    def _anim_conditions(self, script: str, anim: Animation):
        """Return (ok, conditions) for an animation's guard."""
        guard = anim.guard
        if guard is None:
            return True, None
        num = self._map_num(script, guard.map)
        if num is None:
            return False, None
        if guard.kind == GUARD_ENTERING:
            return True, self.pool.conditions((CONDITION_CURRENT, num), (CONDITION_ENTERING,))
        if guard.kind == GUARD_LEAVING:
            return True, self.pool.conditions((CONDITION_CURRENT, num), (CONDITION_LEAVING,))
        if guard.kind == GUARD_VISITED:
            return True, self.pool.conditions((CONDITION_VISITED, num))
        raise ValueError(f"unknown guard kind: {guard.kind!r}")

    def animation_layer(self, script: IntermissionScript) -> Layer:
        anims: List[Anim] = []
        for anim in script.animations:
            if not anim.patches:
                eprint(f"⚠️ {script.name}: animation at {anim.x},{anim.y} has no frames; skipping")
                continue
            ok, conditions = self._anim_conditions(script.name, anim)
            if not ok:
                continue
            anims.append(Anim(anim.x, anim.y, anim_frames(anim, self.pool), conditions))
        return Layer(anims=tuple(anims))

    def spot_layers(self, script: IntermissionScript) -> Tuple[Layer, Layer]:
        splats: List[Anim] = []
        arrows: List[Anim] = []
        for token, (x, y) in script.spots.items():
            num = self._map_num(script.name, token)
            if num is None:
                continue
            rec = self.records[token]
            splat_cond = self.pool.conditions((CONDITION_VISITED, num))
            arrow_cond = self.pool.conditions((CONDITION_CURRENT, num))

            # ENTERPIC/EXITPIC overrides cover the whole screen.
            if rec.enterpic:
                splats.append(Anim(0, 0, (self.pool.frame(rec.enterpic),), splat_cond))
            else:
                splats.append(Anim(x, y, (self.pool.frame(script.splat_image),), splat_cond))

            if rec.exitpic:
                arrows.append(Anim(0, 0, (self.pool.frame(rec.exitpic),), arrow_cond))
            else:
                arrows.append(Anim(x, y, arrow_frames(x, script.pointer_images, self.pool), arrow_cond))

        entering = self.pool.conditions((CONDITION_ENTERING,))
        return Layer(tuple(splats), entering), Layer(tuple(arrows), entering)

    def build(
        self,
        script: IntermissionScript,
        *,
        title: Optional[str] = None,
        author: Optional[str] = None,
        music: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> Interlevel:
        layers: Optional[List[Layer]] = None
        if script.spots or script.animations:
            layers = []
            if script.animations:
                layers.append(self.animation_layer(script))
            if script.spots:
                layers.extend(self.spot_layers(script))

        return Interlevel(
            name=script.name,
            background=script.background,
            music=music,
            layers=layers,
            metadata=build_metadata(title=title, author=author, timestamp=timestamp),
        )


def build_metadata(*, title: Optional[str], author: Optional[str], timestamp: Optional[str] = None) -> Dict[str, str]:
    comment = f"Intermission screen for {title or 'this WAD'}."
    if author:
        comment += f" Ported from GZDoom mod made by {author}."
    return {
        "author": metadata_author(),
        "application": metadata_application(),
        "timestamp": timestamp or datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds"),
        "comment": comment,
    }
