#!/usr/bin/env python3
"""Parser for GZDoom intermission scripts (the `$NAME` enterpic/exitpic lumps).

Supported directives: BACKGROUND, SPLAT, POINTER, SPOTS { ... }, and PIC /
ANIMATION drawables with at most one IFENTERING / IFLEAVING / IFVISITED /
IFTRAVELLING guard. IFNOT* guards and anything else are ignored because the
interlevel format has no way to express them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

EMPTY_PATCH = "TNT1A0"
DEFAULT_SPLAT = "WISPLAT"
DEFAULT_POINTERS = ("WIURH0", "WIURH1")

GUARD_ENTERING = "entering"
GUARD_LEAVING = "leaving"
GUARD_VISITED = "visited"

_BACKGROUND_RE = re.compile(r"^BACKGROUND\s+(?P<bg>\w{1,8})$")
_SPLAT_RE = re.compile(r"^SPLAT\s+(?P<splat>\w{1,8})$")
_POINTER_RE = re.compile(r"^POINTER\s+(?P<p1>\w{1,8})\s+(?P<p2>\w{1,8})$")
_SPOTS_RE = re.compile(r"^SPOTS(?:\s*\{)?$")

_DRAWABLE_RE = re.compile(
    r"""
    ^(
        (IFENTERING\s+(?P<entering>\w{1,8})\s+)
        |
        (IFLEAVING\s+(?P<leaving>\w{1,8})\s+)
        |
        (IFVISITED\s+(?P<visited>\w{1,8})\s+)
        |
        (IFTRAVELLING\s+(?P<from>\w{1,8})\s+(?P<to>\w{1,8})\s+)
    )?
    (
        (PIC\s+(?P<pic_x>\d{1,3})\s+(?P<pic_y>\d{1,3})\s+(?P<patch>\w{1,8}))
        |
        (ANIMATION\s+(?P<anim_x>\d{1,3})\s+(?P<anim_y>\d{1,3})\s+(?P<speed>\d{1,2})(?P<once>\s+ONCE)?(?P<brace>\s*\{)?)
    )$
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Guard:
    kind: str
    map: str


@dataclass
class Animation:
    x: int
    y: int
    guard: Optional[Guard] = None
    once: bool = False
    speed: Optional[int] = None
    patches: List[str] = field(default_factory=list)


@dataclass
class IntermissionScript:
    name: str
    background: Optional[str] = None
    splat: Optional[str] = None
    pointers: Optional[Tuple[str, str]] = None
    spots: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    animations: List[Animation] = field(default_factory=list)

    @property
    def splat_image(self) -> str:
        return self.splat or DEFAULT_SPLAT

    @property
    def pointer_images(self) -> Tuple[str, str]:
        return self.pointers or DEFAULT_POINTERS


def _read_block(lines: List[str], i: int, brace_on_header: bool) -> Tuple[List[str], int]:
    """Collect lines of a `{ ... }` block whose header is at lines[i].

    Returns (body lines, index of the line after the closing brace). A block
    without an opening brace yields no body.
    """
    j = i + 1
    if not brace_on_header:
        if j >= len(lines) or lines[j] != "{":
            return [], i + 1
        j += 1
    body: List[str] = []
    while j < len(lines) and lines[j] != "}":
        if lines[j]:
            body.append(lines[j])
        j += 1
    return body, j + 1


def _guard_from_match(m: "re.Match[str]") -> Optional[Guard]:
    # IFTRAVELLING's source map is dropped: the tally screen cannot tell it apart.
    entering = m.group("entering") or m.group("to")
    if entering:
        return Guard(GUARD_ENTERING, entering)
    if m.group("leaving"):
        return Guard(GUARD_LEAVING, m.group("leaving"))
    if m.group("visited"):
        return Guard(GUARD_VISITED, m.group("visited"))
    return None


def parse_intermission_script(name: str, text: Optional[str]) -> IntermissionScript:
    script = IntermissionScript(name=name)
    if not text:
        return script

    lines = [s.strip() for s in text.upper().split("\n")]
    i = 0
    while i < len(lines):
        line = lines[i]

        m = _BACKGROUND_RE.match(line)
        if m:
            script.background = m.group("bg")
            i += 1
            continue

        m = _SPLAT_RE.match(line)
        if m:
            script.splat = m.group("splat")
            i += 1
            continue

        m = _POINTER_RE.match(line)
        if m:
            script.pointers = (m.group("p1"), m.group("p2"))
            i += 1
            continue

        if _SPOTS_RE.match(line):
            body, i = _read_block(lines, i, brace_on_header=line.endswith("{"))
            for spot in body:
                parts = spot.split()
                if len(parts) != 3 or not parts[1].lstrip("-").isdigit() or not parts[2].lstrip("-").isdigit():
                    continue
                script.spots[parts[0]] = (int(parts[1]), int(parts[2]))
            continue

        m = _DRAWABLE_RE.match(line)
        if not m:
            i += 1
            continue

        anim = Animation(x=0, y=0, guard=_guard_from_match(m))
        if m.group("pic_x") is None:
            anim.x = int(m.group("anim_x"))
            anim.y = int(m.group("anim_y"))
            anim.once = m.group("once") is not None
            anim.speed = int(m.group("speed"))
            body, i = _read_block(lines, i, brace_on_header=m.group("brace") is not None)
            anim.patches = [EMPTY_PATCH if p == "BLANK" else p for p in body]
        else:
            anim.x = int(m.group("pic_x"))
            anim.y = int(m.group("pic_y"))
            anim.patches = [m.group("patch")]
            i += 1

        script.animations.append(anim)
    return script
