#!/usr/bin/env python3
"""Extract per-map properties from a MAPINFO/ZMAPINFO text lump.

Only the keys needed for the UMAPINFO/interlevel port are read:
titlepatch, enterpic, exitpic, next, secretnext, music.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

ORDER_DECLARATION = "declaration"
ORDER_SORTED = "sorted"

PROPS_TO_READ = ("titlepatch", "enterpic", "exitpic", "next", "secretnext", "music")

_MAP_BLOCK_RE = re.compile(r"^[ \t]*MAP[ \t]+(?P<map>\w{1,8})[^{]*\{(?P<props>[^}]*)\}", re.IGNORECASE | re.MULTILINE)
_PROP_RE = re.compile(r"^[ \t]*(?P<key>\w+)[ \t]*=[ \t]*(?P<value>[^\r\n]+)", re.MULTILINE)
_ENDPIC_RE = re.compile(r'^endpic,\s*"(?P<endpic>\w{1,8})"$', re.IGNORECASE)


@dataclass
class MapInfoRecord:
    ordinal: int
    map: str
    levelpic: Optional[str] = None
    enteranim: Optional[str] = None
    exitanim: Optional[str] = None
    enterpic: Optional[str] = None
    exitpic: Optional[str] = None
    next: Optional[str] = None
    secretnext: Optional[str] = None
    music: Optional[str] = None
    endpic: Optional[str] = None


@dataclass
class MapInfo:
    records: List[MapInfoRecord] = field(default_factory=list)
    endpic: Optional[str] = None

    def ordinals(self) -> Dict[str, int]:
        return {r.map: r.ordinal for r in self.records}

    def by_map(self) -> Dict[str, MapInfoRecord]:
        return {r.map: r for r in self.records}

    def script_names(self) -> List[str]:
        """Unique intermission script lumps referenced by enter/exit anims, sorted."""
        names = set()
        for r in self.records:
            for v in (r.enteranim, r.exitanim):
                if v:
                    names.add(v)
        return sorted(names)


def strip_mapinfo_comments(text: str) -> str:
    # Remove /* ... */ blocks first, then // line comments.
    text = re.sub(r"/\*.*?\*/", "", text, flags=re.DOTALL)
    text = re.sub(r"//.*?$", "", text, flags=re.MULTILINE)
    return text


def unquote(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    value = value.strip()
    inner = value.strip('"')
    return inner if f'"{inner}"' == value else value


def _read_raw_blocks(text: str) -> List[Dict[str, Optional[str]]]:
    blocks = []
    for m in _MAP_BLOCK_RE.finditer(strip_mapinfo_comments(text)):
        props: Dict[str, str] = {}
        for pm in _PROP_RE.finditer(m.group("props")):
            props[pm.group("key").lower()] = pm.group("value")
        raw: Dict[str, Optional[str]] = {"map": m.group("map").upper()}
        for key in PROPS_TO_READ:
            raw[key] = unquote(props.get(key))
        blocks.append(raw)
    return blocks


def parse_mapinfo(text: Optional[str], *, ordering: str = ORDER_DECLARATION) -> MapInfo:
    """Parse MAP blocks into 1-based ordinal records.

    ordering=declaration numbers maps in the order they appear; ordering=sorted
    numbers them by map token. Implicit next-map detection follows the same
    numbering.
    """
    if ordering not in (ORDER_DECLARATION, ORDER_SORTED):
        raise ValueError(f"unknown map ordering: {ordering!r}")
    info = MapInfo()
    if not text:
        return info

    blocks = _read_raw_blocks(text)
    if ordering == ORDER_SORTED:
        blocks.sort(key=lambda b: b["map"])

    for idx, raw in enumerate(blocks):
        rec = MapInfoRecord(ordinal=idx + 1, map=raw["map"], levelpic=raw["titlepatch"])

        for pic_key, anim_key in (("enterpic", "enteranim"), ("exitpic", "exitanim")):
            v = raw[pic_key]
            if v and v.startswith("$"):
                setattr(rec, anim_key, v[1:])
            else:
                setattr(rec, pic_key, v)

        nxt = raw["next"]
        m = _ENDPIC_RE.match(nxt) if nxt else None
        if m:
            rec.endpic = m.group("endpic")
            info.endpic = rec.endpic
        elif not (nxt or "").startswith("EndGame"):
            # Map tokens are case-insensitive; records carry them upper-cased.
            nxt = nxt.upper() if nxt else None
            following = blocks[idx + 1]["map"] if idx + 1 < len(blocks) else None
            if nxt and nxt != following:
                rec.next = nxt
            secret = raw["secretnext"].upper() if raw["secretnext"] else None
            if secret and secret != nxt:
                rec.secretnext = secret

        if raw["music"]:
            rec.music = raw["music"]

        info.records.append(rec)
    return info
