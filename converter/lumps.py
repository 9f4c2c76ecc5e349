#!/usr/bin/env python3
"""
Lump classification for a WAD/PK3 archive.

One left-to-right pass over the directory assigns every entry to a category.
Rule order is the RULES table below; the first rule whose predicate matches
handles the entry. Delimited ranges (S_START..S_END, F_START..F_END and their
numbered variants) are tracked with an explicit stack of pending end markers
so nested ranges close in the right order.

Notes:
- Patch ranges (P_START..P_END) are not consumed as ranges. Patches are
  discovered through PNAMES instead, so their contents fall through to the
  regular rules.
- Map blocks are consumed only to move past their geometry lumps; the
  geometry itself is not decoded.
"""

from __future__ import annotations

import os
import re
import struct
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from envutil import eprint, fallback_palette_path
from pictures import Palette, Picture, decode_flat, decode_picture, is_png, parse_palettes
from wadfile import Archive

RANGE_MARKERS: Dict[str, str] = {
    "S_START": "S_END",
    "F_START": "F_END",
    "F1_START": "F1_END",
    "F2_START": "F2_END",
    "P_START": "P_END",
    "P1_START": "P1_END",
    "P2_START": "P2_END",
    "P3_START": "P3_END",
    "SS_START": "SS_END",
    "PP_START": "PP_END",
    "FF_START": "F_END",
}
# FF_END closes a flat range wherever F_END does.
END_ALIASES: Dict[str, str] = {"FF_END": "F_END"}
END_MARKERS = set(RANGE_MARKERS.values()) | set(END_ALIASES)

# Canonical order of the lumps following a map marker.
MAP_LUMPS = (
    "THINGS",
    "LINEDEFS",
    "SIDEDEFS",
    "VERTEXES",
    "SEGS",
    "SSECTORS",
    "NODES",
    "SECTORS",
    "REJECT",
    "BLOCKMAP",
)

MAP_MARKER_RE = re.compile(r"^(E[1-4]M[1-9]|MAP(0[1-9]|[1-9][0-9]))$")
DEMO_RE = re.compile(r"^DEMO[0-9]$")
TEXTURE_RE = re.compile(r"^TEXTURE[12]$")

# Music/sound formats are kept out of the picture decoder.
UNPARSED_NAMES = {"GENMIDI", "DMXGUS"}
UNPARSED_PREFIXES = ("DP", "DS", "D_")

TEXTURE_HEADER_FMT = "<8sihhih"
TEXTURE_HEADER_SIZE = struct.calcsize(TEXTURE_HEADER_FMT)  # 22
TEXTURE_PATCH_FMT = "<hhhhh"
TEXTURE_PATCH_SIZE = struct.calcsize(TEXTURE_PATCH_FMT)  # 10

ENDOOM_COLS = 80
ENDOOM_ROWS = 25

PICTURE_CATEGORIES = ("sprites", "flats", "patches", "graphics")


@dataclass(frozen=True)
class TexturePatch:
    originx: int
    originy: int
    patch: int
    stepdir: int
    colormap: int


@dataclass
class TextureDef:
    name: str
    masked: int
    width: int
    height: int
    columndirectory: int
    patches: List[TexturePatch] = field(default_factory=list)


@dataclass(frozen=True)
class EndoomCell:
    char: str
    fg: int
    bg: int
    blink: bool


@dataclass(frozen=True)
class MapBlock:
    name: str
    index: int
    lumps: Tuple[str, ...]


@dataclass
class ClassifiedLumps:
    palettes: List[Palette] = field(default_factory=list)
    colormaps: List[bytes] = field(default_factory=list)
    endoom: Optional[List[List[EndoomCell]]] = None
    patch_names: List[str] = field(default_factory=list)
    textures: List[TextureDef] = field(default_factory=list)
    maps: Dict[str, MapBlock] = field(default_factory=dict)
    flats: Dict[str, Picture] = field(default_factory=dict)
    sprites: Dict[str, Picture] = field(default_factory=dict)
    patches: Dict[str, Picture] = field(default_factory=dict)
    graphics: Dict[str, Picture] = field(default_factory=dict)
    pngs: Dict[str, bytes] = field(default_factory=dict)
    unknown: Dict[str, bytes] = field(default_factory=dict)

    def picture(self, name: str) -> Optional[Picture]:
        for category in PICTURE_CATEGORIES:
            pic = getattr(self, category).get(name)
            if pic is not None:
                return pic
        return None

    def summary(self) -> Dict[str, object]:
        return {
            "palettes": len(self.palettes),
            "colormaps": len(self.colormaps),
            "endoom": self.endoom is not None,
            "patch_names": len(self.patch_names),
            "textures": [t.name for t in self.textures],
            "maps": {name: list(b.lumps) for name, b in self.maps.items()},
            "flats": list(self.flats),
            "sprites": list(self.sprites),
            "patches": list(self.patches),
            "graphics": list(self.graphics),
            "pngs": list(self.pngs),
            "unknown": list(self.unknown),
        }


# -----------------------------
# Lump decoders
# -----------------------------

def parse_colormaps(lump: bytes) -> List[bytes]:
    return [bytes(lump[off : off + 256]) for off in range(0, len(lump), 256)]


def parse_patch_names(lump: bytes) -> List[str]:
    if len(lump) < 4:
        return []
    count = struct.unpack_from("<i", lump, 0)[0]
    names: List[str] = []
    for i in range(max(0, count)):
        off = 4 + 8 * i
        if off + 8 > len(lump):
            break
        raw = lump[off : off + 8]
        names.append(raw.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip().upper())
    return names


def parse_textures(lump: bytes) -> List[TextureDef]:
    """Decode a TEXTURE1/TEXTURE2 directory; truncated entries end the list."""
    if len(lump) < 4:
        return []
    count = struct.unpack_from("<i", lump, 0)[0]
    out: List[TextureDef] = []
    for i in range(max(0, count)):
        ptr = 4 + 4 * i
        if ptr + 4 > len(lump):
            break
        off = struct.unpack_from("<i", lump, ptr)[0]
        if off < 0 or off + TEXTURE_HEADER_SIZE > len(lump):
            break
        raw_name, masked, width, height, coldir, patchcount = struct.unpack_from(TEXTURE_HEADER_FMT, lump, off)
        tex = TextureDef(
            name=raw_name.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip(),
            masked=masked,
            width=width,
            height=height,
            columndirectory=coldir,
        )
        p = off + TEXTURE_HEADER_SIZE
        for _ in range(max(0, patchcount)):
            if p + TEXTURE_PATCH_SIZE > len(lump):
                break
            tex.patches.append(TexturePatch(*struct.unpack_from(TEXTURE_PATCH_FMT, lump, p)))
            p += TEXTURE_PATCH_SIZE
        out.append(tex)
    return out


def parse_endoom(lump: bytes) -> List[List[EndoomCell]]:
    """Decode the 80x25 text-mode screen: (char, attribute) byte pairs."""
    rows: List[List[EndoomCell]] = []
    for row in range(ENDOOM_ROWS):
        cells: List[EndoomCell] = []
        for col in range(ENDOOM_COLS):
            i = (row * ENDOOM_COLS + col) * 2
            if i + 1 >= len(lump):
                code, attr = 0, 0
            else:
                code, attr = lump[i], lump[i + 1]
            char = bytes([code]).decode("cp437") if code else " "
            cells.append(EndoomCell(char=char, fg=attr & 0x0F, bg=(attr >> 4) & 0x07, blink=bool(attr & 0x80)))
        rows.append(cells)
    return rows


_ANSI_BG = ["40", "44", "42", "46", "41", "45", "48;5;130", "47"]
_ANSI_FG = ["30", "34", "32", "36", "31", "35", "38;5;130", "37", "90", "94", "92", "96", "91", "95", "33", "97"]


def endoom_to_ansi(endoom: List[List[EndoomCell]]) -> str:
    lines = []
    for row in endoom:
        parts = []
        for c in row:
            blink = ";5" if c.blink else ""
            parts.append(f"\x1b[{_ANSI_BG[c.bg]};{_ANSI_FG[c.fg]}{blink}m{c.char}")
        lines.append("".join(parts) + "\x1b[0m")
    return "\n".join(lines)


# -----------------------------
# Classifier
# -----------------------------

Rule = Tuple[str, Callable[["LumpClassifier", str], bool], Callable[["LumpClassifier", int, str], int]]


def _is_unparsed(name: str) -> bool:
    return name in UNPARSED_NAMES or name.startswith(UNPARSED_PREFIXES)


class LumpClassifier:
    """Walks an archive directory once and fills a ClassifiedLumps.

    `classify()` returns the result; each lump name is classified at most
    once (later entries with an already classified name are skipped).
    """

    def __init__(self, archive: Archive, *, show_progress: bool = False, fallback_palette: Optional[str] = None) -> None:
        self.archive = archive
        self.show_progress = show_progress
        self.fallback_palette = fallback_palette if fallback_palette is not None else fallback_palette_path()
        self.result = ClassifiedLumps()
        self.classified: set[str] = set()
        self._patch_name_set: set[str] = set()
        # (end marker, category) of every open delimited range, innermost last.
        self.range_stack: List[Tuple[str, str]] = []

    # Rule table: (label, predicate, handler). Handlers return the next index.
    RULES: List[Rule] = [
        ("skip", lambda self, n: n in self.classified or n in MAP_LUMPS or n in END_MARKERS, lambda self, i, n: i + 1),
        ("palette", lambda self, n: n == "PLAYPAL", lambda self, i, n: self._read_palettes(i, n)),
        ("colormap", lambda self, n: n == "COLORMAP", lambda self, i, n: self._read_colormaps(i, n)),
        ("endoom", lambda self, n: n == "ENDOOM", lambda self, i, n: self._read_endoom(i, n)),
        ("patch_names", lambda self, n: n == "PNAMES", lambda self, i, n: self._read_patch_names(i, n)),
        ("unparsed", lambda self, n: _is_unparsed(n), lambda self, i, n: i + 1),
        ("range", lambda self, n: n in RANGE_MARKERS, lambda self, i, n: self._open_range(i, n)),
        ("patch", lambda self, n: n in self._patch_name_set, lambda self, i, n: self._read_patch(i, n)),
        ("map", lambda self, n: bool(MAP_MARKER_RE.match(n)), lambda self, i, n: self._read_map(i, n)),
        ("demo", lambda self, n: bool(DEMO_RE.match(n)), lambda self, i, n: i + 1),
        ("textures", lambda self, n: bool(TEXTURE_RE.match(n)), lambda self, i, n: self._read_textures(i, n)),
        ("other", lambda self, n: True, lambda self, i, n: self._read_other(i, n)),
    ]

    def rule_for(self, name: str) -> str:
        """Label of the rule that would handle *name* outside any range."""
        for label, pred, _ in self.RULES:
            if pred(self, name):
                return label
        return "other"

    def classify(self) -> ClassifiedLumps:
        i = 0
        count = len(self.archive)
        while i < count:
            name = self.archive.entries[i].name
            if self.range_stack:
                i = self._read_range_entry(i, name)
                continue
            for _, pred, handler in self.RULES:
                if pred(self, name):
                    i = handler(self, i, name)
                    break

        if self.range_stack:
            eprint(f"⚠️ {self.archive.source}: unterminated range(s) {[e for e, _ in self.range_stack]}")
            self.range_stack.clear()

        if not self.result.palettes:
            self._load_fallback_palette()
        return self.result

    def _mark(self, category: str, name: str) -> None:
        self.classified.add(name)
        if self.show_progress:
            print(f"{category}: {name}")

    # -- ranges

    def _open_range(self, i: int, name: str) -> int:
        category = _range_category(name)
        if category == "patches":
            # Patch contents are picked up through PNAMES.
            return i + 1
        self.range_stack.append((RANGE_MARKERS[name], category))
        return i + 1

    def _read_range_entry(self, i: int, name: str) -> int:
        end_marker, category = self.range_stack[-1]
        if END_ALIASES.get(name, name) == end_marker:
            self.range_stack.pop()
            return i + 1
        if name in RANGE_MARKERS:
            nested = _range_category(name)
            if nested != "patches":
                self.range_stack.append((RANGE_MARKERS[name], nested))
            return i + 1
        if name in END_MARKERS or name in self.classified:
            return i + 1

        _, lump = self.archive.by_index(i)
        if category == "flats":
            self.result.flats[name] = decode_flat(lump)
        else:
            pic = decode_picture(lump)
            if pic is None:
                self.result.unknown[name] = lump
                self._mark("unknown", name)
                return i + 1
            getattr(self.result, category)[name] = pic
        self._mark(category, name)
        return i + 1

    # -- system lumps

    def _read_palettes(self, i: int, name: str) -> int:
        _, lump = self.archive.by_index(i)
        self.result.palettes.extend(parse_palettes(lump))
        self._mark("palettes", name)
        return i + 1

    def _read_colormaps(self, i: int, name: str) -> int:
        _, lump = self.archive.by_index(i)
        self.result.colormaps.extend(parse_colormaps(lump))
        self._mark("colormaps", name)
        return i + 1

    def _read_endoom(self, i: int, name: str) -> int:
        _, lump = self.archive.by_index(i)
        self.result.endoom = parse_endoom(lump)
        self._mark("endoom", name)
        return i + 1

    def _read_patch_names(self, i: int, name: str) -> int:
        _, lump = self.archive.by_index(i)
        names = parse_patch_names(lump)
        self.result.patch_names.extend(names)
        self._patch_name_set.update(names)
        self._mark("patch_names", name)
        return i + 1

    def _read_patch(self, i: int, name: str) -> int:
        _, lump = self.archive.by_index(i)
        pic = decode_picture(lump)
        if pic is None:
            self.result.unknown[name] = lump
            self._mark("unknown", name)
        else:
            self.result.patches[name] = pic
            self._mark("patches", name)
        return i + 1

    def _read_map(self, i: int, name: str) -> int:
        consumed: List[str] = []
        j = i + 1
        while j < len(self.archive) and len(consumed) < len(MAP_LUMPS):
            lump_name = self.archive.entries[j].name
            if lump_name not in MAP_LUMPS:
                break
            consumed.append(lump_name)
            j += 1
        self.result.maps[name] = MapBlock(name=name, index=i, lumps=tuple(consumed))
        self._mark("maps", name)
        return j

    def _read_textures(self, i: int, name: str) -> int:
        _, lump = self.archive.by_index(i)
        self.result.textures.extend(parse_textures(lump))
        self._mark("textures", name)
        return i + 1

    def _read_other(self, i: int, name: str) -> int:
        _, lump = self.archive.by_index(i)
        if is_png(lump):
            self.result.pngs[name] = lump
            self._mark("pngs", name)
            return i + 1
        pic = decode_picture(lump)
        if pic is not None:
            self.result.graphics[name] = pic
            self._mark("graphics", name)
        else:
            self.result.unknown[name] = lump
            self._mark("unknown", name)
        return i + 1

    def _load_fallback_palette(self) -> None:
        path = self.fallback_palette
        if not path or not os.path.exists(path):
            return
        with open(path, "rb") as f:
            self.result.palettes.extend(parse_palettes(f.read()))
        if self.show_progress:
            print(f"palettes: {path} (fallback)")


def _range_category(marker: str) -> str:
    return {"F": "flats", "S": "sprites", "P": "patches"}[marker[0]]


def classify_archive(archive: Archive, *, show_progress: bool = False, fallback_palette: Optional[str] = None) -> ClassifiedLumps:
    return LumpClassifier(archive, show_progress=show_progress, fallback_palette=fallback_palette).classify()
