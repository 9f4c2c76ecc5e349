#!/usr/bin/env python3
"""Output writers: UMAPINFO text, CREDITS text and interlevel JSON."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from interlevel import INTERLEVEL_VERSION, Anim, Condition, Frame, Interlevel, Layer
from mapinfo import MapInfo

INDENT = "  "


def umapinfo_text(mapinfo: MapInfo) -> str:
    blocks: List[str] = []
    for rec in sorted(mapinfo.records, key=lambda r: r.ordinal):
        lines = [f"MAP {rec.map}", "{"]
        if rec.endpic:
            lines.append(f'  endpic = "{rec.endpic}"')
        if rec.next:
            lines.append(f'  next = "{rec.next}"')
        if rec.secretnext:
            lines.append(f'  nextsecret = "{rec.secretnext}"')
        if rec.music:
            lines.append(f'  music = "{rec.music}"')
        lines.append(f'  levelpic = "{rec.levelpic or ""}"')
        lines.append(f'  enteranim = "{rec.enteranim or ""}"')
        lines.append(f'  exitanim = "{rec.exitanim or ""}"')
        lines.append("}")
        blocks.append("\n".join(lines) + "\n")
    return "\n".join(blocks)


def credits_text(author: Optional[str]) -> Optional[str]:
    if not author:
        return None
    return f"{author} - original GZDoom intermission screen mod, including all graphics and animations."


def _conditions_tree(conds: Optional[tuple]) -> Optional[tuple]:
    return conds if conds else None


def _anim_tree(anim: Anim) -> Dict[str, Any]:
    return {
        "x": anim.x,
        "y": anim.y,
        "frames": list(anim.frames),
        "conditions": _conditions_tree(anim.conditions),
    }


def _layer_tree(layer: Layer) -> Dict[str, Any]:
    return {
        "anims": [_anim_tree(a) for a in layer.anims],
        "conditions": _conditions_tree(layer.conditions),
    }


def interlevel_tree(il: Interlevel) -> Dict[str, Any]:
    """Document tree; frames and condition tuples are left as IR fragments."""
    return {
        "type": "interlevel",
        "version": INTERLEVEL_VERSION,
        "metadata": dict(il.metadata),
        "data": {
            "music": il.music,
            "backgroundimage": il.background,
            "layers": None if il.layers is None else [_layer_tree(layer) for layer in il.layers],
        },
    }


def _plain(value: Any) -> Any:
    if isinstance(value, Frame):
        return asdict(value)
    if isinstance(value, tuple) and value and isinstance(value[0], Condition):
        return [asdict(c) for c in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def interlevel_to_dict(il: Interlevel) -> Dict[str, Any]:
    return _plain(interlevel_tree(il))


class InterlevelEncoder:
    """Pretty-prints an interlevel tree, writing every frame and condition list on one line.

    Fragments are shared objects (see FragmentPool), so each one is encoded
    once and the text is reused wherever the same object appears again.
    """

    def __init__(self) -> None:
        self._fragments: Dict[int, str] = {}

    def _fragment(self, value: Any) -> str:
        key = id(value)
        text = self._fragments.get(key)
        if text is None:
            text = json.dumps(_plain(value), separators=(", ", ": "), ensure_ascii=False)
            self._fragments[key] = text
        return text

    def encode(self, value: Any, level: int = 0) -> str:
        if isinstance(value, Frame):
            return self._fragment(value)
        if isinstance(value, tuple) and value and isinstance(value[0], Condition):
            return self._fragment(value)
        pad = INDENT * (level + 1)
        if isinstance(value, dict):
            if not value:
                return "{}"
            items = [f"{pad}{json.dumps(k)}: {self.encode(v, level + 1)}" for k, v in value.items()]
            return "{\n" + ",\n".join(items) + "\n" + INDENT * level + "}"
        if isinstance(value, (list, tuple)):
            if not value:
                return "[]"
            items = [pad + self.encode(v, level + 1) for v in value]
            return "[\n" + ",\n".join(items) + "\n" + INDENT * level + "]"
        return json.dumps(value, ensure_ascii=False)


def render_interlevel_json(il: Interlevel) -> str:
    return InterlevelEncoder().encode(interlevel_tree(il)) + "\n"
