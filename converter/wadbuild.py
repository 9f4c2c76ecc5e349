"""In-memory builders for the lump formats, shared by the unit tests."""

import struct
from typing import List, Sequence, Tuple

from pictures import FLAT_SIZE, PNG_SIGNATURE


def name8(s: str) -> bytes:
    b = (s or "").encode("ascii", errors="replace")
    if len(b) > 8:
        b = b[:8]
    return b.ljust(8, b"\x00")


def build_wad(lumps: List[Tuple[str, bytes]], *, magic: bytes = b"PWAD") -> bytes:
    # Minimal WAD builder: header + concatenated lump data + directory.
    data_parts: List[bytes] = []
    entries: List[Tuple[int, int, str]] = []

    off = 12
    for name, data in lumps:
        data = data or b""
        entries.append((off, len(data), name))
        data_parts.append(data)
        off += len(data)

    dir_off = off
    dir_bytes = b"".join(
        struct.pack("<ii8s", e_off, e_size, name8(e_name)) for (e_off, e_size, e_name) in entries
    )

    header = struct.pack("<4sii", magic, len(entries), dir_off)
    return header + b"".join(data_parts) + dir_bytes


def picture_lump(
    width: int,
    height: int,
    columns: Sequence[Sequence[Tuple[int, bytes]]],
    *,
    left: int = 0,
    top: int = 0,
) -> bytes:
    """Encode a column/post picture; columns[i] lists (row_start, pixels) posts."""
    base = 8 + 4 * width
    offsets: List[int] = []
    body = b""
    for posts in columns:
        offsets.append(base + len(body))
        for row, px in posts:
            body += bytes([row, len(px), 0]) + px + b"\x00"
        body += b"\xff"
    return struct.pack("<hhhh", width, height, left, top) + struct.pack(f"<{width}i", *offsets) + body


def solid_picture(width: int, height: int, index: int = 1, **kw) -> bytes:
    return picture_lump(width, height, [[(0, bytes([index]) * height)] for _ in range(width)], **kw)


def flat_lump(fill: int = 0) -> bytes:
    return bytes((fill + i) % 256 for i in range(FLAT_SIZE * FLAT_SIZE))


def palette_lump(count: int = 1) -> bytes:
    one = b"".join(bytes([i, 255 - i, i // 2]) for i in range(256))
    return one * count


def png_lump(payload: bytes = b"not really a png") -> bytes:
    return PNG_SIGNATURE + payload
