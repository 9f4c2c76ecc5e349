#!/usr/bin/env python3

from __future__ import annotations

import os
import shutil
import struct
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image, PngImagePlugin

from envutil import eprint, grabpng_bin, pngquant_bin

FLAT_SIZE = 64
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

# Column data: rowstart byte, pixel count byte, pad, pixels..., pad.
POST_END = 0xFF

Palette = List[Tuple[int, int, int]]


@dataclass(frozen=True)
class Post:
	column: int
	row_start: int
	pixels: bytes


@dataclass
class Picture:
	width: int
	height: int
	left_offset: int = 0
	top_offset: int = 0
	posts: List[Post] = field(default_factory=list)

	def column_pixel_counts(self) -> List[int]:
		counts = [0] * self.width
		for p in self.posts:
			counts[p.column] += len(p.pixels)
		return counts


def is_png(lump: bytes) -> bool:
	return lump[:8] == PNG_SIGNATURE


def decode_picture(lump: bytes) -> Optional[Picture]:
	"""Decode a column/post picture lump (patches, sprites, graphics).

	The format carries no magic number, so anything that does not decode
	cleanly yields None: non-positive dimensions, offsets or posts that fall
	outside the lump, or a post declaring zero pixels.
	"""
	if len(lump) < 8:
		return None
	width, height, left_offset, top_offset = struct.unpack_from("<hhhh", lump, 0)
	if width <= 0 or height <= 0:
		return None
	if 8 + width * 4 > len(lump):
		return None

	pic = Picture(width=width, height=height, left_offset=left_offset, top_offset=top_offset)
	col_offsets = struct.unpack_from(f"<{width}i", lump, 8)
	size = len(lump)

	for col, pos in enumerate(col_offsets):
		if pos < 0:
			return None
		total = 0
		while True:
			if pos >= size:
				return None
			row_start = lump[pos]
			if row_start == POST_END:
				break
			if pos + 1 >= size:
				return None
			count = lump[pos + 1]
			if count == 0:
				return None
			start = pos + 3
			if start + count > size:
				return None
			# Malformed offset tables must not read more than a column's worth.
			take = min(count, height - total)
			if take > 0:
				pic.posts.append(Post(column=col, row_start=row_start, pixels=lump[start : start + take]))
				total += take
			if total >= height:
				break
			pos = start + count + 1

	return pic


def decode_flat(lump: bytes) -> Picture:
	"""Decode a raw 64x64 row-major flat as 64 single-post columns."""
	pic = Picture(width=FLAT_SIZE, height=FLAT_SIZE)
	raw = lump[: FLAT_SIZE * FLAT_SIZE]
	for col in range(FLAT_SIZE):
		column = raw[col::FLAT_SIZE]
		if column:
			pic.posts.append(Post(column=col, row_start=0, pixels=bytes(column)))
	return pic


def parse_palettes(lump: bytes) -> List[Palette]:
	"""Split a PLAYPAL lump into 768-byte palettes of RGB triples."""
	palettes: List[Palette] = []
	for off in range(0, len(lump), 768):
		chunk = lump[off : off + 768]
		palettes.append([tuple(chunk[i : i + 3]) for i in range(0, len(chunk) - 2, 3)])
	return palettes


def _palette_array(palette: Sequence[Tuple[int, int, int]]) -> np.ndarray:
	pal = np.zeros((256, 3), dtype=np.uint8)
	if palette:
		n = min(256, len(palette))
		pal[:n] = np.asarray(palette[:n], dtype=np.uint8)
	return pal


def rasterize(pic: Picture, palette: Sequence[Tuple[int, int, int]]) -> np.ndarray:
	"""Return an HxWx4 uint8 RGBA array; pixels not covered by a post stay transparent."""
	pal = _palette_array(palette)
	out = np.zeros((pic.height, pic.width, 4), dtype=np.uint8)
	for post in pic.posts:
		if post.column >= pic.width:
			continue
		idx = np.frombuffer(post.pixels, dtype=np.uint8)
		rows = post.row_start + np.arange(idx.size)
		keep = rows < pic.height
		rows = rows[keep]
		idx = idx[keep]
		out[rows, post.column, :3] = pal[idx]
		out[rows, post.column, 3] = 255
	return out


def _tool_available(binary: str) -> bool:
	if not binary or binary.lower() in {"-", "none", "off"}:
		return False
	return shutil.which(binary) is not None


def _grab_info(x: int, y: int) -> PngImagePlugin.PngInfo:
	info = PngImagePlugin.PngInfo()
	info.add(b"grAb", struct.pack(">ii", x, y))
	return info


def write_grab_chunk(path: str, x: int, y: int) -> None:
	"""Rewrite *path* with a grAb (offset) chunk, keeping its palette and transparency."""
	with Image.open(path) as im:
		im.load()
		kwargs = {"pnginfo": _grab_info(x, y)}
		if "transparency" in im.info:
			kwargs["transparency"] = im.info["transparency"]
		im.save(path, "PNG", **kwargs)


def save_png(pic: Picture, palette: Sequence[Tuple[int, int, int]], path: str) -> None:
	"""Rasterize *pic* and write it as an indexed PNG.

	The RGBA image goes through the external quantizer, which keeps the
	retro palette intact. Non-zero offsets are stored afterwards as a grAb
	chunk. Tool failures are reported and otherwise ignored, leaving the
	intermediate `.tmp` image behind.
	"""
	img = Image.fromarray(rasterize(pic, palette))
	x, y = pic.left_offset, pic.top_offset
	quant = pngquant_bin()

	if not _tool_available(quant):
		if quant.lower() not in {"-", "none", "off"}:
			eprint(f"⚠️ {quant} not found; writing unquantized {path}")
		if x or y:
			img.save(path, "PNG", pnginfo=_grab_info(x, y))
		else:
			img.save(path, "PNG")
		return

	tmp_path = f"{path}.tmp"
	if os.path.exists(tmp_path):
		os.unlink(tmp_path)
	img.save(tmp_path, "PNG")
	r = subprocess.run([quant, "256", tmp_path, "--output", path], capture_output=True)
	if r.returncode != 0:
		eprint(f"⚠️ {quant} failed for {tmp_path} (exit {r.returncode})")
		return
	os.unlink(tmp_path)

	if not (x or y):
		return
	grab = grabpng_bin()
	if _tool_available(grab):
		r = subprocess.run([grab, "-grab", str(x), str(y), path], capture_output=True)
		if r.returncode != 0:
			eprint(f"⚠️ {grab} failed for {path} (exit {r.returncode})")
	else:
		write_grab_chunk(path, x, y)
