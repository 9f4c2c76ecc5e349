#!/usr/bin/env python3

from __future__ import annotations

import os
import sys
from typing import Any


def eprint(*args: Any, **kwargs: Any) -> None:
	print(*args, file=sys.stderr, **kwargs)


def _env_str(name: str, default: str) -> str:
	v = os.getenv(name)
	if v is None:
		return default
	v = v.strip()
	return v or default


def _env_bool(name: str, default: bool) -> bool:
	v = os.getenv(name)
	if v is None or not v.strip():
		return default
	v = v.strip().lower()
	return v in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
	v = os.getenv(name)
	if v is None or not v.strip():
		return default
	try:
		return int(v)
	except ValueError:
		return default


def pngquant_bin() -> str:
	"""Quantizer used to turn RGBA exports into 8-bit indexed PNGs.

	Set to an empty string-like value such as "-" to skip quantization.
	"""
	return _env_str("WADCONV_PNGQUANT", "pngquant")


def grabpng_bin() -> str:
	"""Tool that stores a picture's left/top offset as a PNG grAb chunk."""
	return _env_str("WADCONV_GRABPNG", "grabpng")


def fallback_palette_path() -> str:
	"""Raw PLAYPAL used for archives that ship no palette of their own."""
	return _env_str("WADCONV_PLAYPAL", "")


def metadata_author() -> str:
	return _env_str("WADCONV_METADATA_AUTHOR", "wad-interlevel")


def metadata_application() -> str:
	return _env_str("WADCONV_APPLICATION", "wad-interlevel")


def publish_bucket() -> str:
	return _env_str("WADCONV_PUBLISH_BUCKET", "")


def publish_endpoint() -> str:
	return _env_str("WADCONV_PUBLISH_ENDPOINT", "")


def publish_region() -> str:
	return _env_str("WADCONV_PUBLISH_REGION", "us-east-1")


def show_progress_default() -> bool:
	return _env_bool("WADCONV_VERBOSE", False)


def download_timeout() -> int:
	"""Read timeout in seconds for fetching a source archive by URL."""
	return _env_int("WADCONV_DOWNLOAD_TIMEOUT", 60)
