#!/usr/bin/env python3
"""
Port a GZDoom intermission mod (WAD or PK3) to UMAPINFO + id24 interlevels.

Pipeline for one source archive:

  open -> classify lumps -> parse MAPINFO -> parse intermission scripts
       -> build interlevel IR -> write UMAPINFO.txt / CREDITS.txt / *.json
       -> (optional) export every referenced image as PNG

Usage:
  wad-interlevel mymod.wad -o out/ --title "My Mod" --author "Someone"
  wad-interlevel https://example.com/mymod.pk3.gz -o out/ --sorted-maps
  wad-interlevel mymod.wad --list-lumps
"""

from __future__ import annotations

import argparse
import gzip
import json
import os
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlparse

import requests

from emit import credits_text, render_interlevel_json, umapinfo_text
from envutil import download_timeout, eprint, publish_bucket, show_progress_default
from interlevel import Interlevel, InterlevelBuilder
from intermission import DEFAULT_POINTERS, DEFAULT_SPLAT, EMPTY_PATCH, IntermissionScript, parse_intermission_script
from lumps import ClassifiedLumps, classify_archive, endoom_to_ansi
from mapinfo import ORDER_DECLARATION, ORDER_SORTED, MapInfo, parse_mapinfo
from pictures import save_png
from publish import publish_dir
from wadfile import Archive, WadFormatError, open_archive

DEFAULT_MAPINFO_LUMP = "MAPINFO"

# Images the base game usually provides; absence from a PWAD is expected.
IWAD_IMAGES = {EMPTY_PATCH, DEFAULT_SPLAT, *DEFAULT_POINTERS}


class ConversionError(RuntimeError):
    pass


@dataclass
class WadInfo:
    title: Optional[str] = None
    author: Optional[str] = None
    music: Optional[str] = None
    mapinfo_lump: str = DEFAULT_MAPINFO_LUMP
    map_ordering: str = ORDER_DECLARATION


@dataclass
class ConversionResult:
    mapinfo: MapInfo
    scripts: List[IntermissionScript]
    interlevels: List[Interlevel]
    written: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)


class LumpCache:
    """Raw lump bytes stored as one file per lump name. Never invalidated."""

    def __init__(self, directory: str) -> None:
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def path(self, name: str) -> str:
        return os.path.join(self.directory, name)

    def get(self, name: str) -> Optional[bytes]:
        p = self.path(name)
        if not os.path.exists(p):
            return None
        with open(p, "rb") as f:
            return f.read()

    def put(self, name: str, data: bytes) -> None:
        with open(self.path(name), "wb") as f:
            f.write(data)


class Converter:
    """One conversion run. The archive is opened and classified only when first needed."""

    def __init__(
        self,
        source: str,
        out_dir: str,
        wad_info: Optional[WadInfo] = None,
        *,
        export_graphics: bool = True,
        cache_dir: Optional[str] = None,
        fallback_palette: Optional[str] = None,
        show_progress: bool = False,
        timestamp: Optional[str] = None,
    ) -> None:
        self.source = source
        self.out_dir = out_dir
        self.wad_info = wad_info or WadInfo()
        self.export_graphics = export_graphics
        self.cache = LumpCache(cache_dir) if cache_dir else None
        self.fallback_palette = fallback_palette
        self.show_progress = show_progress
        self.timestamp = timestamp or datetime.now(timezone.utc).astimezone().isoformat(timespec="seconds")
        self._archive: Optional[Archive] = None
        self._lumps: Optional[ClassifiedLumps] = None
        self._exported: set[str] = set()

    @property
    def archive(self) -> Archive:
        if self._archive is None:
            try:
                self._archive = open_archive(self.source)
            except WadFormatError as ex:
                raise ConversionError(f"{self.source}: not a WAD or PK3 archive ({ex})") from ex
        return self._archive

    @property
    def lumps(self) -> ClassifiedLumps:
        if self._lumps is None:
            self._lumps = classify_archive(
                self.archive,
                show_progress=self.show_progress,
                fallback_palette=self.fallback_palette,
            )
        return self._lumps

    def close(self) -> None:
        if self._archive is not None:
            self._archive.close()
            self._archive = None

    def __enter__(self) -> "Converter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # -- lumps

    def _lump_from_archive(self, name: str) -> Optional[bytes]:
        data = self.lumps.unknown.get(name)
        if data is not None:
            return data
        idx = self.archive.find(name)
        if idx < 0:
            return None
        return self.archive.by_index(idx)[1]

    def lump(self, name: str) -> Optional[bytes]:
        if self.cache is None:
            return self._lump_from_archive(name)
        data = self.cache.get(name)
        if data is None:
            data = self._lump_from_archive(name)
            if data:
                self.cache.put(name, data)
        return data or None

    def text_lump(self, name: str) -> Optional[str]:
        data = self.lump(name)
        if data is None:
            return None
        return data.decode("utf-8", errors="replace")

    # -- parsing

    def read_mapinfo(self) -> MapInfo:
        name = self.wad_info.mapinfo_lump
        text = self.text_lump(name)
        if text is None:
            eprint(f"⚠️ {self.source}: no {name} lump; no maps to convert")
        return parse_mapinfo(text, ordering=self.wad_info.map_ordering)

    def read_scripts(self, mapinfo: MapInfo) -> List[IntermissionScript]:
        scripts = []
        for name in mapinfo.script_names():
            text = self.text_lump(name)
            if text is None:
                eprint(f"⚠️ {self.source}: intermission script {name} not found")
            scripts.append(parse_intermission_script(name, text))
        return scripts

    # -- output

    def _write_text(self, filename: str, text: str) -> str:
        path = os.path.join(self.out_dir, filename)
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        return path

    def export_image(self, name: Optional[str]) -> Optional[str]:
        """Write <name>.png unless it was already written in this run or on disk."""
        if not name or name in self._exported:
            return None
        self._exported.add(name)
        path = os.path.join(self.out_dir, f"{name}.png")
        if os.path.exists(path):
            return None

        lumps = self.lumps
        png = lumps.pngs.get(name)
        if png is not None:
            with open(path, "wb") as f:
                f.write(png)
            return path

        pic = lumps.picture(name)
        if pic is None:
            if name not in IWAD_IMAGES:
                eprint(f"⚠️ {self.source}: image {name} not found; skipping")
            return None
        if not lumps.palettes:
            eprint(f"⚠️ {self.source}: no palette available; cannot export {name}")
            return None
        save_png(pic, lumps.palettes[0], path)
        return path

    def run(self) -> ConversionResult:
        os.makedirs(self.out_dir, exist_ok=True)
        info = self.wad_info

        mapinfo = self.read_mapinfo()
        scripts = self.read_scripts(mapinfo)
        builder = InterlevelBuilder(mapinfo)
        interlevels = [
            builder.build(s, title=info.title, author=info.author, music=info.music, timestamp=self.timestamp)
            for s in scripts
        ]
        result = ConversionResult(mapinfo=mapinfo, scripts=scripts, interlevels=interlevels)

        result.written.append(self._write_text("UMAPINFO.txt", umapinfo_text(mapinfo)))
        credits = credits_text(info.author)
        if credits:
            result.written.append(self._write_text("CREDITS.txt", credits))
        for il in interlevels:
            result.written.append(self._write_text(f"{il.name}.json", render_interlevel_json(il)))

        if self.export_graphics:
            names: List[str] = []
            for il in interlevels:
                names.extend(il.images())
            if mapinfo.endpic:
                names.append(mapinfo.endpic)
            for name in names:
                path = self.export_image(name)
                if path:
                    result.images.append(path)

        print(f"Converted {self.source}: {len(mapinfo.records)} maps, {len(interlevels)} interlevels, {len(result.images)} images -> {self.out_dir}")
        return result


def convert(
    source: str,
    out_dir: str,
    wad_info: Optional[WadInfo] = None,
    *,
    export_graphics: bool = True,
    cache_dir: Optional[str] = None,
    fallback_palette: Optional[str] = None,
    show_progress: bool = False,
    timestamp: Optional[str] = None,
) -> ConversionResult:
    with Converter(
        source,
        out_dir,
        wad_info,
        export_graphics=export_graphics,
        cache_dir=cache_dir,
        fallback_palette=fallback_palette,
        show_progress=show_progress,
        timestamp=timestamp,
    ) as conv:
        return conv.run()


# -----------------------------
# Source fetching
# -----------------------------

def is_url(source: str) -> bool:
    return urlparse(source).scheme in ("http", "https")


def download_to_path(session: requests.Session, url: str, out_path: str) -> None:
    with session.get(url, stream=True, timeout=(10, download_timeout())) as r:
        r.raise_for_status()
        with open(out_path, "wb") as f:
            for chunk in r.iter_content(chunk_size=1024 * 256):
                if chunk:
                    f.write(chunk)


def gunzip_file(src_gz: str, dst_path: str) -> None:
    with gzip.open(src_gz, "rb") as gz:
        with open(dst_path, "wb") as out:
            shutil.copyfileobj(gz, out, 1024 * 1024)


def fetch_source(source: str, work_dir: str) -> str:
    """Return a local path for *source*, downloading and gunzipping as needed."""
    if is_url(source):
        fn = os.path.basename(urlparse(source).path) or "source.wad"
        local = os.path.join(work_dir, fn)
        with requests.Session() as session:
            download_to_path(session, source, local)
        print(f"Downloaded {source}")
        source = local
    if source.lower().endswith(".gz"):
        dst = os.path.join(work_dir, os.path.basename(source)[:-3])
        gunzip_file(source, dst)
        source = dst
    return source


# -----------------------------
# CLI
# -----------------------------

def main() -> None:
    ap = argparse.ArgumentParser(description="Convert a GZDoom intermission mod to UMAPINFO + id24 interlevel JSON")
    ap.add_argument("source", help="Path or http(s) URL of a .wad/.pk3 (optionally .gz)")
    ap.add_argument("-o", "--out", default="out", help="Output directory (default: out)")
    ap.add_argument("--title", default=None, help="WAD title used in the interlevel comment")
    ap.add_argument("--author", default=None, help="Original mod author (enables CREDITS.txt)")
    ap.add_argument("--music", default=None, help="Intermission music lump")
    ap.add_argument("--mapinfo-lump", default=DEFAULT_MAPINFO_LUMP, help="Map-property lump name (MAPINFO/ZMAPINFO)")
    ap.add_argument("--sorted-maps", action="store_true", help="Number maps by sorted token instead of declaration order")
    ap.add_argument("--no-graphics", action="store_true", help="Skip PNG export")
    ap.add_argument("--cache-dir", default=None, help="Read-through raw lump cache directory")
    ap.add_argument("--palette", default=None, help="Fallback PLAYPAL file for archives without one")
    ap.add_argument("--list-lumps", action="store_true", help="Print the classified lump listing as JSON and exit")
    ap.add_argument("--print-endoom", action="store_true", help="Render the ENDOOM screen with ANSI colors and exit")
    ap.add_argument("--publish-bucket", default=publish_bucket() or None, help="Upload the output directory to this S3 bucket")
    ap.add_argument("--publish-prefix", default="", help="Key prefix for published files")
    ap.add_argument("-v", "--verbose", action="store_true", default=show_progress_default(), help="Print every classified lump")
    args = ap.parse_args()

    with tempfile.TemporaryDirectory(prefix="wadconv_") as td:
        try:
            path = fetch_source(args.source, td)
        except requests.RequestException as ex:
            raise SystemExit(f"download failed: {ex}")

        if args.list_lumps or args.print_endoom:
            try:
                archive = open_archive(path)
            except WadFormatError as ex:
                raise SystemExit(f"{args.source}: {ex}")
            with archive:
                lumps = classify_archive(archive, show_progress=args.verbose, fallback_palette=args.palette)
            if args.list_lumps:
                print(json.dumps(lumps.summary(), indent=2, ensure_ascii=False))
            if args.print_endoom:
                if lumps.endoom is None:
                    raise SystemExit(f"{args.source}: no ENDOOM lump")
                print(endoom_to_ansi(lumps.endoom))
            return

        info = WadInfo(
            title=args.title,
            author=args.author,
            music=args.music,
            mapinfo_lump=args.mapinfo_lump.upper(),
            map_ordering=ORDER_SORTED if args.sorted_maps else ORDER_DECLARATION,
        )
        try:
            convert(
                path,
                args.out,
                info,
                export_graphics=not args.no_graphics,
                cache_dir=args.cache_dir,
                fallback_palette=args.palette,
                show_progress=args.verbose,
            )
        except ConversionError as ex:
            eprint(f"❌ {ex}")
            sys.exit(1)

    if args.publish_bucket:
        publish_dir(args.out, bucket=args.publish_bucket, prefix=args.publish_prefix)


if __name__ == "__main__":
    main()
