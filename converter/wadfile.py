#!/usr/bin/env python3
"""
Container readers for Doom resource archives.

Two container forms are supported behind the same interface:

- WAD (IWAD/PWAD): 12-byte header, lump data, flat directory of 16-byte
  records `{int32 filepos, int32 size, char[8] name}`.
- PK3 (ZIP): entries come from the zip central directory and are extracted
  one by one.

Both expose `entries` (ordered DirectoryEntry list) and `by_index(i)`.
"""

from __future__ import annotations

import os
import struct
import zipfile
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

WAD_HEADER_FMT = "<4sii"
WAD_HEADER_SIZE = struct.calcsize(WAD_HEADER_FMT)  # 12

WAD_DIR_ENTRY_FMT = "<ii8s"
WAD_DIR_ENTRY_SIZE = struct.calcsize(WAD_DIR_ENTRY_FMT)  # 16

WAD_MAGICS = (b"IWAD", b"PWAD")
ZIP_EXTS = {".pk3", ".pk7", ".pkz", ".zip", ".epk", ".pke"}


class WadFormatError(ValueError):
    pass


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    filepos: int
    size: int


def decode_name(raw: bytes) -> str:
    """Convert a NUL/space padded 8-byte lump name to a string."""
    return raw.split(b"\x00", 1)[0].decode("ascii", errors="replace").strip()


class Archive:
    """Common surface for WAD and PK3 containers."""

    entries: List[DirectoryEntry]
    source: str

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[DirectoryEntry]:
        return iter(self.entries)

    def by_index(self, index: int) -> Tuple[str, bytes]:
        raise NotImplementedError

    def find(self, name: str) -> int:
        """Return the index of the last lump called *name*, or -1."""
        for i in range(len(self.entries) - 1, -1, -1):
            if self.entries[i].name == name:
                return i
        return -1

    def close(self) -> None:
        pass

    def __enter__(self) -> "Archive":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class WadFile(Archive):
    def __init__(self, data: bytes, *, source: str = "<bytes>") -> None:
        self.source = source
        self._data = data

        if len(data) < WAD_HEADER_SIZE:
            raise WadFormatError(f"WAD too small: {source}")

        ident, numlumps, infotableofs = struct.unpack_from(WAD_HEADER_FMT, data, 0)
        if ident not in WAD_MAGICS:
            raise WadFormatError(f"Not a WAD file (bad header {ident!r}): {source}")
        if numlumps < 0 or infotableofs < 0:
            raise WadFormatError(f"Negative header fields: {source}")
        if infotableofs + numlumps * WAD_DIR_ENTRY_SIZE > len(data):
            raise WadFormatError(f"WAD directory out of range: {source}")

        self.ident = ident.decode("ascii")
        self.numlumps = numlumps
        self.infotableofs = infotableofs

        self.entries = []
        offset = infotableofs
        for _ in range(numlumps):
            filepos, size, raw_name = struct.unpack_from(WAD_DIR_ENTRY_FMT, data, offset)
            self.entries.append(DirectoryEntry(name=decode_name(raw_name), filepos=filepos, size=size))
            offset += WAD_DIR_ENTRY_SIZE

    @classmethod
    def open(cls, path: str) -> "WadFile":
        with open(path, "rb") as f:
            data = f.read()
        return cls(data, source=path)

    def by_index(self, index: int) -> Tuple[str, bytes]:
        e = self.entries[index]
        return e.name, self._data[e.filepos : e.filepos + e.size]


def pk3_lump_name(path: str) -> str:
    base = os.path.basename(path)
    stem = os.path.splitext(base)[0]
    return stem.upper()[:8]


class Pk3File(Archive):
    """ZIP-based container; lump names are entry base names without extension."""

    def __init__(self, path_or_file, *, source: Optional[str] = None) -> None:
        self.source = source or str(path_or_file)
        try:
            self._zip = zipfile.ZipFile(path_or_file)
        except zipfile.BadZipFile as ex:
            raise WadFormatError(f"Not a valid zip/PK3 container: {self.source}") from ex

        self._infos: List[zipfile.ZipInfo] = []
        self.entries = []
        for info in self._zip.infolist():
            if info.is_dir():
                continue
            self._infos.append(info)
            self.entries.append(DirectoryEntry(name=pk3_lump_name(info.filename), filepos=-1, size=info.file_size))

    def path_of(self, index: int) -> str:
        return self._infos[index].filename

    def by_index(self, index: int) -> Tuple[str, bytes]:
        return self.entries[index].name, self._zip.read(self._infos[index])

    def close(self) -> None:
        self._zip.close()


def open_archive(path: str) -> Archive:
    """Open *path* as a WAD or PK3, by extension first and magic bytes second."""
    ext = os.path.splitext(path)[1].lower()
    if ext in ZIP_EXTS:
        return Pk3File(path)
    if ext != ".wad" and zipfile.is_zipfile(path):
        return Pk3File(path)
    return WadFile.open(path)
