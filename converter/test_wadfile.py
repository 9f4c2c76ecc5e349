import io
import os
import struct
import sys
import tempfile
import unittest
import zipfile

# Ensure converter/ is importable; modules import each other by bare name.
sys.path.insert(0, os.path.dirname(__file__))

from wadbuild import build_wad  # noqa: E402
from wadfile import Pk3File, WadFile, WadFormatError, decode_name, open_archive, pk3_lump_name  # noqa: E402


class TestWadFile(unittest.TestCase):
    def setUp(self) -> None:
        self.lumps = [
            ("PLAYPAL", b"\x01\x02\x03"),
            ("MAP01", b""),
            ("THINGS", b"thingdata"),
            ("TITLEPIC", b"x" * 40),
        ]
        self.data = build_wad(self.lumps)
        self.wad = WadFile(self.data)

    def test_directory_matches_header(self) -> None:
        self.assertEqual(self.wad.ident, "PWAD")
        self.assertEqual(self.wad.numlumps, len(self.lumps))
        self.assertEqual(len(self.wad), self.wad.numlumps)
        self.assertEqual([e.name for e in self.wad], [n for n, _ in self.lumps])

    def test_by_index_returns_exact_byte_range(self) -> None:
        for i, (name, payload) in enumerate(self.lumps):
            e = self.wad.entries[i]
            got_name, got = self.wad.by_index(i)
            self.assertEqual(got_name, name)
            self.assertEqual(got, self.data[e.filepos : e.filepos + e.size])
            self.assertEqual(got, payload)

    def test_find_returns_last_occurrence(self) -> None:
        wad = WadFile(build_wad([("A", b"1"), ("B", b"2"), ("A", b"3")]))
        self.assertEqual(wad.find("A"), 2)
        self.assertEqual(wad.find("MISSING"), -1)

    def test_decode_name_trims_padding(self) -> None:
        self.assertEqual(decode_name(b"ABC\x00\x00\x00\x00\x00"), "ABC")
        self.assertEqual(decode_name(b"AB  \x00junk"), "AB")
        self.assertEqual(decode_name(b"FULLNAME"), "FULLNAME")

    def test_rejects_bad_magic(self) -> None:
        with self.assertRaises(WadFormatError):
            WadFile(build_wad([("A", b"1")], magic=b"JUNK"))

    def test_rejects_short_header(self) -> None:
        with self.assertRaises(WadFormatError):
            WadFile(b"PWAD\x01")

    def test_rejects_directory_past_end(self) -> None:
        data = struct.pack("<4sii", b"IWAD", 5, 12)
        with self.assertRaises(WadFormatError):
            WadFile(data)

    def test_wad_format_error_is_value_error(self) -> None:
        self.assertTrue(issubclass(WadFormatError, ValueError))


class TestPk3File(unittest.TestCase):
    def _zip_bytes(self) -> bytes:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("graphics/", b"")
            zf.writestr("graphics/titlepic.png", b"png-data")
            zf.writestr("mapinfo.txt", b"map MAP01 {}")
            zf.writestr("sprites/verylongname.lmp", b"sprite")
        return buf.getvalue()

    def test_pk3_lump_name(self) -> None:
        self.assertEqual(pk3_lump_name("graphics/titlepic.png"), "TITLEPIC")
        self.assertEqual(pk3_lump_name("sprites/verylongname.lmp"), "VERYLONG")
        self.assertEqual(pk3_lump_name("zmapinfo"), "ZMAPINFO")

    def test_entries_skip_directories(self) -> None:
        pk3 = Pk3File(io.BytesIO(self._zip_bytes()), source="test.pk3")
        self.assertEqual([e.name for e in pk3], ["TITLEPIC", "MAPINFO", "VERYLONG"])
        self.assertEqual(pk3.by_index(1), ("MAPINFO", b"map MAP01 {}"))
        self.assertEqual(pk3.path_of(0), "graphics/titlepic.png")
        self.assertEqual(pk3.entries[0].size, len(b"png-data"))
        pk3.close()

    def test_bad_zip_raises_format_error(self) -> None:
        with self.assertRaises(WadFormatError):
            Pk3File(io.BytesIO(b"definitely not a zip"), source="bad.pk3")


class TestOpenArchive(unittest.TestCase):
    def test_dispatch_by_extension_and_content(self) -> None:
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("mapinfo.txt", b"")
        zip_data = buf.getvalue()

        with tempfile.TemporaryDirectory() as td:
            wad_path = os.path.join(td, "mod.wad")
            pk3_path = os.path.join(td, "mod.pk3")
            odd_path = os.path.join(td, "mod.bin")
            with open(wad_path, "wb") as f:
                f.write(build_wad([("A", b"1")]))
            with open(pk3_path, "wb") as f:
                f.write(zip_data)
            with open(odd_path, "wb") as f:
                f.write(zip_data)

            with open_archive(wad_path) as a:
                self.assertIsInstance(a, WadFile)
                self.assertEqual(a.source, wad_path)
            with open_archive(pk3_path) as a:
                self.assertIsInstance(a, Pk3File)
            with open_archive(odd_path) as a:
                self.assertIsInstance(a, Pk3File)


if __name__ == "__main__":
    unittest.main()
