import os
import struct
import sys
import tempfile
import unittest
from unittest import mock

sys.path.insert(0, os.path.dirname(__file__))

from PIL import Image  # noqa: E402

from pictures import (  # noqa: E402
    FLAT_SIZE,
    decode_flat,
    decode_picture,
    is_png,
    parse_palettes,
    rasterize,
    save_png,
)
from wadbuild import palette_lump, picture_lump, png_lump, solid_picture  # noqa: E402

NO_TOOLS = {"WADCONV_PNGQUANT": "-", "WADCONV_GRABPNG": "-"}


class TestDecodePicture(unittest.TestCase):
    def test_decodes_posts_and_header(self) -> None:
        lump = picture_lump(
            2,
            4,
            [
                [(0, b"\x01\x02"), (3, b"\x03")],
                [(1, b"\x04\x05\x06")],
            ],
            left=-3,
            top=7,
        )
        pic = decode_picture(lump)
        self.assertIsNotNone(pic)
        self.assertEqual((pic.width, pic.height, pic.left_offset, pic.top_offset), (2, 4, -3, 7))
        self.assertEqual(
            [(p.column, p.row_start, p.pixels) for p in pic.posts],
            [(0, 0, b"\x01\x02"), (0, 3, b"\x03"), (1, 1, b"\x04\x05\x06")],
        )
        self.assertEqual(pic.column_pixel_counts(), [3, 3])

    def test_decode_is_repeatable(self) -> None:
        lump = solid_picture(3, 3)
        self.assertEqual(decode_picture(lump), decode_picture(lump))

    def test_zero_length_post_rejects_lump(self) -> None:
        lump = picture_lump(1, 4, [[(0, b"")]])
        self.assertIsNone(decode_picture(lump))

    def test_non_positive_dimensions(self) -> None:
        self.assertIsNone(decode_picture(struct.pack("<hhhh", 0, 5, 0, 0)))
        self.assertIsNone(decode_picture(struct.pack("<hhhh", 5, -1, 0, 0)))

    def test_truncated_lumps(self) -> None:
        self.assertIsNone(decode_picture(b"\x01\x00"))
        # Column offset table longer than the lump.
        self.assertIsNone(decode_picture(struct.pack("<hhhh", 50, 1, 0, 0)))
        # Column offset pointing past the end.
        lump = struct.pack("<hhhhi", 1, 1, 0, 0, 999)
        self.assertIsNone(decode_picture(lump))

    def test_column_pixels_never_exceed_height(self) -> None:
        lump = picture_lump(2, 3, [[(0, b"\x01" * 5)], [(0, b"\x01\x01"), (2, b"\x02\x02\x02")]])
        pic = decode_picture(lump)
        self.assertIsNotNone(pic)
        for count in pic.column_pixel_counts():
            self.assertLessEqual(count, pic.height)

    def test_text_is_not_a_picture(self) -> None:
        self.assertIsNone(decode_picture(b"map MAP01 \"Entryway\"\n{\n}\n"))


class TestFlatsAndPalettes(unittest.TestCase):
    def test_decode_flat(self) -> None:
        raw = bytes(i % 256 for i in range(FLAT_SIZE * FLAT_SIZE))
        pic = decode_flat(raw)
        self.assertEqual((pic.width, pic.height), (64, 64))
        self.assertEqual(len(pic.posts), 64)
        self.assertEqual(pic.posts[1].pixels[0], raw[1])
        self.assertEqual(pic.posts[1].pixels[2], raw[2 * 64 + 1])
        self.assertEqual(pic.column_pixel_counts(), [64] * 64)

    def test_parse_palettes(self) -> None:
        pals = parse_palettes(palette_lump(2))
        self.assertEqual(len(pals), 2)
        self.assertEqual(len(pals[0]), 256)
        self.assertEqual(pals[0][10], (10, 245, 5))

    def test_is_png(self) -> None:
        self.assertTrue(is_png(png_lump()))
        self.assertFalse(is_png(b"PWAD"))


class TestRasterize(unittest.TestCase):
    def test_uncovered_pixels_are_transparent(self) -> None:
        pic = decode_picture(picture_lump(2, 3, [[(1, b"\x0a")], []]))
        pal = parse_palettes(palette_lump())[0]
        arr = rasterize(pic, pal)
        self.assertEqual(arr.shape, (3, 2, 4))
        self.assertEqual(tuple(arr[1, 0]), (10, 245, 5, 255))
        self.assertEqual(arr[0, 0, 3], 0)
        self.assertEqual(arr[:, 1, 3].tolist(), [0, 0, 0])


class TestSavePng(unittest.TestCase):
    def setUp(self) -> None:
        self.palette = parse_palettes(palette_lump())[0]

    def test_writes_rgba_png_without_quantizer(self) -> None:
        pic = decode_picture(solid_picture(4, 2, index=7))
        with tempfile.TemporaryDirectory() as td, mock.patch.dict(os.environ, NO_TOOLS):
            path = os.path.join(td, "PATCH.png")
            save_png(pic, self.palette, path)
            with Image.open(path) as im:
                self.assertEqual(im.size, (4, 2))
                self.assertEqual(im.convert("RGBA").getpixel((0, 0)), (7, 248, 3, 255))
            with open(path, "rb") as f:
                self.assertNotIn(b"grAb", f.read())

    def test_offsets_stored_as_grab_chunk(self) -> None:
        pic = decode_picture(solid_picture(2, 2, left=5, top=-2))
        with tempfile.TemporaryDirectory() as td, mock.patch.dict(os.environ, NO_TOOLS):
            path = os.path.join(td, "SPRITE.png")
            save_png(pic, self.palette, path)
            with open(path, "rb") as f:
                data = f.read()
        self.assertIn(b"grAb" + struct.pack(">ii", 5, -2), data)


if __name__ == "__main__":
    unittest.main()
