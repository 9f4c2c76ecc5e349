import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(__file__))

from intermission import (  # noqa: E402
    DEFAULT_POINTERS,
    DEFAULT_SPLAT,
    EMPTY_PATCH,
    GUARD_ENTERING,
    GUARD_LEAVING,
    GUARD_VISITED,
    Guard,
    parse_intermission_script,
)

SCRIPT = """
background INTERPIC
splat MYSPLAT
pointer ARROWL ARROWR

spots
{
    MAP01 185 164
    map02 148 143
    garbage line here
}

IfVisited MAP01 Pic 10 20 PATCHA
IfEntering MAP02 Animation 30 40 8
{
    FIRE1
    blank
    FIRE2
}
IfLeaving MAP01 Animation 50 60 4 Once {
    DOOR1
    DOOR2
}
IfTravelling MAP01 MAP02 Pic 70 80 ROAD
IfNotVisited MAP02 Pic 1 2 NEVER
Pic 5 6 ALWAYS
NoSuchDirective 1 2 3
"""


class TestParseIntermissionScript(unittest.TestCase):
    def setUp(self) -> None:
        self.script = parse_intermission_script("INTERMAP", SCRIPT)

    def test_declarations(self) -> None:
        s = self.script
        self.assertEqual(s.name, "INTERMAP")
        self.assertEqual(s.background, "INTERPIC")
        self.assertEqual(s.splat_image, "MYSPLAT")
        self.assertEqual(s.pointer_images, ("ARROWL", "ARROWR"))

    def test_spots(self) -> None:
        self.assertEqual(self.script.spots, {"MAP01": (185, 164), "MAP02": (148, 143)})

    def test_drawables_in_order(self) -> None:
        anims = self.script.animations
        self.assertEqual([a.patches for a in anims], [
            ["PATCHA"],
            ["FIRE1", EMPTY_PATCH, "FIRE2"],
            ["DOOR1", "DOOR2"],
            ["ROAD"],
            ["ALWAYS"],
        ])

    def test_pic_has_no_speed(self) -> None:
        pic = self.script.animations[0]
        self.assertEqual((pic.x, pic.y, pic.speed, pic.once), (10, 20, None, False))
        self.assertEqual(pic.guard, Guard(GUARD_VISITED, "MAP01"))

    def test_animation_fields(self) -> None:
        fire, door = self.script.animations[1], self.script.animations[2]
        self.assertEqual((fire.x, fire.y, fire.speed, fire.once), (30, 40, 8, False))
        self.assertEqual(fire.guard, Guard(GUARD_ENTERING, "MAP02"))
        self.assertEqual((door.x, door.y, door.speed, door.once), (50, 60, 4, True))
        self.assertEqual(door.guard, Guard(GUARD_LEAVING, "MAP01"))

    def test_travelling_becomes_entering_destination(self) -> None:
        road = self.script.animations[3]
        self.assertEqual(road.guard, Guard(GUARD_ENTERING, "MAP02"))

    def test_unguarded_pic(self) -> None:
        self.assertIsNone(self.script.animations[4].guard)

    def test_defaults(self) -> None:
        s = parse_intermission_script("BARE", "BACKGROUND BACK01\n")
        self.assertEqual(s.background, "BACK01")
        self.assertEqual(s.splat_image, DEFAULT_SPLAT)
        self.assertEqual(s.pointer_images, DEFAULT_POINTERS)
        self.assertEqual(s.spots, {})
        self.assertEqual(s.animations, [])

    def test_missing_text(self) -> None:
        s = parse_intermission_script("GONE", None)
        self.assertIsNone(s.background)
        self.assertEqual(s.animations, [])

    def test_crlf_and_brace_on_spots_line(self) -> None:
        s = parse_intermission_script("WIN", "Spots {\r\n  MAP03 1 2\r\n}\r\n")
        self.assertEqual(s.spots, {"MAP03": (1, 2)})


if __name__ == "__main__":
    unittest.main()
