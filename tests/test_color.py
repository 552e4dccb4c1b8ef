"""
Unit tests for color conversion and material matching.
"""

import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from vox_chisel.color import ColorMatcher, ciede2000, srgb_to_lab, srgb_to_linear
from vox_chisel.errors import EmptyPalette


WOOL = {
    "minecraft:white_wool": (233, 236, 236),
    "minecraft:red_wool": (160, 39, 34),
    "minecraft:green_wool": (84, 109, 27),
    "minecraft:blue_wool": (53, 57, 157),
    "minecraft:black_wool": (20, 21, 25),
}


class TestColorConversion(unittest.TestCase):
    """Tests for color space conversion."""

    def test_linear_zero_one(self):
        """Test black and white conversion."""
        colors = np.array([[0, 0, 0, 255], [255, 255, 255, 255]], dtype=np.uint8)
        linear = srgb_to_linear(colors)

        assert linear.shape == (2, 3)
        assert np.allclose(linear[0], 0, atol=0.01)
        assert np.allclose(linear[1], 1, atol=0.01)

    def test_lab_reference_points(self):
        """White, black and pure red land on their known Lab values."""
        lab = srgb_to_lab(np.array([[255, 255, 255], [0, 0, 0], [255, 0, 0]], dtype=np.uint8))

        assert np.allclose(lab[0], [100.0, 0.0, 0.0], atol=0.05)
        assert np.allclose(lab[1], [0.0, 0.0, 0.0], atol=0.05)
        assert np.allclose(lab[2], [53.24, 80.09, 67.20], atol=0.1)

    def test_ciede2000_reference_pairs(self):
        """Published CIEDE2000 test pairs."""
        pairs = [
            ((50.0, 2.6772, -79.7751), (50.0, 0.0, -82.7485), 2.0425),
            ((50.0, 0.0, 0.0), (50.0, -1.0, 2.0), 2.3669),
            ((50.0, 2.5, 0.0), (73.0, 25.0, -18.0), 27.1492),
            ((22.7233, 20.0904, -46.6940), (23.0331, 14.9730, -42.5619), 2.0373),
        ]
        for lab1, lab2, expected in pairs:
            result = ciede2000(np.array(lab1), np.array([lab2]))
            assert abs(result[0] - expected) < 1e-3, (lab1, lab2, result[0])

    def test_ciede2000_identity(self):
        """Identical colors have zero difference."""
        lab = srgb_to_lab(np.array([[12, 200, 99]], dtype=np.uint8))
        assert ciede2000(lab[0], lab)[0] == 0.0


class TestColorMatcher(unittest.TestCase):
    """Tests for ColorMatcher."""

    def test_exact_match(self):
        """A palette color matches itself under both metrics."""
        for metric in ("ciede2000", "euclidean"):
            matcher = ColorMatcher(WOOL, metric)
            for material, color in WOOL.items():
                assert matcher.match(color) == material

    def test_nearest_match(self):
        """Colors resolve to the visually closest block."""
        matcher = ColorMatcher(WOOL)
        assert matcher.match((200, 20, 20)) == "minecraft:red_wool"
        assert matcher.match((250, 250, 250, 255)) == "minecraft:white_wool"
        assert matcher.match((30, 40, 200)) == "minecraft:blue_wool"

    def test_result_has_minimal_distance(self):
        """The match is never farther than any other entry."""
        rng = np.random.default_rng(3)
        for metric in ("ciede2000", "euclidean"):
            matcher = ColorMatcher(WOOL, metric)
            for color in rng.integers(0, 256, size=(50, 3)):
                distances = matcher.distances(color)
                chosen = matcher.materials.index(matcher.match(color))
                assert distances[chosen] <= distances.min()

    def test_tie_resolves_to_first_declared(self):
        """Equidistant entries resolve to declaration order."""
        matcher = ColorMatcher({"a": (10, 0, 0), "b": (0, 10, 0)}, "euclidean")
        assert matcher.match((0, 0, 0)) == "a"

        duplicated = ColorMatcher({"dark": (5, 5, 5), "light": (90, 90, 90), "dark_copy": (5, 5, 5)})
        assert duplicated.match((5, 5, 5)) == "dark"

    def test_match_many(self):
        """match_many keeps input order."""
        matcher = ColorMatcher(WOOL)
        result = matcher.match_many([(0, 0, 0), (255, 255, 255)])
        assert result == ["minecraft:black_wool", "minecraft:white_wool"]

    def test_shared_across_threads(self):
        """One matcher answers concurrent queries like sequential ones."""
        rng = np.random.default_rng(9)
        colors = [tuple(int(c) for c in color) for color in rng.integers(0, 256, size=(500, 3))]
        for metric in ("ciede2000", "euclidean"):
            matcher = ColorMatcher(WOOL, metric)
            expected = [matcher.match(color) for color in colors]

            with ThreadPoolExecutor(max_workers=8) as pool:
                result = list(pool.map(matcher.match, colors))
            assert result == expected

    def test_empty_palette(self):
        """An empty palette cannot be matched against."""
        with self.assertRaises(EmptyPalette):
            ColorMatcher({})

    def test_unknown_metric(self):
        """Unknown metrics are rejected."""
        with self.assertRaises(ValueError):
            ColorMatcher(WOOL, "manhattan")


if __name__ == "__main__":
    unittest.main(verbosity=2)
