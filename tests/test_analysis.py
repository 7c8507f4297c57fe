"""Dispersion tables, path statistics and spectrum colours."""

from __future__ import annotations

import math
import unittest

import numpy as np

from analysis.dispersion import (
    deviation_angle,
    deviation_at_incidence,
    dispersion_table,
    minimum_deviation_incidence,
    numeric_minimum_deviation,
)
from analysis.path_stats import backdrop_endpoints, check_path_invariants, intensity_budget, spectral_spread
from prism_core.glass import BK7, SF11, refractive_index
from prism_core.rays import Ray, RayPath, RaySegment
from prism_core.spectrum import (
    COLOR_GROUPS,
    color_group_for_wavelength,
    mix_colors,
    spectral_bands,
    spectrum_samples,
    wavelength_to_hex,
    wavelength_to_rgb,
)

APEX = math.radians(60.0)


def _path(points, termination="backdrop", wavelength=550.0, intensities=None) -> RayPath:
    intensities = intensities or [1.0] * (len(points) - 1)
    segs = []
    for i in range(len(points) - 1):
        a = np.asarray(points[i], dtype=float)
        b = np.asarray(points[i + 1], dtype=float)
        ray = Ray(a, b - a, wavelength, intensities[i])
        segs.append(RaySegment(a, b, ray, "backdrop" if i == len(points) - 2 else "solid", 0))
    final = np.asarray(points[-1], dtype=float) if termination == "backdrop" else None
    return RayPath(tuple(segs), final, wavelength, intensities[-1], termination)


class DispersionTests(unittest.TestCase):
    def test_numeric_search_matches_closed_form(self) -> None:
        for glass in (BK7, SF11):
            n = refractive_index(589.0, glass)
            res = numeric_minimum_deviation(APEX, n)
            self.assertTrue(res["success"])
            self.assertAlmostEqual(res["deviation"], 2.0 * math.asin(0.5 * n) - APEX, places=7)
            self.assertAlmostEqual(res["theta_i"], minimum_deviation_incidence(APEX, n), places=3)

    def test_deviation_at_incidence(self) -> None:
        n = 1.5168
        theta = minimum_deviation_incidence(APEX, n)
        self.assertAlmostEqual(deviation_at_incidence(APEX, theta, n), 2.0 * theta - APEX, places=12)
        self.assertGreater(deviation_at_incidence(APEX, theta + 0.1, n), deviation_at_incidence(APEX, theta, n))
        self.assertTrue(math.isnan(deviation_at_incidence(APEX, math.radians(10.0), n)))

    def test_table_rows(self) -> None:
        rows = dispersion_table(APEX, SF11, wavelengths=[450.0, 650.0])
        self.assertEqual([r["wavelength"] for r in rows], [450.0, 650.0])
        self.assertGreater(rows[0]["deviation"], rows[1]["deviation"])
        self.assertAlmostEqual(rows[0]["deviation_deg"], math.degrees(rows[0]["deviation"]), places=12)

    def test_deviation_angle(self) -> None:
        self.assertAlmostEqual(deviation_angle(np.array([1.0, 0.0, 0.0]), np.array([0.0, 0.0, 2.0])), 0.5 * math.pi, places=12)
        self.assertEqual(deviation_angle(np.array([1.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])), 0.0)


class PathStatsTests(unittest.TestCase):
    def test_budget_and_endpoints(self) -> None:
        paths = [
            _path([(0, 0, 0), (35, 0, 0)], intensities=[0.4]),
            _path([(0, 0, 0), (35, 0, 1)], wavelength=650.0, intensities=[0.2]),
            _path([(0, 0, 0), (14, 0, 0)], termination="absorbed", intensities=[0.3]),
        ]
        budget = intensity_budget(paths)
        self.assertEqual(budget["backdrop"]["count"], 2)
        self.assertAlmostEqual(budget["backdrop"]["intensity"], 0.6, places=12)
        self.assertEqual(budget["absorbed"]["count"], 1)
        ends = backdrop_endpoints(paths)
        self.assertEqual(len(ends), 2)
        spread = spectral_spread(paths)
        self.assertAlmostEqual(spread["max_separation"], 1.0, places=12)
        self.assertEqual(sorted(spread["centroids"]), [550.0, 650.0])

    def test_invariant_checks_flag_gaps_and_gains(self) -> None:
        ok = _path([(0, 0, 0), (5, 0, 0), (10, 0, 0)], intensities=[0.5, 0.4])
        self.assertEqual(check_path_invariants([ok]), [])
        gain = _path([(0, 0, 0), (5, 0, 0), (10, 0, 0)], intensities=[0.4, 0.5])
        self.assertTrue(any("rose" in m for m in check_path_invariants([gain])))
        a = _path([(0, 0, 0), (5, 0, 0)])
        b = _path([(6, 0, 0), (10, 0, 0)])
        gap = RayPath(a.segments + b.segments, b.final_position, 550.0, 1.0, "backdrop")
        self.assertTrue(any("gap" in m for m in check_path_invariants([gap])))


class SpectrumTests(unittest.TestCase):
    def test_samples(self) -> None:
        self.assertEqual(spectrum_samples(3), [400.0, 540.0, 680.0])
        self.assertEqual(spectrum_samples(1), [540.0])
        self.assertEqual(spectrum_samples(0), [])
        self.assertEqual(len(spectrum_samples(12)), 12)

    def test_colours(self) -> None:
        self.assertEqual(wavelength_to_hex(650.0), "#ff0000")
        self.assertEqual(wavelength_to_rgb(300.0), (0, 0, 0))
        self.assertEqual(wavelength_to_rgb(450.0)[2], 255)
        self.assertEqual(len(spectral_bands()), 7)
        self.assertEqual(mix_colors([(200, 0, 0), (100, 50, 0)]), (255, 50, 0))

    def test_colour_groups(self) -> None:
        self.assertIs(color_group_for_wavelength(450.0), COLOR_GROUPS["cool"])
        self.assertIs(color_group_for_wavelength(620.0), COLOR_GROUPS["warm"])
        self.assertIsNone(color_group_for_wavelength(720.0))
        self.assertEqual(COLOR_GROUPS["green"].samples(3), [490.0, 535.0, 580.0])


if __name__ == "__main__":
    unittest.main()
