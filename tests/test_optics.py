"""Sellmeier glasses, Snell refraction and Fresnel reflectance."""

from __future__ import annotations

import math
import unittest

import numpy as np

from prism_core.glass import AIR_INDEX, BK7, F2, GLASS_MATERIALS, NBK7, SF11, cauchy_index, get_material, medium_index, refractive_index, sellmeier_derivative
from prism_core.rays import Ray
from prism_core.refraction import (
    REFRACT_OFFSET,
    angular_dispersion,
    attempt_tir_reflection,
    critical_angle,
    dispersion_spread,
    fresnel_reflectance,
    minimum_deviation,
    reflect_ray,
    refract_ray,
    snell_refract,
)


class GlassTests(unittest.TestCase):
    def test_catalogue_matches_nd(self) -> None:
        for glass in (BK7, SF11, F2, NBK7):
            self.assertAlmostEqual(refractive_index(587.56, glass), glass.nd, places=3, msg=glass.name)

    def test_normal_dispersion_everywhere_in_the_visible(self) -> None:
        wl = np.linspace(400.0, 700.0, 31)
        for key, glass in GLASS_MATERIALS.items():
            n = np.array([refractive_index(w, glass) for w in wl])
            self.assertTrue(np.all(np.diff(n) < 0.0), key)
            self.assertLess(sellmeier_derivative(550.0, glass), 0.0)

    def test_flint_disperses_more_than_crown(self) -> None:
        spread = {k: refractive_index(400.0, g) - refractive_index(700.0, g) for k, g in GLASS_MATERIALS.items()}
        self.assertGreater(spread["SF11"], spread["F2"])
        self.assertGreater(spread["F2"], spread["BK7"])

    def test_lookup_is_case_insensitive_and_rejects_unknown(self) -> None:
        self.assertIs(get_material("sf11"), SF11)
        self.assertIs(get_material("N-BK7"), NBK7)
        with self.assertRaises(KeyError):
            get_material("unobtainium")

    def test_air_and_cauchy(self) -> None:
        self.assertEqual(medium_index(None, 550.0), AIR_INDEX)
        self.assertEqual(medium_index(BK7, 550.0), refractive_index(550.0, BK7))
        self.assertAlmostEqual(cauchy_index(1000.0, 1.5, 0.004), 1.504, places=12)


class SnellFresnelTests(unittest.TestCase):
    def _dir(self, angle_deg: float) -> np.ndarray:
        a = math.radians(angle_deg)
        return np.array([math.sin(a), 0.0, math.cos(a)])

    def test_critical_angle_glass_to_air(self) -> None:
        self.assertAlmostEqual(math.degrees(critical_angle(1.5, 1.0)), 41.8103, places=3)
        self.assertIsNone(critical_angle(1.0, 1.5))

    def test_tir_above_critical_refraction_below(self) -> None:
        n = np.array([0.0, 0.0, -1.0])
        self.assertIsNone(snell_refract(self._dir(45.0), n, 1.5, 1.0))
        t = snell_refract(self._dir(40.0), n, 1.5, 1.0)
        self.assertIsNotNone(t)
        self.assertAlmostEqual(math.sin(math.acos(t[2])), 1.5 * math.sin(math.radians(40.0)), places=12)

    def test_refracted_direction_obeys_snell(self) -> None:
        t = snell_refract(self._dir(30.0), np.array([0.0, 0.0, -1.0]), 1.0, 1.5)
        self.assertAlmostEqual(float(np.linalg.norm(t)), 1.0, places=12)
        self.assertAlmostEqual(t[0], 0.5 / 1.5, places=12)
        self.assertGreater(t[2], 0.0)

    def test_normal_facing_either_way_gives_same_result(self) -> None:
        a = snell_refract(self._dir(20.0), np.array([0.0, 0.0, -1.0]), 1.0, 1.5)
        b = snell_refract(self._dir(20.0), np.array([0.0, 0.0, 1.0]), 1.0, 1.5)
        np.testing.assert_allclose(a, b, atol=1e-12)

    def test_fresnel_limits(self) -> None:
        self.assertAlmostEqual(fresnel_reflectance(1.0, 1.0, 1.5), 0.04, places=12)
        self.assertAlmostEqual(1.0 - fresnel_reflectance(1.0, 1.0, 1.5), 0.96, places=12)
        self.assertAlmostEqual(fresnel_reflectance(0.0, 1.0, 1.5), 1.0, places=12)
        self.assertEqual(fresnel_reflectance(math.cos(math.radians(45.0)), 1.5, 1.0), 1.0)

    def test_fresnel_is_reciprocal(self) -> None:
        n = 1.6
        theta1 = math.radians(50.0)
        theta2 = math.asin(math.sin(theta1) / n)
        self.assertAlmostEqual(fresnel_reflectance(math.cos(theta1), 1.0, n), fresnel_reflectance(math.cos(theta2), n, 1.0), places=12)


class RayInterfaceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ray = Ray(np.zeros(3), np.array([0.0, 0.0, 1.0]), wavelength=589.0)
        self.hit = self.ray.intersect_plane(np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, 5.0]))

    def test_refract_ray_scales_intensity_and_offsets_origin(self) -> None:
        out = refract_ray(self.ray, self.hit, None, BK7)
        n = refractive_index(589.0, BK7)
        r = ((n - AIR_INDEX) / (n + AIR_INDEX)) ** 2
        self.assertAlmostEqual(out.intensity, 1.0 - r, places=12)
        np.testing.assert_allclose(out.origin, [0.0, 0.0, 5.0 + REFRACT_OFFSET], atol=1e-12)
        np.testing.assert_allclose(out.direction, [0.0, 0.0, 1.0], atol=1e-12)
        self.assertEqual(out.wavelength, 589.0)

    def test_reflected_and_transmitted_share_the_energy(self) -> None:
        t = refract_ray(self.ray, self.hit, None, SF11)
        r = reflect_ray(self.ray, self.hit, None, SF11)
        self.assertAlmostEqual(t.intensity + r.intensity, 1.0, places=12)
        np.testing.assert_allclose(r.direction, [0.0, 0.0, -1.0], atol=1e-12)

    def test_tir_reflection_applies_loss(self) -> None:
        out = attempt_tir_reflection(self.ray, self.hit)
        self.assertAlmostEqual(out.intensity, 0.99, places=12)
        np.testing.assert_allclose(out.direction, [0.0, 0.0, -1.0], atol=1e-12)


class DeviationTests(unittest.TestCase):
    def test_minimum_deviation_closed_form(self) -> None:
        apex = math.radians(60.0)
        n = refractive_index(589.0, BK7)
        self.assertAlmostEqual(minimum_deviation(apex, 589.0, BK7), 2.0 * math.asin(0.5 * n) - apex, places=12)
        self.assertGreater(minimum_deviation(apex, 400.0, BK7), minimum_deviation(apex, 700.0, BK7))

    def test_no_transmission_returns_pi(self) -> None:
        self.assertEqual(minimum_deviation(math.radians(100.0), 589.0, SF11), math.pi)
        self.assertEqual(angular_dispersion(math.radians(100.0), 589.0, SF11), math.inf)

    def test_dispersion_spread_matches_difference(self) -> None:
        apex = math.radians(60.0)
        spread = dispersion_spread(apex, 400.0, 700.0, F2)
        self.assertAlmostEqual(spread, minimum_deviation(apex, 400.0, F2) - minimum_deviation(apex, 700.0, F2), places=12)
        self.assertLess(angular_dispersion(apex, 550.0, F2), 0.0)


if __name__ == "__main__":
    unittest.main()
