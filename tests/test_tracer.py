"""Scene-level tracing: terminations, refraction physics, branching and the ray budget."""

from __future__ import annotations

import math
import unittest

import numpy as np

from analysis.dispersion import deviation_angle
from analysis.path_stats import check_path_invariants
from prism_core.glass import AIR_INDEX, BK7, refractive_index
from prism_core.rays import Ray
from prism_core.refraction import fresnel_reflectance, minimum_deviation
from prism_core.solids import Backdrop, rectangular_block, triangular_prism, wall
from prism_core.tracer import OpticalSystem, Scene, TraceConfig, _recover_trapped, trace, trace_ray, trace_rays
from scenarios.common import face_point, heading, min_deviation_rotation

X = np.array([1.0, 0.0, 0.0])


class TerminationTests(unittest.TestCase):
    def test_empty_scene_reaches_backdrop(self) -> None:
        path, children = trace_ray(Scene(), Ray(np.array([0.0, 5.0, 5.0]), X, 550.0, 0.5))
        self.assertEqual(children, [])
        self.assertEqual(path.termination, "backdrop")
        np.testing.assert_allclose(path.final_position, [35.0, 5.0, 5.0], atol=1e-12)
        self.assertEqual(path.intensity, 0.5)
        self.assertEqual(len(path.segments), 1)
        self.assertEqual(path.segments[0].hit_type, "backdrop")

    def test_origin_outside_bounds(self) -> None:
        path, _ = trace_ray(Scene(), Ray(np.array([200.0, 0.0, 0.0]), X))
        self.assertEqual(path.termination, "out_of_bounds")
        self.assertIsNone(path.final_position)
        self.assertEqual(path.intensity, 0.0)
        self.assertAlmostEqual(path.segments[0].length, 2.0, places=12)

    def test_ray_leaving_away_from_backdrop_escapes(self) -> None:
        path, _ = trace_ray(Scene(), Ray(np.array([0.0, 5.0, 5.0]), -X))
        self.assertEqual(path.termination, "escaped")
        self.assertIsNone(path.final_position)
        self.assertEqual(path.intensity, 0.0)
        self.assertAlmostEqual(path.segments[0].length, 50.0, places=9)

    def test_backdrop_hit_outside_bounds_escapes_at_edge(self) -> None:
        d = np.array([1.0, 1.0, 0.0])
        path, _ = trace_ray(Scene(), Ray(np.array([0.0, 45.0, 0.0]), d))
        self.assertEqual(path.termination, "escaped")
        self.assertAlmostEqual(path.segments[0].length, 5.0 * math.sqrt(2.0), places=9)
        self.assertAlmostEqual(float(path.segments[0].end[1]), 50.0, places=9)

    def test_blocker_absorbs(self) -> None:
        scene = Scene(blockers=(wall(position=(15.0, 5.0, 0.0)),))
        path, _ = trace_ray(scene, Ray(np.array([0.0, 5.7, 0.0]), X, 600.0, 0.3))
        self.assertEqual(path.termination, "absorbed")
        self.assertEqual(path.intensity, 0.0)
        np.testing.assert_allclose(path.final_position, [14.0, 5.7, 0.0], atol=1e-12)
        self.assertEqual(path.segments[-1].hit_type, "blocker")
        self.assertEqual(path.segments[-1].element_index, 0)

    def test_bounce_limit_and_faded(self) -> None:
        away = Ray(np.array([0.0, 5.0, 5.0]), -X)
        path, _ = trace_ray(Scene(), away, TraceConfig(max_bounces=0))
        self.assertEqual(path.termination, "bounce_limit")
        self.assertEqual(path.segments, ())
        dim = Ray(np.array([0.0, 5.0, 5.0]), -X, intensity=0.001)
        path, _ = trace_ray(Scene(), dim)
        self.assertEqual(path.termination, "faded")
        self.assertIsNone(path.final_position)

    def _tir_prism_scene(self):
        rot = math.radians(-30.0)
        prism = triangular_prism(5.0, 8.0, (20.0, 5.0, 0.0), rot, material=BK7)
        target = face_point(5.0, (20.0, 5.0, 0.0), rot, fraction_from_apex=0.75)
        return Scene(solids=(prism,)), Ray(target - 5.0 * X, X, 550.0, 0.8)

    def test_trapped_ray_is_mirrored_back_out(self) -> None:
        scene, ray = self._tir_prism_scene()
        behind = Backdrop(normal=np.array([1.0, 0.0, 0.0]), point=np.array([5.0, 0.0, 0.0]))
        path, children = trace_ray(scene, ray, TraceConfig(max_tir=0, backdrop=behind))
        self.assertEqual(children, [])
        self.assertEqual([s.hit_type for s in path.segments], ["solid", "solid", "backdrop"])
        self.assertEqual(path.termination, "backdrop")
        out = path.segments[-1].ray
        np.testing.assert_allclose(out.direction, -X, atol=1e-9)
        self.assertAlmostEqual(out.intensity, 0.99 * ray.intensity, places=12)
        self.assertAlmostEqual(path.intensity, 0.99 * ray.intensity, places=12)
        entry = path.segments[0].end
        np.testing.assert_allclose(path.final_position, [5.0, entry[1], entry[2]], atol=1e-9)

    def test_trapped_ray_escapes_with_default_backdrop(self) -> None:
        scene, ray = self._tir_prism_scene()
        path, _ = trace_ray(scene, ray, TraceConfig(max_tir=0))
        self.assertEqual([s.hit_type for s in path.segments], ["solid", "solid", "escaped"])
        self.assertEqual(path.termination, "escaped")
        np.testing.assert_allclose(path.segments[-1].ray.direction, -X, atol=1e-9)

    def test_recovery_needs_a_surface_hit(self) -> None:
        scene, ray = self._tir_prism_scene()
        cfg = TraceConfig()
        recovered = _recover_trapped(scene.solids[0], ray, cfg)
        self.assertIsNotNone(recovered)
        self.assertAlmostEqual(recovered.intensity, 0.99 * ray.intensity, places=12)
        away = Ray(ray.origin, -X, 550.0, 0.8)
        self.assertIsNone(_recover_trapped(scene.solids[0], away, cfg))

    def test_tracing_is_deterministic(self) -> None:
        scene = Scene(solids=(rectangular_block(3.0, 8.0, 6.0, (10.0, 5.0, 0.0), math.radians(30.0)),))
        ray = Ray(np.array([-10.0, 5.7, 0.3]), X, 480.0)
        a, _ = trace_ray(scene, ray)
        b, _ = trace_ray(scene, ray)
        self.assertEqual(a.termination, b.termination)
        self.assertEqual(a.intensity, b.intensity)
        np.testing.assert_array_equal(a.final_position, b.final_position)
        self.assertEqual(len(a.segments), len(b.segments))
        for sa, sb in zip(a.segments, b.segments):
            self.assertEqual(sa.hit_type, sb.hit_type)
            self.assertEqual(sa.element_index, sb.element_index)
            np.testing.assert_array_equal(sa.start, sb.start)
            np.testing.assert_array_equal(sa.end, sb.end)
            np.testing.assert_array_equal(sa.ray.direction, sb.ray.direction)
            self.assertEqual(sa.ray.intensity, sb.ray.intensity)

    def test_config_validation(self) -> None:
        with self.assertRaises(ValueError):
            TraceConfig(min_intensity=1.5)
        with self.assertRaises(ValueError):
            TraceConfig(max_rays=-1)
        with self.assertRaises(ValueError):
            TraceConfig(hit_epsilon=0.0)


class RefractionPhysicsTests(unittest.TestCase):
    def test_parallel_slab_preserves_direction(self) -> None:
        slab = rectangular_block(3.0, 8.0, 6.0, (10.0, 5.0, 0.0), math.radians(30.0), material=BK7)
        path, _ = trace_ray(Scene(solids=(slab,)), Ray(np.array([-10.0, 5.7, 0.3]), X, 550.0))
        self.assertEqual(path.termination, "backdrop")
        self.assertEqual([s.hit_type for s in path.segments], ["solid", "solid", "backdrop"])
        out = path.segments[-1].ray
        self.assertLess(deviation_angle(X, out.direction), 1e-4)
        n = refractive_index(550.0, BK7)
        cos_i = math.cos(math.radians(30.0))
        r = fresnel_reflectance(cos_i, AIR_INDEX, n)
        self.assertAlmostEqual(path.intensity, (1.0 - r) ** 2, places=9)
        # lateral shift, not a deflection
        self.assertGreater(abs(float(path.final_position[2]) - 0.3), 0.1)
        self.assertEqual(check_path_invariants([path]), [])

    def test_minimum_deviation_pass(self) -> None:
        wl = 589.0
        expected = minimum_deviation(math.radians(60.0), wl, BK7, n_medium=AIR_INDEX)
        theta1 = math.asin(refractive_index(wl, BK7) / AIR_INDEX * 0.5)
        r = fresnel_reflectance(math.cos(theta1), AIR_INDEX, refractive_index(wl, BK7))
        for heading_deg in (0.0, 90.0):
            with self.subTest(heading_deg=heading_deg):
                d = heading(heading_deg)
                rot = min_deviation_rotation(BK7, wl, heading_deg)
                prism = triangular_prism(5.0, 8.0, (0.0, 0.0, 0.0), rot, material=BK7)
                target = face_point(5.0, (0.0, 0.0, 0.0), rot)
                path, _ = trace_ray(Scene(solids=(prism,)), Ray(target - 10.0 * d, d, wl))
                self.assertEqual(path.termination, "backdrop")
                out = path.segments[-1].ray.direction
                self.assertAlmostEqual(deviation_angle(d, out), expected, places=9)
                # bent clockwise in the x-z plane, toward the prism base
                self.assertGreater(float(np.cross(d, out)[1]), 0.0)
                self.assertAlmostEqual(path.intensity, (1.0 - r) ** 2, places=9)
                self.assertAlmostEqual(float(path.segments[1].ray.direction[1]), 0.0, places=12)

    def test_violet_deviates_more_than_red(self) -> None:
        rot = min_deviation_rotation(BK7, 550.0, 0.0)
        prism = triangular_prism(5.0, 8.0, (0.0, 0.0, 0.0), rot, material=BK7)
        target = face_point(5.0, (0.0, 0.0, 0.0), rot)
        paths = trace(Scene(solids=(prism,)), [Ray(target - 10.0 * X, X, wl) for wl in (400.0, 680.0)])
        dev = [deviation_angle(X, p.segments[-1].ray.direction) for p in paths]
        self.assertGreater(dev[0], dev[1])
        self.assertLess(float(paths[0].final_position[2]), float(paths[1].final_position[2]))


class BranchingAndBudgetTests(unittest.TestCase):
    def setUp(self) -> None:
        self.scene = Scene(solids=(rectangular_block(4.0, 4.0, 4.0, (10.0, 5.0, 0.0)),))
        self.ray = Ray(np.array([0.0, 5.3, 0.2]), X, 589.0)

    def test_entry_reflection_branches_without_creating_energy(self) -> None:
        cfg = TraceConfig(split_reflections=True)
        path, children = trace_ray(self.scene, self.ray, cfg)
        self.assertEqual(path.termination, "branched")
        self.assertEqual(len(children), 2)
        self.assertLessEqual(sum(c.intensity for c in children), self.ray.intensity + 1e-12)
        n = refractive_index(589.0, BK7)
        r = fresnel_reflectance(1.0, AIR_INDEX, n)
        self.assertAlmostEqual(sum(c.intensity for c in children), (1.0 - r) ** 2 + r, places=12)

    def test_children_are_traced_fifo(self) -> None:
        paths = trace_rays(self.scene, [self.ray], TraceConfig(split_reflections=True))
        self.assertEqual([p.termination for p in paths], ["branched", "backdrop", "escaped"])

    def test_weak_reflections_do_not_branch(self) -> None:
        cfg = TraceConfig(split_reflections=True, min_intensity=0.05)
        path, children = trace_ray(self.scene, self.ray, cfg)
        self.assertEqual(children, [])
        self.assertEqual(path.termination, "backdrop")

    def test_ray_budget_caps_paths(self) -> None:
        rays = [Ray(np.array([0.0, 5.0 + 0.1 * i, 0.0]), X) for i in range(10)]
        with self.assertLogs("prism_core.tracer", level="WARNING"):
            paths = trace_rays(Scene(), rays, TraceConfig(max_rays=3))
        self.assertEqual(len(paths), 3)
        self.assertEqual(len(trace_rays(Scene(), rays)), 10)


class OpticalSystemTests(unittest.TestCase):
    def test_update_retraces_only_after_changes(self) -> None:
        system = OpticalSystem()
        self.assertTrue(system.needs_update)
        system.set_rays([Ray(np.array([0.0, 5.7, 0.0]), X)])
        first = system.update()
        self.assertFalse(system.needs_update)
        self.assertEqual(first[0].termination, "backdrop")

        blocker = wall(position=(15.0, 5.0, 0.0))
        system.add_blocker(blocker)
        self.assertTrue(system.needs_update)
        second = system.update()
        self.assertEqual(second[0].termination, "absorbed")
        self.assertEqual(len(system.blockers), 1)

    def test_solid_mutators(self) -> None:
        a = triangular_prism(5.0, 8.0, (0.0, 5.0, 0.0))
        b = triangular_prism(5.0, 8.0, (10.0, 5.0, 0.0))
        system = OpticalSystem(solids=[a])
        system.update()
        system.add_solid(a)
        self.assertFalse(system.needs_update)
        system.add_solid(b)
        self.assertEqual(len(system.solids), 2)
        system.remove_solid(a)
        self.assertEqual(system.solids, (b,))
        system.replace_solid(0, a)
        self.assertIs(system.solids[0], a)
        self.assertTrue(system.needs_update)
        scene = system.snapshot()
        self.assertEqual(scene.solids, (a,))
        self.assertEqual(scene.blockers, ())

    def test_backdrop_and_bounds_overrides(self) -> None:
        system = OpticalSystem()
        system.set_backdrop(np.array([-1.0, 0.0, 0.0]), np.array([20.0, 0.0, 0.0]))
        path = system.trace_ray(Ray(np.array([0.0, 5.0, 0.0]), X))
        np.testing.assert_allclose(path.final_position, [20.0, 5.0, 0.0], atol=1e-12)
        system.set_bounds(max_x=10.0)
        path = system.trace_ray(Ray(np.array([0.0, 5.0, 0.0]), X))
        self.assertEqual(path.termination, "escaped")
        self.assertEqual(system.config.bounds.max_x, 10.0)


if __name__ == "__main__":
    unittest.main()
