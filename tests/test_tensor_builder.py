import unittest
from unittest import mock

import cv2
import numpy as np

from infer_kit.errors import EmptyImageError, ProcessingError
from infer_kit.preprocess import (
    TensorBuilder,
    TensorBuilderConfig,
    build,
    channel_permutation,
    planar_index,
)
from infer_kit.types import RawImage


def _solid(h: int, w: int, bgr) -> np.ndarray:
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[:, :] = bgr
    return img


class TestTensorBuilderShape(unittest.TestCase):
    def test_shape_size_and_range(self) -> None:
        rng = np.random.default_rng(0)
        img = rng.integers(0, 256, size=(23, 37, 3), dtype=np.uint8)
        t = build(img, 16, 12)
        self.assertEqual(t.shape, (1, 3, 12, 16))
        self.assertEqual(t.size, 3 * 16 * 12)
        self.assertEqual(t.dtype, np.float32)
        self.assertTrue(t.flags["C_CONTIGUOUS"])
        self.assertGreaterEqual(float(t.min()), 0.0)
        self.assertLessEqual(float(t.max()), 1.0)

    def test_extremes_map_to_zero_and_one(self) -> None:
        self.assertTrue(np.all(build(_solid(3, 3, (0, 0, 0)), 3, 3) == 0.0))
        self.assertTrue(np.all(build(_solid(3, 3, (255, 255, 255)), 3, 3) == 1.0))

    def test_each_call_returns_fresh_tensor(self) -> None:
        img = _solid(4, 4, (1, 2, 3))
        a = build(img, 4, 4)
        b = build(img, 4, 4)
        self.assertFalse(np.shares_memory(a, b))
        self.assertFalse(np.shares_memory(a, img))

    def test_input_is_not_mutated(self) -> None:
        rng = np.random.default_rng(1)
        img = rng.integers(0, 256, size=(8, 6, 3), dtype=np.uint8)
        before = img.copy()
        build(img, 5, 5)
        self.assertTrue(np.array_equal(img, before))


class TestPlanarLayout(unittest.TestCase):
    def test_channel_zero_plane_first(self) -> None:
        h, w = 5, 7
        pixels = np.zeros((h, w, 3), dtype=np.uint8)
        pixels[:, :, 0] = 255
        t = TensorBuilder(TensorBuilderConfig(target_order="RGB")).build(RawImage(pixels, channel_order="RGB"), w, h)
        flat = t.reshape(-1)
        self.assertTrue(np.all(flat[: h * w] == 1.0))
        self.assertTrue(np.all(flat[h * w :] == 0.0))

    def test_red_from_bgr_source_lands_in_first_plane(self) -> None:
        h, w = 4, 6
        pixels = np.zeros((h, w, 3), dtype=np.uint8)
        pixels[:, :, 2] = 255  # R in BGR storage
        flat = build(RawImage(pixels, channel_order="BGR"), w, h).reshape(-1)
        self.assertTrue(np.all(flat[: h * w] == 1.0))
        self.assertTrue(np.all(flat[h * w :] == 0.0))

    def test_explicit_index_formula(self) -> None:
        h, w = 6, 9
        rng = np.random.default_rng(2)
        pixels = rng.integers(0, 256, size=(h, w, 3), dtype=np.uint8)
        flat = build(RawImage(pixels, channel_order="BGR"), w, h).reshape(-1)
        perm = channel_permutation("BGR", "RGB")
        for c in range(3):
            for r in range(h):
                for col in range(w):
                    expected = np.float32(pixels[r, col, perm[c]]) / np.float32(255.0)
                    self.assertAlmostEqual(float(flat[planar_index(c, r, col, h, w)]), float(expected), places=6)

    def test_planar_index_values(self) -> None:
        self.assertEqual(planar_index(0, 0, 0, 4, 5), 0)
        self.assertEqual(planar_index(0, 1, 0, 4, 5), 5)
        self.assertEqual(planar_index(1, 0, 0, 4, 5), 20)
        self.assertEqual(planar_index(2, 3, 4, 4, 5), 2 * 20 + 3 * 5 + 4)


class TestColorOrder(unittest.TestCase):
    def test_bgr_pixel_is_reordered_to_rgb(self) -> None:
        t = build(_solid(4, 4, (10, 20, 30)), 4, 4)
        self.assertAlmostEqual(float(t[0, 0, 2, 3]), 30 / 255.0, places=6)
        self.assertAlmostEqual(float(t[0, 1, 2, 3]), 20 / 255.0, places=6)
        self.assertAlmostEqual(float(t[0, 2, 2, 3]), 10 / 255.0, places=6)

    def test_same_order_is_identity_permutation(self) -> None:
        self.assertEqual(channel_permutation("RGB", "RGB"), (0, 1, 2))
        self.assertEqual(channel_permutation("BGR", "RGB"), (2, 1, 0))
        self.assertEqual(channel_permutation("bgr", "GBR"), (1, 0, 2))

    def test_bgr_target_keeps_native_order(self) -> None:
        builder = TensorBuilder(TensorBuilderConfig(target_order="BGR"))
        t = builder.build(_solid(2, 2, (10, 20, 30)), 2, 2)
        self.assertAlmostEqual(float(t[0, 0, 0, 0]), 10 / 255.0, places=6)
        self.assertAlmostEqual(float(t[0, 2, 0, 0]), 30 / 255.0, places=6)

    def test_invalid_order_rejected(self) -> None:
        with self.assertRaises(ValueError):
            TensorBuilderConfig(target_order="RGBA")
        with self.assertRaises(ValueError):
            RawImage(np.zeros((1, 1, 3), dtype=np.uint8), channel_order="RRG")


class TestResize(unittest.TestCase):
    def test_uniform_image_stays_uniform(self) -> None:
        for src_h, src_w in [(30, 50), (5, 3), (1, 1), (480, 640)]:
            t = build(_solid(src_h, src_w, (40, 80, 120)), 7, 5)
            self.assertEqual(t.size, 3 * 7 * 5)
            self.assertTrue(np.allclose(t[0, 0], 120 / 255.0))
            self.assertTrue(np.allclose(t[0, 1], 80 / 255.0))
            self.assertTrue(np.allclose(t[0, 2], 40 / 255.0))

    def test_aspect_ratio_is_not_preserved(self) -> None:
        t = build(_solid(10, 100, (1, 1, 1)), 8, 8)
        self.assertEqual(t.shape, (1, 3, 8, 8))

    def test_resize_failure_is_processing_error(self) -> None:
        with mock.patch("infer_kit.preprocess.cv2.resize", side_effect=cv2.error("boom")):
            with self.assertRaises(ProcessingError) as ctx:
                build(_solid(4, 4, (1, 2, 3)), 2, 2)
        self.assertIsInstance(ctx.exception.__cause__, cv2.error)


class TestValidation(unittest.TestCase):
    def test_empty_inputs(self) -> None:
        for image in [
            None,
            RawImage(None),
            np.zeros((0, 0, 3), dtype=np.uint8),
            np.zeros((0, 5, 3), dtype=np.uint8),
            np.zeros((5, 0, 3), dtype=np.uint8),
        ]:
            with self.assertRaises(EmptyImageError):
                build(image, 4, 4)

    def test_wrong_layout_or_dtype(self) -> None:
        with self.assertRaises(ProcessingError):
            build(np.zeros((4, 4), dtype=np.uint8), 2, 2)
        with self.assertRaises(ProcessingError):
            build(np.zeros((4, 4, 4), dtype=np.uint8), 2, 2)
        with self.assertRaises(ProcessingError):
            build(np.zeros((4, 4, 3), dtype=np.float32), 2, 2)

    def test_bad_target_size(self) -> None:
        with self.assertRaises(ValueError):
            build(_solid(4, 4, (0, 0, 0)), 0, 4)

    def test_unsupported_type(self) -> None:
        with self.assertRaises(TypeError):
            build([[1, 2, 3]], 2, 2)


class TestStandardization(unittest.TestCase):
    def test_mean_std_applied_after_scale(self) -> None:
        cfg = TensorBuilderConfig(mean=(0.5, 0.5, 0.5), std=(0.5, 0.5, 0.5))
        builder = TensorBuilder(cfg)
        self.assertTrue(np.allclose(builder.build(_solid(2, 2, (255, 255, 255)), 2, 2), 1.0))
        self.assertTrue(np.allclose(builder.build(_solid(2, 2, (0, 0, 0)), 2, 2), -1.0))

    def test_default_is_scale_only(self) -> None:
        self.assertTrue(TensorBuilderConfig().scale_only)

    def test_invalid_std(self) -> None:
        with self.assertRaises(ValueError):
            TensorBuilderConfig(std=(1.0, 0.0, 1.0))
        with self.assertRaises(ValueError):
            TensorBuilderConfig(mean=(0.1, 0.2))


if __name__ == "__main__":
    unittest.main()
