"""
Unit tests for deconvolution and unfolding.
"""

import unittest
import numpy as np
from pathlib import Path
import sys

from scipy.signal import argrelmax

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gammaspec.deconvolution import (
    gaussian_response,
    deconvolve_gold,
    deconvolve_richardson_lucy,
    unfold
)
from gammaspec.exceptions import ParameterError, DegenerateInputError
from gammaspec.spectrum import ResponseKernel


def top_maxima(values, count):
    """Positions of the `count` highest local maxima, sorted by position."""
    maxima = argrelmax(values)[0]
    ranked = maxima[np.argsort(values[maxima])[::-1]]
    return sorted(ranked[:count])


class TestGaussianResponse(unittest.TestCase):
    """Test response vector generation."""

    def test_shape_and_peak(self):
        """Response is causal with its peak at 3*sigma."""
        response = gaussian_response(64, 2.0)

        self.assertEqual(len(response), 64)
        self.assertEqual(np.argmax(response), 6)
        self.assertEqual(response[6], 1000)
        np.testing.assert_array_equal(response, np.floor(response))

    def test_kernel_description(self):
        """Support ends where the quantized response drops to zero."""
        kernel = ResponseKernel.from_values(gaussian_response(256, 3.0))

        self.assertEqual(kernel.peak_position, 9)
        self.assertEqual(kernel.support, 21)
        self.assertEqual(kernel.values[kernel.support], 0)
        self.assertGreater(kernel.values[kernel.support - 1], 0)


class TestGoldDeconvolution(unittest.TestCase):
    """Test Gold deconvolution."""

    def setUp(self):
        """Create a blurred two-line spectrum."""
        self.size = 256
        self.response = gaussian_response(self.size, 3.0)
        lines = np.zeros(self.size)
        lines[80] = 100.0
        lines[160] = 50.0
        self.source = np.convolve(lines, self.response)[:self.size]

    def test_unit_impulse(self):
        """A unit impulse response returns the source."""
        source = np.array([0.0, 3.0, 7.0, 1.0, 0.0, 12.0, 5.0])
        impulse = np.zeros(7)
        impulse[0] = 1.0

        result = deconvolve_gold(source, impulse, 10)

        np.testing.assert_allclose(result, source)

    def test_unit_impulse_with_boosting(self):
        """Boosted repetitions keep an exact solution."""
        source = np.array([2.0, 3.0, 7.0, 1.0, 4.0])
        impulse = np.array([1.0, 0.0, 0.0, 0.0, 0.0])

        result = deconvolve_gold(source, impulse, 5, number_repetitions=3, boost=2.0)

        np.testing.assert_allclose(result, source)

    def test_lines_recovered(self):
        """Deconvolved maxima coincide with the source peaks."""
        result = deconvolve_gold(self.source, self.response, 1000)

        self.assertEqual(top_maxima(result, 2), [89, 169])
        self.assertGreater(result[89], result[169])

    def test_sharpens(self):
        """The deconvolved peak is narrower than the source peak."""
        result = deconvolve_gold(self.source, self.response, 1000)

        source_width = np.sum(self.source[70:110] > self.source[89] / 2)
        result_width = np.sum(result[70:110] > result[89] / 2)
        self.assertLess(result_width, source_width)

    def test_zero_iterations(self):
        """Without iterations the estimate is the scaled initial guess."""
        result = deconvolve_gold(self.source, self.response, 0)
        kernel = ResponseKernel.from_values(self.response)

        np.testing.assert_allclose(result, np.full(self.size, kernel.area))

    def test_input_not_modified(self):
        """Source and response are left untouched."""
        source = self.source.copy()
        response = self.response.copy()
        deconvolve_gold(self.source, self.response, 10)

        np.testing.assert_array_equal(self.source, source)
        np.testing.assert_array_equal(self.response, response)

    def test_errors(self):
        """Invalid input is rejected."""
        with self.assertRaises(DegenerateInputError):
            deconvolve_gold(self.source, np.zeros(self.size), 10)
        with self.assertRaises(ParameterError):
            deconvolve_gold(self.source, self.response[:100], 10)
        with self.assertRaises(ParameterError):
            deconvolve_gold(self.source, self.response, 10, number_repetitions=0)
        with self.assertRaises(ParameterError):
            deconvolve_gold(self.source, self.response, -1)


class TestRichardsonLucy(unittest.TestCase):
    """Test Richardson-Lucy deconvolution."""

    def setUp(self):
        """Create a blurred two-line spectrum."""
        self.size = 256
        self.response = gaussian_response(self.size, 3.0)
        lines = np.zeros(self.size)
        lines[80] = 100.0
        lines[160] = 50.0
        self.source = np.convolve(lines, self.response)[:self.size]

    def test_unit_impulse(self):
        """A unit impulse response returns the source."""
        source = np.array([0.0, 3.0, 7.0, 1.0, 0.0, 12.0, 5.0])
        impulse = np.zeros(7)
        impulse[0] = 1.0

        result = deconvolve_richardson_lucy(source, impulse, 10)

        np.testing.assert_allclose(result, source)

    def test_lines_recovered(self):
        """Deconvolved maxima coincide with the source peaks."""
        result = deconvolve_richardson_lucy(self.source, self.response, 200)

        self.assertEqual(top_maxima(result, 2), [89, 169])

    def test_estimate_limited_to_valid_range(self):
        """Channels past size - support + posit stay zero."""
        result = deconvolve_richardson_lucy(self.source, self.response, 20)
        kernel = ResponseKernel.from_values(self.response)

        valid = self.size - kernel.support + 1
        tail = np.roll(np.arange(self.size) >= valid, kernel.peak_position)
        np.testing.assert_array_equal(result[tail], 0.0)

    def test_non_negative(self):
        """Estimates never become negative."""
        rng = np.random.RandomState(3)
        noisy = rng.poisson(self.source + 5).astype(float)
        result = deconvolve_richardson_lucy(noisy, self.response, 50,
                                            number_repetitions=2, boost=1.2)
        self.assertTrue(np.all(result >= 0))

    def test_errors(self):
        """Invalid input is rejected."""
        with self.assertRaises(DegenerateInputError):
            deconvolve_richardson_lucy(self.source, np.zeros(self.size), 10)
        with self.assertRaises(ParameterError):
            deconvolve_richardson_lucy(self.source[:10], self.response, 10)
        with self.assertRaises(ParameterError):
            deconvolve_richardson_lucy(self.source, self.response, 10, number_repetitions=0)


class TestUnfolding(unittest.TestCase):
    """Test unfolding with a response matrix."""

    def test_identity_matrix(self):
        """The identity matrix returns the source."""
        source = np.array([4.0, 0.0, 9.0, 2.0, 5.0])

        result = unfold(source, np.eye(5), 10)

        np.testing.assert_allclose(result, source)

    def test_permutation_matrix(self):
        """A reversing response matrix is inverted."""
        source = np.array([1.0, 2.0, 3.0, 4.0])

        result = unfold(source, np.eye(4)[::-1], 5)

        np.testing.assert_allclose(result, source[::-1])

    def test_rows_normalized(self):
        """Scaling a response row does not change the solution."""
        source = np.array([3.0, 6.0, 1.0])
        matrix = np.diag([2.0, 5.0, 0.5])

        result = unfold(source, matrix, 10)

        np.testing.assert_allclose(result, source)

    def test_fewer_outputs(self):
        """Outputs past the destination size are zero."""
        matrix = np.array([[1.0, 1.0, 0.0, 0.0, 0.0],
                           [0.0, 0.0, 1.0, 1.0, 0.0],
                           [0.0, 0.0, 0.0, 0.0, 1.0]])
        source = np.array([2.0, 2.0, 3.0, 3.0, 8.0])

        result = unfold(source, matrix, 50)

        self.assertEqual(len(result), 5)
        np.testing.assert_array_equal(result[3:], 0.0)
        np.testing.assert_allclose(result[:3], [4.0, 6.0, 8.0], rtol=1e-6)

    def test_errors(self):
        """Invalid dimensions and degenerate matrices are rejected."""
        source = np.ones(4)

        with self.assertRaises(ParameterError):
            unfold(source, np.ones((5, 4)), 10)
        with self.assertRaises(ParameterError):
            unfold(source, np.eye(3), 10)
        with self.assertRaises(ParameterError):
            unfold(source, np.eye(4), 0)
        with self.assertRaises(ParameterError):
            unfold(source, np.eye(4), 10, number_repetitions=0)
        with self.assertRaises(ParameterError):
            unfold(source, np.ones(4), 10)

        matrix = np.eye(4)
        matrix[2, 2] = 0.0
        with self.assertRaises(DegenerateInputError):
            unfold(source, matrix, 10)


if __name__ == '__main__':
    unittest.main()
