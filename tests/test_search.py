"""
Unit tests for the high-resolution peak search.
"""

import unittest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from gammaspec.search import PeakList, SearchResult, search_high_res
from gammaspec.exceptions import ParameterError, PeakBufferFullWarning
from gammaspec.utils import generate_synthetic_spectrum
from tests import two_peak_spectrum


class TestPeakList(unittest.TestCase):
    """Test the bounded ranked peak list."""

    def test_ranking(self):
        """Peaks are kept in descending amplitude order."""
        peaks = PeakList(10)
        for position, amplitude in ((10.0, 5.0), (20.0, 50.0), (30.0, 20.0)):
            peaks.insert(position, amplitude)

        self.assertEqual(peaks.positions, [20.0, 30.0, 10.0])
        self.assertEqual(peaks.amplitudes, [50.0, 20.0, 5.0])
        self.assertEqual(len(peaks), 3)
        self.assertFalse(peaks.full)

    def test_ties_follow_existing(self):
        """A peak equal to an existing one is placed after it."""
        peaks = PeakList(10)
        peaks.insert(1.0, 10.0)
        peaks.insert(2.0, 10.0)
        peaks.insert(3.0, 10.0)

        self.assertEqual(peaks.positions, [1.0, 2.0, 3.0])

    def test_capacity(self):
        """A full list drops the lowest peak or the newcomer."""
        peaks = PeakList(2)
        self.assertTrue(peaks.insert(1.0, 10.0))
        self.assertTrue(peaks.insert(2.0, 10.0))
        self.assertTrue(peaks.full)

        # Ties with the last entry do not displace it
        self.assertFalse(peaks.insert(3.0, 10.0))
        self.assertFalse(peaks.insert(4.0, 1.0))
        self.assertEqual(peaks.positions, [1.0, 2.0])

        self.assertTrue(peaks.insert(5.0, 20.0))
        self.assertEqual(peaks.positions, [5.0, 1.0])
        self.assertEqual(len(peaks), 2)

    def test_iteration(self):
        """Iterating yields (position, amplitude) pairs."""
        peaks = PeakList(3)
        peaks.insert(4.0, 1.0)
        peaks.insert(8.0, 2.0)

        self.assertEqual(list(peaks), [(8.0, 2.0), (4.0, 1.0)])

    def test_invalid_capacity(self):
        """Capacity must be positive."""
        with self.assertRaises(ParameterError):
            PeakList(0)


class TestHighResSearch(unittest.TestCase):
    """Test peak search on synthetic spectra."""

    def setUp(self):
        """Create test data."""
        self.counts = two_peak_spectrum()

    def test_two_peaks(self):
        """Two separated peaks are found, ranked by amplitude."""
        result = search_high_res(self.counts, sigma=3, threshold=10)

        self.assertEqual(result.n_peaks, 2)
        self.assertAlmostEqual(result.centroids[0], 100, delta=1)
        self.assertAlmostEqual(result.centroids[1], 300, delta=1)
        self.assertTrue(abs(result.positions[0] - 1 - 100) <= 1)
        self.assertTrue(abs(result.positions[1] - 1 - 300) <= 1)
        self.assertGreater(result.amplitudes[0], result.amplitudes[1])
        self.assertFalse(result.buffer_full)

    def test_positions_are_one_based(self):
        """Positions are the integer part of the centroid plus one."""
        result = search_high_res(self.counts, sigma=3, threshold=10)

        np.testing.assert_array_equal(result.positions,
                                      result.centroids.astype(int) + 1)

    def test_deconvolved_length(self):
        """The deconvolved spectrum matches the source length."""
        result = search_high_res(self.counts, sigma=3)

        self.assertEqual(len(result.deconvolved), len(self.counts))
        self.assertTrue(np.all(result.deconvolved >= 0))
        self.assertAlmostEqual(np.argmax(result.deconvolved), 100, delta=1)

    def test_high_threshold(self):
        """A threshold close to 100 keeps at most the highest peak."""
        result = search_high_res(self.counts, sigma=3, threshold=99.9)

        self.assertLessEqual(result.n_peaks, 1)

    def test_threshold_limits(self):
        """Thresholds outside (0, 100) are rejected."""
        with self.assertRaises(ParameterError):
            search_high_res(self.counts, sigma=3, threshold=100)
        with self.assertRaises(ParameterError):
            search_high_res(self.counts, sigma=3, threshold=0)

    def test_low_threshold_finds_more(self):
        """Lowering the threshold never loses peaks on noisy data."""
        _, counts = generate_synthetic_spectrum(num_channels=1024, seed=42)

        low = search_high_res(counts, sigma=3, threshold=20)
        high = search_high_res(counts, sigma=3, threshold=60)

        self.assertGreaterEqual(high.n_peaks, 1)
        self.assertGreater(low.n_peaks, high.n_peaks)
        self.assertAlmostEqual(high.centroids[0], 204.8, delta=2)
        for centroid in high.centroids:
            self.assertTrue(np.any(np.abs(low.centroids - centroid) < 1e-9))

    def test_threshold_near_zero(self):
        """A threshold near 0 also reports the small noise maxima."""
        _, counts = generate_synthetic_spectrum(num_channels=1024, seed=42)

        lowest = search_high_res(counts, sigma=3, threshold=0.5)
        low = search_high_res(counts, sigma=3, threshold=20)

        self.assertGreater(lowest.n_peaks, low.n_peaks)
        for centroid in low.centroids:
            self.assertTrue(np.any(np.abs(lowest.centroids - centroid) < 1e-9))

    def test_without_background_removal(self):
        """Peaks are found on the raw spectrum as well."""
        result = search_high_res(self.counts, sigma=3, threshold=10,
                                 background_remove=False)

        self.assertGreaterEqual(result.n_peaks, 2)
        self.assertAlmostEqual(result.centroids[0], 100, delta=1)

    def test_markov(self):
        """Markov smoothing keeps the peaks in place."""
        result = search_high_res(self.counts, sigma=3, threshold=10, markov=True,
                                 aver_window=3)

        self.assertGreaterEqual(result.n_peaks, 2)
        self.assertTrue(np.any(np.abs(result.centroids - 100) <= 2))
        self.assertTrue(np.any(np.abs(result.centroids - 300) <= 2))

    def test_markov_on_empty_spectrum(self):
        """Markov smoothing of an empty spectrum yields no peaks."""
        with self.assertLogs('gammaspec.search', level='WARNING'):
            result = search_high_res(np.zeros(200), sigma=2, markov=True)

        self.assertEqual(result.n_peaks, 0)
        np.testing.assert_array_equal(result.deconvolved, np.zeros(200))

    def test_zero_spectrum(self):
        """An all-zero spectrum yields no peaks."""
        result = search_high_res(np.zeros(128), sigma=2)

        self.assertEqual(result.n_peaks, 0)
        np.testing.assert_array_equal(result.deconvolved, np.zeros(128))

    def test_buffer_full(self):
        """A small peak list keeps the highest peak and warns."""
        with self.assertWarns(PeakBufferFullWarning):
            result = search_high_res(self.counts, sigma=3, threshold=10, max_peaks=1)

        self.assertTrue(result.buffer_full)
        self.assertEqual(result.n_peaks, 1)
        self.assertAlmostEqual(result.centroids[0], 100, delta=1)

    def test_parameter_errors(self):
        """Invalid parameters raise before any computation."""
        with self.assertRaises(ParameterError):
            search_high_res(self.counts, sigma=0.5)
        with self.assertRaises(ParameterError):
            search_high_res(self.counts, sigma=103)
        with self.assertRaises(ParameterError):
            search_high_res(self.counts, sigma=3, markov=True, aver_window=0)
        with self.assertRaises(ParameterError):
            search_high_res(self.counts, sigma=3, decon_iterations=-1)
        with self.assertRaises(ParameterError):
            search_high_res(self.counts, sigma=3, max_peaks=0)

    def test_clipping_window_limit(self):
        """Short spectra need background removal switched off."""
        short = self.counts[90:110]

        with self.assertRaises(ParameterError):
            search_high_res(short, sigma=2)

        result = search_high_res(short, sigma=2, background_remove=False)
        self.assertEqual(len(result.deconvolved), 20)

    def test_input_not_modified(self):
        """The source spectrum is left untouched."""
        original = self.counts.copy()
        search_high_res(self.counts, sigma=3, markov=True)
        np.testing.assert_array_equal(self.counts, original)


class TestSearchResult(unittest.TestCase):
    """Test the result container."""

    def test_records(self):
        """Records list peaks in rank order."""
        result = SearchResult(deconvolved=np.zeros(10),
                              positions=np.array([4, 8]),
                              centroids=np.array([3.2, 7.9]),
                              amplitudes=np.array([50.0, 20.0]))

        records = result.to_records()

        self.assertEqual(result.n_peaks, 2)
        self.assertEqual(records[0], {'rank': 1, 'position': 4,
                                      'centroid': 3.2, 'amplitude': 50.0})
        self.assertEqual(records[1]['rank'], 2)

    def test_empty(self):
        """An empty result has no records."""
        result = SearchResult(deconvolved=np.zeros(3))

        self.assertEqual(result.n_peaks, 0)
        self.assertEqual(result.to_records(), [])


if __name__ == '__main__':
    unittest.main()
