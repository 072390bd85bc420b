"""
GammaSpec - Gamma Spectrum Background Removal, Deconvolution and Peak Search
============================================================================

A Python package for processing one-dimensional gamma-ray spectra: SNIP
background estimation, Markov chain smoothing, Gold and Richardson-Lucy
deconvolution, unfolding with a response matrix, and high-resolution peak
search.

Basic Usage:
    from gammaspec import load_spectrum, estimate_background, search_high_res

    # Load spectrum
    channels, counts = load_spectrum('spectrum.csv')

    # Estimate background
    background = estimate_background(counts, number_iterations=20)

    # Search peaks
    result = search_high_res(counts, sigma=2, threshold=5)
    print(result.positions)

Command Line Usage:
    gammaspec spectrum.csv --sigma 2 --threshold 5
"""

__version__ = "0.1.0"

from .exceptions import (
    GammaSpecError,
    ParameterError,
    DegenerateInputError,
    PeakBufferFullWarning,
)
from .spectrum import SpectrumBuffer, ResponseKernel
from .background import estimate_background
from .smoothing import smooth_markov
from .deconvolution import (
    gaussian_response,
    deconvolve_gold,
    deconvolve_richardson_lucy,
    unfold,
)
from .search import PeakList, SearchResult, search_high_res
from .io_module import load_spectrum, load_response_matrix, save_peaks, load_config
from .output import plot_search_result, export_results

# Define what gets imported with "from gammaspec import *"
__all__ = [
    'GammaSpecError',
    'ParameterError',
    'DegenerateInputError',
    'PeakBufferFullWarning',
    'SpectrumBuffer',
    'ResponseKernel',
    'estimate_background',
    'smooth_markov',
    'gaussian_response',
    'deconvolve_gold',
    'deconvolve_richardson_lucy',
    'unfold',
    'PeakList',
    'SearchResult',
    'search_high_res',
    'load_spectrum',
    'load_response_matrix',
    'save_peaks',
    'load_config',
    'plot_search_result',
    'export_results',
]

# Package metadata
PACKAGE_DATA = {
    'name': 'gammaspec',
    'version': __version__,
    'description': 'Background removal, deconvolution and peak search for gamma spectra',
    'python_requires': '>=3.8',
    'install_requires': [
        'numpy>=1.20.0',
        'scipy>=1.6.0',
        'matplotlib>=3.3.0',
        'pandas>=1.1.0',
    ],
    'optional_requires': {
        'test': ['pytest>=6.0'],
    }
}
