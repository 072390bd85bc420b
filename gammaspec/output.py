"""
Output and visualization functions for gamma spectrum processing.

This module handles plotting spectra with their background and
deconvolution, writing peak reports, and exporting results in various
formats.
"""

from typing import Any, Dict, Optional
from pathlib import Path
import json
import logging
import warnings

import numpy as np
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages
import pandas as pd

from .search import SearchResult

logger = logging.getLogger(__name__)


def plot_search_result(channels: np.ndarray,
                       counts: np.ndarray,
                       result: SearchResult,
                       output_file: str,
                       background: Optional[np.ndarray] = None,
                       log_scale: bool = True,
                       dpi: int = 150):
    """
    Plot a spectrum with the outcome of the high-resolution peak search.

    The upper panel shows the spectrum (and background, if given) with the
    found peaks marked; the lower panel shows the deconvolved spectrum.

    Parameters:
        channels: Channel numbers
        counts: Raw counts
        result: Peak search result
        output_file: Output file path (format from extension)
        background: Optional background estimate
        log_scale: Whether to use log scale for the spectrum panel
        dpi: Resolution of raster output
    """
    fig = plt.figure(figsize=(14, 9))
    gs = fig.add_gridspec(2, 1, height_ratios=[3, 2], hspace=0.05)

    ax1 = fig.add_subplot(gs[0])
    ax2 = fig.add_subplot(gs[1], sharex=ax1)

    ax1.plot(channels, counts, 'b-', linewidth=0.7, label='Spectrum')
    if background is not None:
        ax1.plot(channels, background, 'k--', linewidth=1, label='Background')

    # Centroids are channel indices; map them onto the channel axis
    x_peaks = np.interp(result.centroids, np.arange(len(channels)), channels)
    for rank, (x_peak, index) in enumerate(zip(x_peaks, result.centroids.astype(int)), 1):
        ax1.axvline(x_peak, color='g', linestyle='--', alpha=0.3, linewidth=0.5)
        y_pos = max(counts[index], 1.0)
        ax1.annotate(f'{rank}',
                     xy=(x_peak, y_pos),
                     xytext=(x_peak, y_pos * 1.2),
                     fontsize=8,
                     ha='center',
                     color='darkgreen')

    ax1.set_ylabel('Counts', fontsize=11)
    if log_scale:
        ax1.set_yscale('log')
        ax1.set_ylim(bottom=0.5)
    ax1.grid(True, alpha=0.3, which='both')
    ax1.legend(loc='upper right', fontsize=9)
    ax1.set_title(f'High-Resolution Peak Search ({result.n_peaks} peaks)',
                  fontsize=13, fontweight='bold')

    ax2.plot(channels, result.deconvolved, 'r-', linewidth=0.8, label='Deconvolved')
    ax2.set_ylabel('Deconvolved', fontsize=11)
    ax2.set_xlabel('Channel', fontsize=11)
    ax2.grid(True, alpha=0.3)
    ax2.legend(loc='upper right', fontsize=8)

    plt.setp(ax1.get_xticklabels(), visible=False)

    output_path = Path(output_file)
    if output_path.suffix.lower() == '.pdf':
        with PdfPages(output_file) as pdf:
            pdf.savefig(fig, bbox_inches='tight')
    else:
        fig.savefig(output_file, dpi=dpi, bbox_inches='tight')

    plt.close(fig)
    logger.debug("Plot written to %s", output_file)


def export_results(result: SearchResult,
                   output_file: str,
                   format: str = 'auto',
                   parameters: Optional[Dict[str, Any]] = None):
    """
    Export the peak table of a search result to file.

    Parameters:
        result: Peak search result
        output_file: Output file path
        format: Output format ('csv', 'json', 'text', 'auto')
        parameters: Search parameters recorded in JSON and text output
    """
    output_path = Path(output_file)

    if format == 'auto':
        format_map = {
            '.csv': 'csv',
            '.json': 'json',
            '.txt': 'text',
        }
        format = format_map.get(output_path.suffix.lower(), 'csv')

    export_data = result.to_records()
    columns = ['rank', 'position', 'centroid', 'amplitude']

    if format == 'csv':
        df = pd.DataFrame(export_data, columns=columns)
        df.to_csv(output_file, index=False, float_format='%.4f')

    elif format == 'json':
        data = {'n_peaks': result.n_peaks,
                'buffer_full': result.buffer_full,
                'peaks': export_data}
        if parameters:
            data['parameters'] = parameters
        with open(output_file, 'w') as f:
            json.dump(data, f, indent=2)

    elif format == 'text':
        write_text_report(result, output_file, parameters)

    else:
        warnings.warn(f"Unknown format: {format}, using CSV")
        pd.DataFrame(export_data, columns=columns).to_csv(output_file, index=False)


def write_text_report(result: SearchResult, output_file: str,
                      parameters: Optional[Dict[str, Any]] = None):
    """
    Write a formatted text report of the peak search.

    Parameters:
        result: Peak search result
        output_file: Output file path
        parameters: Optional search parameters listed in the header
    """
    with open(output_file, 'w') as f:
        f.write("=" * 60 + "\n")
        f.write("GAMMA SPECTRUM PEAK SEARCH REPORT\n")
        f.write("=" * 60 + "\n\n")

        if parameters:
            f.write("PARAMETERS\n")
            f.write("-" * 30 + "\n")
            for key, value in parameters.items():
                f.write(f"{key}: {value}\n")
            f.write("\n")

        f.write(f"Total peaks found: {result.n_peaks}\n")
        if result.buffer_full:
            f.write("Peak buffer full, weaker peaks were dropped\n")
        f.write("\n")

        f.write(f"{'Rank':<6} {'Channel':<10} {'Centroid':<12} {'Amplitude':<12}\n")
        f.write("-" * 60 + "\n")
        for peak in result.to_records():
            f.write(f"{peak['rank']:<6} {peak['position']:<10d} "
                    f"{peak['centroid']:<12.2f} {peak['amplitude']:<12.1f}\n")

        f.write("=" * 60 + "\n")


def print_summary(result: SearchResult, max_rows: int = 20):
    """
    Print a summary table of the found peaks.

    Parameters:
        result: Peak search result
        max_rows: Maximum number of peaks listed
    """
    print("\n" + "=" * 50)
    print("PEAK SEARCH SUMMARY")
    print("=" * 50)
    print(f"Peaks found: {result.n_peaks}")

    if result.n_peaks:
        print(f"\n{'#':<5} {'Channel':<10} {'Centroid':<12} {'Amplitude':<12}")
        print("-" * 50)
        for peak in result.to_records()[:max_rows]:
            print(f"{peak['rank']:<5} {peak['position']:<10d} "
                  f"{peak['centroid']:<12.2f} {peak['amplitude']:<12.1f}")
        if result.n_peaks > max_rows:
            print(f"... and {result.n_peaks - max_rows} more")

    if result.buffer_full:
        print("\nWarning: peak buffer full")
    print("=" * 50)
