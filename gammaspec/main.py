#!/usr/bin/env python3
"""
Main command-line interface for GammaSpec background removal and peak search.

The CLI loads a spectrum, estimates its SNIP background, runs the
high-resolution peak search and writes the peak table, the processed
spectra and an optional plot.
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from . import __version__
from .background import estimate_background
from .exceptions import GammaSpecError
from .io_module import load_spectrum, load_config, export_spectrum
from .output import plot_search_result, export_results, print_summary, write_text_report
from .search import SearchResult, search_high_res
from .utils import DEFAULT_CONFIG, merge_config, setup_logger, validate_parameters


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='GammaSpec - Gamma Spectrum Background Removal and Peak Search',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        'spectrum',
        type=str,
        help='Path to spectrum file (CSV, SPE, CHN or MCA format)'
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to JSON configuration file'
    )

    # Unset options fall back to the configuration file
    search_group = parser.add_argument_group('peak search parameters')
    search_group.add_argument(
        '--sigma',
        type=float,
        default=None,
        help='Sigma of searched peaks in channels (default: 2)'
    )

    search_group.add_argument(
        '--threshold',
        type=float,
        default=None,
        help='Peak threshold in %% of the highest peak (default: 5)'
    )

    search_group.add_argument(
        '--no-background',
        dest='background_remove',
        action='store_const',
        const=False,
        default=None,
        help='Do not remove the background before deconvolution'
    )

    search_group.add_argument(
        '--markov',
        action='store_const',
        const=True,
        default=None,
        help='Smooth the spectrum with Markov chains before deconvolution'
    )

    search_group.add_argument(
        '--aver-window',
        type=int,
        default=None,
        help='Averaging window of the Markov smoothing (default: 3)'
    )

    search_group.add_argument(
        '--iterations',
        type=int,
        default=None,
        help='Number of deconvolution iterations (default: 3)'
    )

    search_group.add_argument(
        '--max-peaks',
        type=int,
        default=None,
        help='Maximum number of reported peaks (default: number of channels)'
    )

    background_group = parser.add_argument_group('background parameters')
    background_group.add_argument(
        '--background-iterations',
        type=int,
        default=None,
        help='Maximal clipping window width (default: 20)'
    )

    background_group.add_argument(
        '--direction',
        type=str,
        choices=['increasing', 'decreasing'],
        default=None,
        help='Change of the clipping window width (default: increasing)'
    )

    background_group.add_argument(
        '--filter-order',
        type=int,
        choices=[2, 4, 6, 8],
        default=None,
        help='Clipping filter order (default: 2)'
    )

    background_group.add_argument(
        '--smooth-window',
        type=int,
        default=None,
        help='Enable clipping with local averaging over this window (3-15, odd)'
    )

    background_group.add_argument(
        '--compton',
        action='store_const',
        const=True,
        default=None,
        help='Estimate the Compton edge'
    )

    output_group = parser.add_argument_group('output parameters')
    output_group.add_argument(
        '--output-dir',
        type=str,
        default=None,
        help='Output directory for results (default: current directory)'
    )

    output_group.add_argument(
        '--output-prefix',
        type=str,
        default=None,
        help='Prefix for output files (default: none)'
    )

    output_group.add_argument(
        '--no-plot',
        dest='generate_plot',
        action='store_const',
        const=False,
        default=None,
        help='Skip generating plot'
    )

    output_group.add_argument(
        '--plot-format',
        type=str,
        choices=['png', 'pdf', 'svg'],
        default=None,
        help='Format for output plot (default: png)'
    )

    output_group.add_argument(
        '--dpi',
        type=int,
        default=None,
        help='DPI for output plot (default: 150)'
    )

    output_group.add_argument(
        '--log-file',
        type=str,
        default=None,
        help='Also write log messages to this file'
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    verbosity.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress all output except errors'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )

    return parser.parse_args(argv)


def load_configuration(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Load and merge configuration from defaults, file and command line.

    Parameters:
        args: Command line arguments

    Returns:
        dict: Merged configuration

    Raises:
        FileNotFoundError: If the configuration file doesn't exist
        ValueError: If the configuration file is not valid JSON
    """
    config = merge_config(DEFAULT_CONFIG, None)

    if args.config:
        config = merge_config(config, load_config(args.config))
        logging.getLogger('gammaspec').info("Loaded configuration from %s", args.config)

    cli_config = {
        'background': {
            'iterations': args.background_iterations,
            'direction': args.direction,
            'filter_order': args.filter_order,
            'smoothing': True if args.smooth_window is not None else None,
            'smooth_window': args.smooth_window,
            'compton': args.compton,
        },
        'search': {
            'sigma': args.sigma,
            'threshold': args.threshold,
            'background_remove': args.background_remove,
            'iterations': args.iterations,
            'markov': args.markov,
            'aver_window': args.aver_window,
            'max_peaks': args.max_peaks,
        },
        'output': {
            'directory': args.output_dir,
            'prefix': args.output_prefix,
            'generate_plot': args.generate_plot,
            'plot_format': args.plot_format,
            'dpi': args.dpi,
        },
    }

    # Command line overrides file
    return merge_config(config, cli_config)


def process_spectrum(counts: np.ndarray,
                     config: Dict[str, Any]) -> Tuple[np.ndarray, SearchResult]:
    """
    Run background estimation and the high-resolution peak search.

    Parameters:
        counts: Spectrum counts
        config: Validated configuration

    Returns:
        tuple: (background, search result)
    """
    background_config = config.get('background', {})
    search_config = config.get('search', {})

    # The background window is limited by the spectrum length
    iterations = min(background_config.get('iterations', 20), (len(counts) - 1) // 2)
    background = estimate_background(
        counts,
        max(iterations, 1),
        direction=background_config.get('direction', 'increasing'),
        filter_order=background_config.get('filter_order', 2),
        smoothing=background_config.get('smoothing', False),
        smooth_window=background_config.get('smooth_window', 3),
        compton=background_config.get('compton', False),
    )

    result = search_high_res(
        counts,
        sigma=search_config.get('sigma', 2.0),
        threshold=search_config.get('threshold', 5.0),
        background_remove=search_config.get('background_remove', True),
        decon_iterations=search_config.get('iterations', 3),
        markov=search_config.get('markov', False),
        aver_window=search_config.get('aver_window', 3),
        max_peaks=search_config.get('max_peaks'),
    )

    return background, result


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function."""
    args = parse_arguments(argv)

    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    logger = setup_logger('gammaspec', level, args.log_file)

    try:
        config = load_configuration(args)
        validate_parameters(config)
    except (FileNotFoundError, TypeError, ValueError) as e:
        logger.error("Invalid configuration: %s", e)
        return 1

    try:
        channels, counts = load_spectrum(args.spectrum)
    except (FileNotFoundError, ValueError) as e:
        logger.error("Error loading spectrum: %s", e)
        return 1

    logger.info("Loaded %d channels from %s (total counts %.0f)",
                len(counts), args.spectrum, np.sum(counts))

    try:
        background, result = process_spectrum(counts, config)
    except GammaSpecError as e:
        logger.error("Processing failed: %s", e)
        return 1

    logger.info("Found %d peaks", result.n_peaks)

    output_config = config['output']
    output_dir = Path(output_config.get('directory', '.'))
    output_dir.mkdir(parents=True, exist_ok=True)

    prefix = output_config.get('prefix', '')
    if prefix and not prefix.endswith('_'):
        prefix += '_'

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    peaks_file = output_dir / f'{prefix}peaks_{timestamp}.csv'
    spectrum_file = output_dir / f'{prefix}spectrum_{timestamp}.csv'
    report_file = output_dir / f'{prefix}report_{timestamp}.txt'

    export_results(result, peaks_file)
    logger.info("Peak list saved to %s", peaks_file)

    write_text_report(result, report_file, parameters=config['search'])
    logger.info("Report saved to %s", report_file)

    export_spectrum(channels, counts, spectrum_file,
                    columns={'background': background, 'deconvolved': result.deconvolved})
    logger.info("Processed spectrum saved to %s", spectrum_file)

    if output_config.get('generate_plot', True):
        plot_format = output_config.get('plot_format', 'png')
        plot_file = output_dir / f'{prefix}search_{timestamp}.{plot_format}'
        plot_search_result(channels, counts, result, plot_file,
                           background=background,
                           dpi=output_config.get('dpi', 150))
        logger.info("Plot saved to %s", plot_file)

    if not args.quiet:
        print_summary(result)

    return 0


def entry_point():
    """Entry point for console script."""
    sys.exit(main())


if __name__ == "__main__":
    entry_point()
