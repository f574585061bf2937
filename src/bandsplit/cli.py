# src/bandsplit/cli.py

import argparse
import sys
import logging
from pathlib import Path
from typing import List, Optional

from bandsplit.exceptions import BandsplitError
from bandsplit.raster.engine import DispatchConfig, split_to_file
from bandsplit.raster.io import read_info
from bandsplit.analysis.pca import fit_pca_chunked, predict_to_file

def setup_logging(level: int = logging.INFO) -> None:
    """
    Configures the standard logging format and level for the command-line interface.

    Args:
        level (int): The logging threshold level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

def _config_from_args(args: argparse.Namespace) -> DispatchConfig:
    """Environment defaults overridden by whatever was given on the command line."""
    overrides = {}
    if args.mode is not None:
        overrides["mode"] = args.mode
    if args.chunk_size is not None:
        overrides["chunk_size"] = args.chunk_size
    if args.memory_budget is not None:
        overrides["memory_budget"] = args.memory_budget
    return DispatchConfig.from_env(**overrides)

def run_split(args: argparse.Namespace) -> None:
    """Split INPUT on a dimension and write every attribute as a band of OUTPUT."""
    config = _config_from_args(args)
    out = split_to_file(args.input, args.output, dimension=args.dimension, config=config)
    logging.info(f"Split '{args.dimension}' of {args.input} → {out}")

def run_pca(args: argparse.Namespace) -> None:
    """Fit a PCA over the bands of INPUT and write the component scores to OUTPUT."""
    config = _config_from_args(args)

    components = fit_pca_chunked(args.input, scale=args.scale, config=config)
    for name, ratio in zip(components.names, components.explained_variance_ratio):
        logging.info(f"{name}: {ratio:.2%} of variance")

    if args.loadings:
        components.to_frame().write_csv(args.loadings)
        logging.info(f"Loadings written to {args.loadings}")

    out = predict_to_file(args.input, args.output, components, n_components=args.components, config=config)
    logging.info(f"Principal components of {args.input} → {out}")

def show_info(args: argparse.Namespace) -> None:
    """Print raster metadata to stdout."""
    info = read_info(args.input)
    for key, value in info.items():
        print(f"{key:>12}: {value}")

def _add_engine_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mode",
        choices=["auto", "in_memory", "blocked", "tiled"],
        default=None,
        help="Processing mode. Defaults to BANDSPLIT_MODE or auto."
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Chunk extent in pixels for tiled mode. Defaults to BANDSPLIT_CHUNK_SIZE or 512."
    )
    parser.add_argument(
        "--memory-budget",
        type=int,
        default=None,
        help="Bytes allowed for in-memory processing. Defaults to BANDSPLIT_MEMORY_BUDGET or free RAM."
    )

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bandsplit",
        description="Split multi-band rasters into attributes, in memory or out of core."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    split_parser = subparsers.add_parser(
        "split",
        help="Split a dimension into attributes and write them as bands."
    )
    split_parser.add_argument("input", type=Path, help="Source raster.")
    split_parser.add_argument("output", type=Path, help="Raster to create.")
    split_parser.add_argument(
        "--dimension",
        default="band",
        help="Dimension to split. Defaults to band."
    )
    _add_engine_options(split_parser)
    split_parser.set_defaults(func=run_split)

    pca_parser = subparsers.add_parser(
        "pca",
        help="Fit a PCA over the raster bands and write the component scores."
    )
    pca_parser.add_argument("input", type=Path, help="Source raster.")
    pca_parser.add_argument("output", type=Path, help="Raster of component scores to create.")
    pca_parser.add_argument(
        "--components",
        type=int,
        default=None,
        help="Number of leading components to write. Defaults to all."
    )
    pca_parser.add_argument(
        "--scale",
        action="store_true",
        help="Scale bands to unit variance before fitting."
    )
    pca_parser.add_argument(
        "--loadings",
        type=Path,
        default=None,
        help="Optional CSV path for the component loadings."
    )
    _add_engine_options(pca_parser)
    pca_parser.set_defaults(func=run_pca)

    info_parser = subparsers.add_parser("info", help="Show raster metadata.")
    info_parser.add_argument("input", type=Path, help="Raster to inspect.")
    info_parser.set_defaults(func=show_info)

    return parser

def main(argv: Optional[List[str]] = None) -> None:
    """
    Parses command-line arguments and routes execution to the selected subcommand.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        args.func(args)
    except (BandsplitError, FileNotFoundError, ValueError) as e:
        logging.error(f"{args.command} failed: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
