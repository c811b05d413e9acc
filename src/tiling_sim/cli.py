"""
Command-line interface for the tiling simulator.
"""

import argparse
import logging
import sys

import yaml

from tiling_sim.analysis import run_sweep, summarize_sweep
from tiling_sim.model import format_loop_nest
from tiling_sim.simulator import SimulationConfig
from tiling_sim.utils import ConfigurationError, Timer, format_rate
from tiling_sim.workload import get_operation_entry, list_operations


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c", "--config",
        help="Path to simulation YAML file"
    )
    parser.add_argument(
        "--operation",
        choices=list_operations(),
        help="Operation to simulate (default: matmul)"
    )
    parser.add_argument(
        "--loop-order",
        help="Loop-order key (default: the operation's default order)"
    )
    parser.add_argument(
        "--tile-size",
        type=int,
        help="Enable tiling with this tile size"
    )
    parser.add_argument(
        "--layout",
        action="append",
        default=[],
        metavar="NAME=LAYOUT",
        help="Data layout of a tensor, e.g. B=col (repeatable)"
    )
    parser.add_argument(
        "--elements-per-line",
        type=int,
        help="Elements per cache line"
    )
    parser.add_argument(
        "--num-lines",
        type=int,
        help="Number of cache lines"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output"
    )


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Tiling Simulator - loop-order, tiling and layout effects on an LRU cache"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # =========================================
    # info command
    # =========================================
    info_parser = subparsers.add_parser(
        "info",
        help="Display operation, loop orders and loop nest"
    )
    _add_common_arguments(info_parser)

    # =========================================
    # run command
    # =========================================
    run_parser = subparsers.add_parser(
        "run",
        help="Simulate one configuration"
    )
    _add_common_arguments(run_parser)
    run_parser.add_argument(
        "--steps",
        type=int,
        help="Stop after this many iterations (default: run to the end)"
    )
    run_parser.add_argument(
        "-o", "--output",
        help="Output file for the result (YAML format)"
    )

    # =========================================
    # sweep command
    # =========================================
    sweep_parser = subparsers.add_parser(
        "sweep",
        help="Simulate every loop order with and without tiling"
    )
    _add_common_arguments(sweep_parser)
    sweep_parser.add_argument(
        "--csv",
        help="Write the sweep table to this CSV file"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=log_level(args.verbose),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    commands = {"info": cmd_info, "run": cmd_run, "sweep": cmd_sweep}
    try:
        return commands[args.command](args)
    except Exception as e:
        print(f"Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


def log_level(verbose: bool) -> int:
    """INFO when verbose, WARNING otherwise."""
    return logging.INFO if verbose else logging.WARNING


def parse_layouts(items) -> dict:
    """Parse repeated NAME=LAYOUT arguments."""
    layouts = {}
    for item in items:
        name, sep, layout = item.partition("=")
        if not sep or not name or not layout:
            raise ConfigurationError(f"Layout must be given as NAME=LAYOUT, got {item!r}")
        layouts[name] = layout
    return layouts


def load_config(args) -> SimulationConfig:
    """Build the simulation config from the optional YAML file and command-line overrides."""
    config = SimulationConfig.from_yaml(args.config) if args.config else SimulationConfig()

    if args.operation and args.operation != config.operation:
        config.operation = args.operation
        config.operation_params = {}
        config.loop_order = None
        config.layouts = {}
    if args.loop_order:
        config.loop_order = args.loop_order
    if args.tile_size is not None:
        config.tiling_enabled = True
        config.tile_size = args.tile_size
    if args.layout:
        config.layouts.update(parse_layouts(args.layout))
    if args.elements_per_line is not None:
        config.cache.elements_per_line = args.elements_per_line
    if args.num_lines is not None:
        config.cache.num_lines = args.num_lines
    return config


def cmd_info(args) -> int:
    """Execute info command."""
    config = load_config(args)
    operation = config.build_operation()
    entry = get_operation_entry(config.operation)
    loop_order = config.resolve_loop_order()
    tile_size = config.tile_size if config.tiling_enabled else None

    print(entry.title)
    print("=" * 60)
    print(operation.summary())

    print("\nLoop orders:")
    for key, order in operation.loop_orders.items():
        marker = "*" if key == loop_order else " "
        print(f"  {marker} {key:<36} {' > '.join(order)}")

    cache = config.cache.build(operation.element_size)
    print("\nCache:")
    for level in getattr(cache, "levels", [cache]):
        print(f"  L{level.level}: {level.max_lines} lines x {level.line_size} bytes "
              f"= {level.capacity_bytes} bytes")

    print("\nLoop nest:")
    print(format_loop_nest(operation, loop_order, tile_size))
    return 0


def cmd_run(args) -> int:
    """Execute run command."""
    config = load_config(args)
    timer = Timer()

    with timer.section("simulate"):
        engine = config.build_engine()
        if args.steps is not None:
            engine.jump_to_iteration(args.steps)
        else:
            engine.run_to_end()

    result = engine.result()
    tiling = f"tile {result.tile_size}" if result.tile_size else "untiled"
    print(f"Tiling Simulator: {engine.operation.display_name}")
    print("=" * 60)
    print(f"Loop order: {result.loop_order} ({tiling})")
    print(f"Layouts: {', '.join(f'{k}={v}' for k, v in result.layouts.items())}")
    print(f"Iterations: {result.iterations_executed:,} / {result.total_iterations:,}")
    print("=" * 60)
    print(f"{'Tensor':<10} {'Accesses':>10} {'Hits':>10} {'Misses':>10} {'Hit rate':>10}")
    for name, stats in result.tensor_stats.items():
        print(f"{name:<10} {stats.accesses:>10} {stats.hits:>10} {stats.misses:>10} "
              f"{format_rate(stats.hits, stats.accesses):>10}")
    print(f"{'Total':<10} {result.total_accesses:>10} {result.total_hits:>10} "
          f"{result.total_misses:>10} {format_rate(result.total_hits, result.total_accesses):>10}")
    for level, hits in result.level_hits.items():
        print(f"  {level} hits: {hits}")

    if not engine.is_complete and engine.current_iteration is not None:
        print(f"\nNext: {engine.operation.describe_iteration(engine.current_iteration)}")

    if args.verbose:
        print()
        print(timer.report())

    if args.output:
        output_data = {
            "config": config.to_dict(),
            "result": result.to_dict(),
        }
        with open(args.output, "w") as f:
            yaml.dump(output_data, f, default_flow_style=False, sort_keys=False)
        print(f"\nResults saved to: {args.output}")

    return 0


def cmd_sweep(args) -> int:
    """Execute sweep command."""
    config = load_config(args)
    tile_sizes = [args.tile_size] if args.tile_size is not None else None

    df = run_sweep(config, tile_sizes=tile_sizes)
    print(summarize_sweep(df))

    if args.csv:
        df.to_csv(args.csv, index=False)
        print(f"\nResults saved to: {args.csv}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
