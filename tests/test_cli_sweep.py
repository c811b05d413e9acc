"""
Tests for the sweep analysis and the command-line interface.
"""

import pandas as pd
import pytest
import yaml


class TestSweep:
    """Tests for loop-order x tiling sweeps."""

    def test_sweep_points(self):
        """Each loop order is tried untiled and with every tile size."""
        from tiling_sim.analysis import sweep_points
        from tiling_sim.workload import create_matmul_operation

        op = create_matmul_operation(size=4)
        points = sweep_points(op)

        assert len(points) == 6 * (1 + 3)
        assert points[0].loop_order == "ijk" and not points[0].tiled
        assert [p.tile_size for p in points[1:4]] == [2, 4, 6]

    def test_sweep_table(self):
        from tiling_sim.analysis import run_sweep
        from tiling_sim.simulator import SimulationConfig

        config = SimulationConfig(operation_params={"size": 4})
        df = run_sweep(config, tile_sizes=[2], progress=False)

        assert isinstance(df, pd.DataFrame)
        assert len(df) == 12
        assert list(df.columns) == [
            "loop_order", "tiled", "tile_size",
            "A_hit_rate", "B_hit_rate", "C_hit_rate",
            "hit_rate", "misses", "iterations",
        ]
        assert (df["iterations"] == 64).all()
        assert df["misses"].is_monotonic_increasing
        assert set(df["loop_order"]) == set(config.build_operation().loop_orders)

    def test_sweep_keeps_cache_and_layouts(self):
        """Sweep points reuse the configured geometry and layouts."""
        from tiling_sim.analysis import run_sweep
        from tiling_sim.arch import CacheConfig
        from tiling_sim.simulator import SimulationConfig

        small = SimulationConfig(operation_params={"size": 4},
                                 cache=CacheConfig(elements_per_line=1, num_lines=1))
        df = run_sweep(small, tile_sizes=[], progress=False)

        assert len(df) == 6
        assert (df["misses"] > 0).all()
        assert small.tiling_enabled is False

    def test_summarize(self):
        from tiling_sim.analysis import run_sweep, summarize_sweep
        from tiling_sim.simulator import SimulationConfig

        df = run_sweep(SimulationConfig(operation_params={"size": 3}), tile_sizes=[2], progress=False)
        text = summarize_sweep(df)

        assert text.splitlines()[-1].startswith(f"Best: {df.iloc[0]['loop_order']}")
        assert summarize_sweep(pd.DataFrame()) == "No sweep results."


class TestCLI:
    """Tests for the tiling-sim command line."""

    def test_no_command(self, capsys):
        from tiling_sim.cli import main

        assert main([]) == 1

    def test_info(self, capsys):
        from tiling_sim.cli import main

        assert main(["info", "--operation", "conv2d", "--tile-size", "2"]) == 0
        out = capsys.readouterr().out
        assert "2D Convolution" in out
        assert "for th_out in 0..6 step 2:" in out
        assert "L1: 4 lines x 64 bytes" in out

    def test_run_with_output(self, tmp_path, capsys):
        from tiling_sim.cli import main

        output = tmp_path / "result.yaml"
        code = main([
            "run", "--operation", "matmul", "--loop-order", "ikj",
            "--layout", "B=col", "--elements-per-line", "4", "--num-lines", "8",
            "--steps", "100", "-o", str(output),
        ])

        assert code == 0
        out = capsys.readouterr().out
        assert "Iterations: 100 / 1,728" in out
        assert "Next: " in out

        data = yaml.safe_load(output.read_text())
        assert data["config"]["layouts"] == {"B": "col"}
        assert data["config"]["cache"] == {"elements_per_line": 4, "num_lines": 8}
        assert data["result"]["iterations_executed"] == 100
        assert data["result"]["layouts"]["B"] == "col"

    def test_run_from_config(self, tmp_path, capsys):
        from tiling_sim.cli import main

        config = tmp_path / "sim.yaml"
        config.write_text(yaml.dump({
            "operation": "matmul",
            "operation_params": {"size": 4},
            "loop_order": "jik",
        }))

        assert main(["run", "--config", str(config)]) == 0
        out = capsys.readouterr().out
        assert "Loop order: jik (untiled)" in out
        assert "Iterations: 64 / 64" in out

    def test_sweep_csv(self, tmp_path, capsys):
        from tiling_sim.cli import main

        config = tmp_path / "sim.yaml"
        config.write_text("operation_params:\n  size: 4\n")
        csv = tmp_path / "sweep.csv"

        assert main(["sweep", "--config", str(config), "--tile-size", "2", "--csv", str(csv)]) == 0
        df = pd.read_csv(csv)
        assert len(df) == 12
        assert "Best:" in capsys.readouterr().out

    @pytest.mark.parametrize("argv", [
        ["run", "--loop-order", "xyz"],
        ["run", "--layout", "A"],
        ["run", "--layout", "A=CHW"],
        ["run", "--tile-size", "0"],
        ["info", "--config", "does-not-exist.yaml"],
    ])
    def test_errors_return_one(self, argv, capsys):
        from tiling_sim.cli import main

        assert main(argv) == 1
        assert capsys.readouterr().out.startswith("Error:")

    def test_log_level(self):
        """Progress logging only shows with --verbose."""
        import logging
        from tiling_sim.cli import log_level

        assert log_level(False) == logging.WARNING
        assert log_level(True) == logging.INFO

    def test_verbose_run_reports_timing(self, capsys):
        from tiling_sim.cli import main

        assert main(["run", "--steps", "10", "-v"]) == 0
        out = capsys.readouterr().out
        assert "Timing:" in out
        assert "simulate:" in out

    def test_parse_layouts(self):
        from tiling_sim.cli import parse_layouts

        assert parse_layouts(["A=col", "Input=HWC"]) == {"A": "col", "Input": "HWC"}
