"""
Tests for the step engine and simulation configuration.
"""

import numpy as np
import pytest


def _engine(size=4, loop_order="ijk", tile_size=None, layouts=None,
            elements_per_line=4, num_lines=4):
    from tiling_sim.arch import CacheConfig
    from tiling_sim.simulator import SimulationConfig

    config = SimulationConfig(
        operation="matmul",
        operation_params={"size": size},
        loop_order=loop_order,
        tiling_enabled=tile_size is not None,
        tile_size=tile_size or 4,
        layouts=layouts or {},
        cache=CacheConfig(elements_per_line=elements_per_line, num_lines=num_lines),
    )
    return config.build_engine()


class TestExecuteStep:
    """Tests for single steps."""

    def test_first_steps(self):
        """Cold misses, then same-line hits for A and C."""
        engine = _engine()

        assert engine.execute_step() == {"A": False, "B": False, "C": False}
        assert engine.execute_step() == {"A": True, "B": False, "C": True}
        assert engine.cursor == 2
        assert engine.stats["A"].hits == 1
        assert engine.stats["B"].misses == 2
        assert engine.history == [
            {"A": False, "B": False, "C": False},
            {"A": True, "B": False, "C": True},
        ]

    def test_no_op_when_complete(self):
        engine = _engine(size=2)
        engine.run_to_end()
        history = list(engine.history)

        assert engine.execute_step() is None
        assert engine.cursor == 8
        assert engine.history == history

    def test_accesses_per_tensor(self):
        """Every step accesses every tensor once."""
        engine = _engine(size=3)
        engine.run_to_end()
        result = engine.result()

        for stats in result.tensor_stats.values():
            assert stats.accesses == 27
        assert result.total_accesses == 81
        assert result.total_hits + result.total_misses == 81

    def test_states(self):
        from tiling_sim.simulator import EngineState

        engine = _engine(size=2)
        assert engine.state is EngineState.READY
        assert engine.current_iteration == engine.iterations[0]

        engine.step_forward()
        assert engine.state is EngineState.STEPPING

        engine.run_to_end()
        assert engine.state is EngineState.COMPLETE
        assert engine.current_iteration is None


class TestUndo:
    """Tests for step_forward / step_backward."""

    def test_backward_restores_exact_state(self):
        engine = _engine()
        for _ in range(5):
            engine.step_forward()
        before = engine.snapshot()
        lines = engine.cache.lines

        engine.step_forward()
        assert engine.step_backward() is True

        assert engine.snapshot() == before
        assert engine.cache.lines == lines
        assert len(engine.history) == 5

    def test_backward_then_forward_is_deterministic(self):
        engine = _engine(size=5)
        first = [engine.step_forward() for _ in range(20)]
        for _ in range(20):
            engine.step_backward()

        assert engine.cursor == 0
        assert engine.result().total_accesses == 0
        assert [engine.step_forward() for _ in range(20)] == first

    def test_backward_on_empty_stack(self):
        engine = _engine()

        assert engine.step_backward() is False
        assert engine.cursor == 0

    def test_forward_at_end_pushes_nothing(self):
        engine = _engine(size=2)
        for _ in range(8):
            engine.step_forward()
        depth = engine.undo_depth

        assert engine.step_forward() is None
        assert engine.undo_depth == depth

    def test_undo_depth_capped(self):
        """Past the high-water mark only the most recent snapshots are kept."""
        from tiling_sim.simulator import StepEngine

        engine = _engine(size=12)
        for _ in range(StepEngine.MAX_UNDO_DEPTH + 1):
            engine.step_forward()

        assert engine.undo_depth == StepEngine.UNDO_RETAIN

        undone = 0
        while engine.step_backward():
            undone += 1
        assert undone == StepEngine.UNDO_RETAIN
        assert engine.cursor == StepEngine.MAX_UNDO_DEPTH + 1 - StepEngine.UNDO_RETAIN

    def test_undo_with_hierarchy(self):
        from tiling_sim.arch import CacheConfig, CacheLevelConfig
        from tiling_sim.simulator import SimulationConfig

        config = SimulationConfig(
            operation_params={"size": 4},
            cache=CacheConfig(elements_per_line=4, num_lines=1,
                              levels=[CacheLevelConfig(elements_per_line=4, num_lines=8)]),
        )
        engine = config.build_engine()
        for _ in range(10):
            engine.step_forward()
        before = engine.snapshot()
        engine.step_forward()
        engine.step_backward()

        assert engine.snapshot() == before


class TestJump:
    """Tests for jump_to_iteration and reset."""

    def test_forward_jump_matches_stepping(self):
        jumped = _engine(size=6)
        stepped = _engine(size=6)
        jumped.jump_to_iteration(100)
        for _ in range(100):
            stepped.execute_step()

        assert jumped.cursor == 100
        assert jumped.snapshot() == stepped.snapshot()
        assert jumped.undo_depth == 0

    def test_backward_jump_replays(self):
        engine = _engine(size=6)
        reference = _engine(size=6)
        engine.jump_to_iteration(150)
        engine.step_forward()
        engine.jump_to_iteration(40)
        reference.jump_to_iteration(40)

        assert engine.cursor == 40
        assert engine.undo_depth == 0
        assert engine.snapshot() == reference.snapshot()
        assert engine.history == reference.history

    def test_forward_jump_keeps_undo_stack(self):
        engine = _engine()
        for _ in range(3):
            engine.step_forward()
        engine.jump_to_iteration(10)

        assert engine.undo_depth == 3
        assert engine.step_backward()
        assert engine.cursor == 2

    @pytest.mark.parametrize("target,expected", [(-5, 0), (0, 0), (64, 64), (10**6, 64)])
    def test_target_clamped(self, target, expected):
        engine = _engine(size=4)
        engine.jump_to_iteration(target)

        assert engine.cursor == expected

    def test_reset(self):
        engine = _engine()
        for _ in range(4):
            engine.step_forward()
        engine.reset()

        assert engine.cursor == 0
        assert engine.history == []
        assert engine.undo_depth == 0
        assert engine.cache.lines == ()
        assert all(s.accesses == 0 for s in engine.stats.values())


class TestQueries:
    """Tests for residency queries, hit matrix and results."""

    def test_is_element_cached_uses_layout(self):
        row = _engine(layouts={"A": "row"})
        col = _engine(layouts={"A": "col"})
        row.execute_step()
        col.execute_step()

        # A[0][1] shares a line with A[0][0] only in row-major order
        assert row.is_element_cached("A", {"row": 0, "col": 1}) is True
        assert col.is_element_cached("A", {"row": 0, "col": 1}) is False
        assert col.is_element_cached("A", {"row": 1, "col": 0}) is True

    def test_is_element_cached_does_not_mutate(self):
        engine = _engine()
        engine.execute_step()
        before = engine.snapshot()
        engine.is_element_cached("B", {"row": 3, "col": 3})

        assert engine.snapshot() == before

    def test_hit_matrix(self):
        engine = _engine()
        for _ in range(3):
            engine.execute_step()
        matrix = engine.hit_matrix()

        assert matrix.shape == (3, 3)
        assert matrix.dtype == np.bool_
        assert matrix[1].tolist() == [True, False, True]
        assert _engine().hit_matrix().shape == (0, 3)

    def test_result_to_dict(self):
        engine = _engine(tile_size=2)
        engine.run_to_end()
        data = engine.result().to_dict()

        assert data["operation"] == "matmul"
        assert data["tile_size"] == 2
        assert data["iterations_executed"] == data["total_iterations"] == 64
        assert data["total_accesses"] == 192
        assert set(data["tensors"]) == {"A", "B", "C"}
        assert data["layouts"] == {"A": "row", "B": "row", "C": "row"}

    def test_loop_order_changes_misses(self):
        """Column-wise streaming of row-major B misses more than row-wise."""
        good = _engine(size=8, loop_order="ikj")
        bad = _engine(size=8, loop_order="ijk")
        good.run_to_end()
        bad.run_to_end()

        assert good.stats["B"].misses < bad.stats["B"].misses

    def test_independent_engines(self):
        first = _engine()
        second = _engine()
        first.run_to_end()

        assert second.cursor == 0
        assert second.cache.total_accesses == 0


class TestSimulationConfig:
    """Tests for configuration loading and validation."""

    def test_defaults(self):
        from tiling_sim.simulator import SimulationConfig

        engine = SimulationConfig().build_engine()

        assert engine.operation.name == "matmul"
        assert engine.loop_order == "ijk"
        assert engine.iteration_count == 1728
        assert engine.cache.max_lines == 4
        assert engine.cache.line_size == 64

    def test_from_yaml(self, tmp_path):
        from tiling_sim.simulator import SimulationConfig

        path = tmp_path / "sim.yaml"
        path.write_text(
            "simulation:\n"
            "  operation: conv2d\n"
            "  operation_params:\n"
            "    input_h: 6\n"
            "    input_w: 6\n"
            "  loop_order: h_out,w_out,c_out,c_in,k_h,k_w\n"
            "  tiling_enabled: true\n"
            "  tile_size: 2\n"
            "  layouts:\n"
            "    Input: HWC\n"
            "  cache:\n"
            "    elements_per_line: 8\n"
            "    num_lines: 16\n"
        )
        config = SimulationConfig.from_yaml(path)
        engine = config.build_engine()

        assert config.operation == "conv2d"
        assert engine.layouts == {"Input": "HWC", "Kernel": "OIHW", "Output": "CHW"}
        assert engine.tile_size == 2
        assert engine.iteration_count == 4 * 4 * 4 * 4 * 3 * 3
        assert engine.cache.max_lines == 16
        assert SimulationConfig.from_dict(config.to_dict()) == config

    def test_missing_file(self, tmp_path):
        from tiling_sim.simulator import SimulationConfig

        with pytest.raises(FileNotFoundError):
            SimulationConfig.from_yaml(tmp_path / "missing.yaml")

    def test_empty_simulation_section(self, tmp_path):
        """A bare simulation key falls back to the defaults."""
        from tiling_sim.simulator import SimulationConfig

        path = tmp_path / "sim.yaml"
        path.write_text("simulation:\n")

        assert SimulationConfig.from_yaml(path) == SimulationConfig()
        assert SimulationConfig.from_dict({"simulation": None}) == SimulationConfig()

    def test_simulation_section_not_a_mapping(self):
        from tiling_sim.simulator import SimulationConfig
        from tiling_sim.utils import ConfigurationError

        with pytest.raises(ConfigurationError, match="mapping"):
            SimulationConfig.from_dict({"simulation": ["matmul"]})

    def test_unknown_key(self):
        from tiling_sim.simulator import SimulationConfig
        from tiling_sim.utils import ConfigurationError

        with pytest.raises(ConfigurationError):
            SimulationConfig.from_dict({"operaton": "matmul"})

    def test_bad_layout(self):
        from tiling_sim.simulator import SimulationConfig
        from tiling_sim.utils import ConfigurationError

        with pytest.raises(ConfigurationError):
            SimulationConfig(layouts={"A": "HWC"}).build_engine()
        with pytest.raises(ConfigurationError):
            SimulationConfig(layouts={"Z": "row"}).build_engine()

    def test_unknown_loop_order(self):
        from tiling_sim.simulator import SimulationConfig
        from tiling_sim.utils import UnknownLoopOrderError

        with pytest.raises(UnknownLoopOrderError):
            SimulationConfig(loop_order="ikk").build_engine()

    def test_bad_tile_size(self):
        from tiling_sim.simulator import SimulationConfig
        from tiling_sim.utils import ConfigurationError

        with pytest.raises(ConfigurationError):
            SimulationConfig(tiling_enabled=True, tile_size=0).build_engine()
