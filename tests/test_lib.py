"""
Tests for the shared library: configuration, logging and diagnostics.

Tests cover:
1. Config defaults, YAML loading, key normalization and the seed shortcut
2. Environment variable overrides
3. Validation errors and warnings
4. Config export round trip
5. Log formatting and handler setup
6. Run diagnostics counters
"""

import logging

import pytest
import yaml

from stratsim.lib import (
    BacktestLogger,
    ConfigValidationError,
    SimulationConfig,
    SimulationFormatter,
    config_to_dict,
    get_logger,
    load_config,
    save_config,
    setup_logging,
    validate_config,
)
from stratsim.lib.diagnostics import (
    MISSING_BAR,
    PREDICTOR_ERROR,
    REJECTED_MAX_POSITIONS,
    REJECTED_ZERO_QUANTITY,
    SimulationDiagnostics,
)


ENV_VARS = [
    "STRATSIM_INITIAL_CAPITAL",
    "STRATSIM_COMMISSION_RATE",
    "STRATSIM_SLIPPAGE_RATE",
    "STRATSIM_CONFIDENCE_FLOOR",
    "STRATSIM_RANDOM_SEED",
    "STRATSIM_N_JOBS",
    "STRATSIM_BARS_PATH",
    "STRATSIM_SYMBOLS",
    "STRATSIM_OUTPUT_DIR",
    "STRATSIM_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_yaml(tmp_path, data, name="config.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data))
    return str(path)


# =============================================================================
# Loading
# =============================================================================

class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        config = load_config()
        assert config.backtest.initial_capital == 100_000.0
        assert config.backtest.commission_rate == 0.001
        assert config.backtest.stop_loss_fraction == 0.05
        assert config.backtest.take_profit_fraction == 0.10
        assert config.signals.confidence_floor == 0.6
        assert config.walk_forward.training_window == 252
        assert config.walk_forward.testing_window == 63
        assert config.walk_forward.step_size == 21
        assert config.monte_carlo.n_trials == 1000
        assert config.monte_carlo.random_seed is None

    def test_yaml_sections(self, tmp_path):
        path = write_yaml(tmp_path, {
            "data": {"symbols": ["AAPL", "MSFT"], "start_date": "2024-01-01"},
            "backtest": {"initial_capital": 50_000, "max_open_positions": 3},
            "walk_forward": {"parameter_ranges": {"stop_loss_fraction": [0.03, 0.05]}},
            "output": {"log_level": "DEBUG"},
        })
        config = load_config(path)

        assert config.data.symbols == ["AAPL", "MSFT"]
        assert config.backtest.initial_capital == 50_000
        assert config.backtest.max_open_positions == 3
        assert config.backtest.commission_rate == 0.001
        assert config.walk_forward.parameter_ranges == {"stop_loss_fraction": [0.03, 0.05]}
        assert config.output.log_level == "DEBUG"

    def test_dotted_and_dashed_keys(self, tmp_path):
        path = write_yaml(tmp_path, {
            "backtest": {"stop-loss.fraction": 0.02, "take-profit-fraction": 0.06},
        })
        config = load_config(path)
        assert config.backtest.stop_loss_fraction == 0.02
        assert config.backtest.take_profit_fraction == 0.06

    def test_unknown_keys_ignored(self, tmp_path):
        path = write_yaml(tmp_path, {"backtest": {"leverage": 10}, "broker": {"name": "x"}})
        config = load_config(path)
        assert not hasattr(config.backtest, "leverage")

    def test_seed_shortcut(self, tmp_path):
        config = load_config(write_yaml(tmp_path, {"seed": 42}))
        assert config.monte_carlo.random_seed == 42

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == SimulationConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = write_yaml(tmp_path, {"backtest": {"initial_capital": 50_000}})
        monkeypatch.setenv("STRATSIM_INITIAL_CAPITAL", "25000")
        monkeypatch.setenv("STRATSIM_RANDOM_SEED", "7")
        monkeypatch.setenv("STRATSIM_N_JOBS", "4")
        monkeypatch.setenv("STRATSIM_SYMBOLS", "AAPL, MSFT,,")
        monkeypatch.setenv("STRATSIM_LOG_LEVEL", "debug")

        config = load_config(path)
        assert config.backtest.initial_capital == 25_000.0
        assert config.monte_carlo.random_seed == 7
        assert config.walk_forward.n_jobs == 4
        assert config.data.symbols == ["AAPL", "MSFT"]
        assert config.output.log_level == "DEBUG"

    def test_env_overrides_disabled(self, monkeypatch):
        monkeypatch.setenv("STRATSIM_COMMISSION_RATE", "0.005")
        assert load_config(override_env=False).backtest.commission_rate == 0.001
        assert load_config().backtest.commission_rate == 0.005


# =============================================================================
# Validation
# =============================================================================

class TestValidateConfig:
    """Tests for validate_config."""

    def test_defaults_only_warn_about_overlap(self):
        warnings = validate_config(SimulationConfig())
        assert len(warnings) == 1
        assert "overlap" in warnings[0]

    def test_clean_config(self):
        config = SimulationConfig()
        config.walk_forward.step_size = config.walk_forward.testing_window
        assert validate_config(config) == []

    @pytest.mark.parametrize("section, name, value", [
        ("backtest", "initial_capital", 0.0),
        ("backtest", "commission_rate", -0.001),
        ("backtest", "slippage_rate", -0.001),
        ("backtest", "max_open_positions", 0),
        ("backtest", "stop_loss_fraction", 1.0),
        ("backtest", "take_profit_fraction", 0.0),
        ("backtest", "position_sizing", "martingale"),
        ("signals", "algorithm_type", "oracle"),
        ("signals", "confidence_floor", 1.5),
        ("signals", "min_history", -1),
        ("walk_forward", "training_window", 0),
        ("monte_carlo", "n_trials", 0),
        ("monte_carlo", "confidence_level", 1.0),
    ])
    def test_errors(self, section, name, value):
        config = SimulationConfig()
        setattr(getattr(config, section), name, value)
        with pytest.raises(ConfigValidationError, match=name):
            validate_config(config)

    def test_date_order(self):
        config = SimulationConfig()
        config.data.start_date = "2024-06-01"
        config.data.end_date = "2024-01-01"
        with pytest.raises(ConfigValidationError, match="end_date"):
            validate_config(config)

    def test_empty_parameter_range(self):
        config = SimulationConfig()
        config.walk_forward.parameter_ranges = {"n": []}
        with pytest.raises(ConfigValidationError, match="parameter_ranges"):
            validate_config(config)

    def test_all_errors_reported_together(self):
        config = SimulationConfig()
        config.backtest.initial_capital = -1
        config.monte_carlo.n_trials = 0
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(config)
        assert "initial_capital" in str(exc_info.value)
        assert "n_trials" in str(exc_info.value)

    def test_warnings(self):
        config = SimulationConfig()
        config.backtest.commission_rate = 0.02
        config.backtest.take_profit_fraction = 0.02
        config.signals.confidence_floor = 0.3
        config.monte_carlo.n_trials = 50

        warnings = validate_config(config)
        text = "\n".join(warnings)
        assert len(warnings) == 5
        assert "commission_rate" in text
        assert "take_profit_fraction" in text
        assert "confidence_floor" in text
        assert "n_trials" in text


# =============================================================================
# Export
# =============================================================================

class TestConfigExport:
    """Tests for config_to_dict and save_config."""

    def test_to_dict(self):
        data = config_to_dict(SimulationConfig())
        assert set(data) == {"data", "backtest", "signals", "walk_forward", "monte_carlo", "output"}
        assert data["backtest"]["initial_capital"] == 100_000.0

    def test_save_and_reload(self, tmp_path):
        config = SimulationConfig()
        config.backtest.max_open_positions = 4
        config.monte_carlo.random_seed = 11
        config.data.symbols = ["AAPL"]

        path = str(tmp_path / "saved.yaml")
        save_config(config, path)

        assert load_config(path, override_env=False) == config


# =============================================================================
# Logging
# =============================================================================

@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLogging:
    """Tests for formatting and handler setup."""

    def _record(self, **extra):
        record = logging.LogRecord("stratsim.test", logging.INFO, __file__, 1, "hello", (), None)
        record.__dict__.update(extra)
        return record

    def test_format(self):
        line = SimulationFormatter().format(self._record())
        assert line.endswith("[INFO    ] stratsim.test - hello")
        # YYYY-MM-DD HH:MM:SS.mmm prefix
        assert line[4] == "-" and line[19] == "."

    def test_extras_appended(self):
        line = SimulationFormatter().format(self._record(symbol="AAA", pnl=12.5))
        assert line.endswith("hello [symbol=AAA pnl=12.5]")

    def test_extras_suppressed(self):
        line = SimulationFormatter(include_extras=False).format(self._record(symbol="AAA"))
        assert "symbol=" not in line

    def test_setup_console_only(self, restore_root_logger):
        root = setup_logging(level="warning", use_colors=False)
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, SimulationFormatter)

    def test_setup_with_file(self, restore_root_logger, tmp_path):
        root = setup_logging(level="DEBUG", log_dir=str(tmp_path / "logs"), log_file="run.log")
        assert len(root.handlers) == 2

        get_logger("stratsim.test").debug("written to file")
        for handler in root.handlers:
            handler.flush()
        assert "written to file" in (tmp_path / "logs" / "run.log").read_text()

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        assert setup_logging(level="chatty").level == logging.INFO

    def test_backtest_logger(self, caplog):
        caplog.set_level(logging.DEBUG, logger="stratsim.backtest")
        log = BacktestLogger()
        log.run_start(100_000.0, ["AAA", "BBB"], 250)
        log.trade_exit("AAA", "LONG", 10, 100.0, 95.0, -51.0, "stop_loss")

        assert "RUN START: capital=$100,000.00, symbols=2, bars=250" in caplog.text
        assert "P&L=-$51.00 reason=stop_loss" in caplog.text


# =============================================================================
# Diagnostics
# =============================================================================

class TestSimulationDiagnostics:
    """Tests for run diagnostics."""

    def test_counts(self):
        diagnostics = SimulationDiagnostics()
        diagnostics.record(MISSING_BAR, "AAA has no bar at 2024-01-05")
        diagnostics.record(MISSING_BAR, "BBB has no bar at 2024-01-05")
        diagnostics.record(REJECTED_MAX_POSITIONS, "3 positions open", symbol="AAA")
        diagnostics.record(REJECTED_ZERO_QUANTITY, "sized to 0", symbol="BBB")

        assert diagnostics.count(MISSING_BAR) == 2
        assert diagnostics.count(PREDICTOR_ERROR) == 0
        assert diagnostics.total == 4
        assert diagnostics.total_rejections == 2

    def test_message_cap(self):
        diagnostics = SimulationDiagnostics(max_messages=3)
        for i in range(10):
            diagnostics.record(PREDICTOR_ERROR, f"failure {i}")
        assert diagnostics.count(PREDICTOR_ERROR) == 10
        assert len(diagnostics.messages) == 3
        assert diagnostics.messages[0] == "predictor_error: failure 0"

    def test_to_dict(self):
        diagnostics = SimulationDiagnostics()
        diagnostics.record(PREDICTOR_ERROR, "boom")
        diagnostics.cancelled = True
        assert diagnostics.to_dict() == {
            "counts": {"predictor_error": 1},
            "messages": ["predictor_error: boom"],
            "cancelled": True,
        }

    def test_summary(self):
        diagnostics = SimulationDiagnostics()
        assert diagnostics.summary() == "Diagnostics: none"

        diagnostics.record(MISSING_BAR, "gap")
        diagnostics.cancelled = True
        summary = diagnostics.summary()
        assert "missing_bar: 1" in summary
        assert "cancelled" in summary

    def test_rejections_logged_at_debug(self, caplog):
        caplog.set_level(logging.DEBUG, logger="stratsim.backtest")
        SimulationDiagnostics().record(REJECTED_MAX_POSITIONS, "full", symbol="AAA")
        assert "REJECT: AAA - rejected_max_positions" in caplog.text
