import json

import pytest

from vehicle_mpc.utils.parameters import (
    InvalidConfigurationError,
    MPCConfig,
    available_presets,
    latency_to_steps,
    load_mpc_config,
)


def test_default_preset_is_85mph():
    config = load_mpc_config()
    assert config.N == 12
    assert config.dt == 0.05
    assert config.ref_v == 85.0
    assert config.weight_delta == 200.0
    assert config.weight_delta_rate == 700.0
    assert config.Lf == 2.67
    assert config.latency_steps == 2


@pytest.mark.parametrize("preset, N, dt, ref_v, latency_steps", [
    ("72mph", 10, 0.05, 75.0, 2),
    ("88mph", 12, 0.1, 90.0, 1),
    ("85mph", 12, 0.05, 85.0, 2),
])
def test_named_presets(preset, N, dt, ref_v, latency_steps):
    config = load_mpc_config(preset)
    assert (config.N, config.dt, config.ref_v) == (N, dt, ref_v)
    assert config.latency_steps == latency_steps


def test_available_presets():
    assert set(available_presets()) == {"72mph", "88mph", "85mph"}


def test_overrides_replace_preset_values():
    config = load_mpc_config("72mph", ref_v=30.0, weight_cte=50.0)
    assert config.ref_v == 30.0
    assert config.weight_cte == 50.0
    assert config.N == 10


def test_unknown_preset_raises():
    with pytest.raises(InvalidConfigurationError, match="Unknown preset"):
        load_mpc_config("warp_speed")


def test_unknown_option_raises():
    with pytest.raises(InvalidConfigurationError, match="Unknown MPC option"):
        load_mpc_config(horizon=10)


def test_missing_file_raises(tmp_path):
    with pytest.raises(InvalidConfigurationError, match="not found"):
        load_mpc_config(json_file=str(tmp_path / "missing.json"))


def test_custom_presets_file(tmp_path):
    presets = {
        "default_preset": "slow",
        "common": {"Lf": 2.0},
        "presets": {"slow": {"N": 8, "dt": 0.1, "ref_v": 10.0}},
    }
    path = tmp_path / "presets.json"
    path.write_text(json.dumps(presets))

    config = load_mpc_config(json_file=str(path))
    assert config.N == 8
    assert config.Lf == 2.0
    assert config.ref_v == 10.0
    assert available_presets(str(path)) == ["slow"]


@pytest.mark.parametrize("latency, dt, expected", [
    (0.1, 0.05, 2),
    (0.0, 0.05, 0),
    (0.07, 0.05, 1),
    (0.1, 0.1, 1),
])
def test_latency_to_steps_rounds_half_up(latency, dt, expected):
    assert latency_to_steps(latency, dt) == expected


@pytest.mark.parametrize("options", [
    {"N": 1},
    {"N": 0},
    {"dt": 0.0},
    {"dt": -0.05},
    {"latency_seconds": -0.1},
    {"N": 3, "latency_seconds": 0.1, "dt": 0.05},  # clamps 2 of 2 actuations
    {"Lf": 0.0},
    {"max_steer": -0.1},
    {"solver_time_budget": 0.0},
    {"weight_cte": -1.0},
    {"failure_policy": "panic"},
    {"guess_type": "psychic"},
    {"safe_deceleration": -2.0},
])
def test_validate_rejects_invalid_configurations(options):
    with pytest.raises(InvalidConfigurationError):
        MPCConfig(**options).validate()


def test_latency_clamp_limit_is_exclusive():
    # N=4 has 3 actuations; clamping 2 leaves one free
    MPCConfig(N=4, dt=0.05, latency_seconds=0.1).validate()
    with pytest.raises(InvalidConfigurationError, match="latency"):
        MPCConfig(N=3, dt=0.05, latency_seconds=0.1).validate()


def test_with_overrides_returns_validated_copy():
    base = MPCConfig()
    changed = base.with_overrides(ref_v=20.0)
    assert changed.ref_v == 20.0
    assert base.ref_v == 85.0
    with pytest.raises(InvalidConfigurationError):
        base.with_overrides(N=1)


def test_invalid_configuration_is_a_value_error():
    assert issubclass(InvalidConfigurationError, ValueError)
