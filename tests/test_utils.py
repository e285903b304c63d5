#!/usr/bin/env python3
"""Test suite for the shared utils modules.

Covers:
- Atomic filesystem writes and YAML roundtrip
- Logging idempotency, JSON output and contextual fields
- Wall-clock timers and accumulators
- Schema validation of lathe profiles, CAM defaults and job files
- Config flattening for run logs

Run with: pytest tests/test_utils.py -v
"""

import json
import time
from pathlib import Path

import pytest

from src.utils import fs, logging_config, profiler, validators


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(scope="module")
def project_root():
    """Project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="module")
def configs_dir(project_root):
    """Packaged configuration directory."""
    return project_root / "lathe_cam" / "configs"


def _job_data(**extra):
    data = {
        'schema': 'job.v1',
        'profile': [[10.0, 0.0], [10.0, 50.0]],
        'tools': [{'name': 'CNMG 120408', 'operations': ['Facing']}],
        'operations': [{'type': 'Facing'}],
    }
    data.update(extra)
    return data


# ============================================================================
# FILESYSTEM (FS) TESTS
# ============================================================================

def test_ensure_dir_creates_directory(tmp_path):
    """Test ensure_dir creates nested directories."""
    new_dir = tmp_path / "programs" / "2026" / "shafts"
    assert fs.ensure_dir(new_dir) == new_dir
    assert new_dir.is_dir()


def test_ensure_dir_idempotent(tmp_path):
    """Test ensure_dir is idempotent."""
    new_dir = tmp_path / "out"
    fs.ensure_dir(new_dir)
    fs.ensure_dir(new_dir)
    assert new_dir.exists()


def test_atomic_write_text(tmp_path):
    """Test atomic text write leaves no temporary file behind."""
    target = tmp_path / "nc" / "part.nc"
    fs.atomic_write_text(target, "G21\nG90\nM30\n")
    assert target.read_text() == "G21\nG90\nM30\n"
    assert [p.name for p in (tmp_path / "nc").iterdir()] == ["part.nc"]


def test_atomic_write_overwrites(tmp_path):
    """Test atomic write replaces an existing program."""
    target = tmp_path / "part.nc"
    fs.atomic_write_text(target, "first\n")
    fs.atomic_write_bytes(target, b"second\n")
    assert target.read_bytes() == b"second\n"


def test_atomic_write_crlf(tmp_path):
    """Test programs can be written with CR/LF line endings."""
    target = tmp_path / "O1001.nc"
    fs.atomic_write_text(target, "%\nG21\r\nM30\n", line_ending="\r\n")
    assert target.read_bytes() == b"%\r\nG21\r\nM30\r\n"


def test_atomic_write_bad_line_ending(tmp_path):
    """Test unknown line endings are rejected before writing."""
    with pytest.raises(ValueError, match="line_ending"):
        fs.atomic_write_text(tmp_path / "x.nc", "M30\n", line_ending="\r")
    assert not (tmp_path / "x.nc").exists()


def test_atomic_yaml(tmp_path):
    """Test atomic YAML write and load."""
    fs.atomic_yaml_dump({'machine': {'type': 'haas'}, 'value': 42}, tmp_path / 'm.yaml')
    loaded = fs.load_yaml(tmp_path / 'm.yaml')
    assert loaded['value'] == 42
    assert loaded['machine']['type'] == 'haas'


def test_atomic_yaml_keeps_order(tmp_path):
    """Test YAML dump keeps insertion order and block style."""
    yaml_file = tmp_path / "ordered.yaml"
    fs.atomic_yaml_dump({'schema': 'lathe.v1', 'machine': {'name': 'L'}, 'list': [1, 2]}, yaml_file)
    content = yaml_file.read_text()
    assert content.index('schema:') < content.index('machine:')
    assert '- 1' in content


def test_load_yaml_missing(tmp_path):
    """Test load_yaml raises on a missing file."""
    with pytest.raises(FileNotFoundError):
        fs.load_yaml(tmp_path / "absent.yaml")


def test_load_yaml_malformed(tmp_path):
    """Test load_yaml reports parse errors."""
    import yaml

    bad = tmp_path / "bad.yaml"
    bad.write_text("machine: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        fs.load_yaml(bad)


# ============================================================================
# LOGGING TESTS
# ============================================================================

def test_logging_idempotency(tmp_path):
    """Test logging file output and idempotency."""
    log_path = tmp_path / "cam.log"

    logging_config.setup_logging(
        log_level="INFO",
        log_file=str(log_path),
        json=True,
        to_stderr=False,
        context={"app": "test"}
    )
    logger = logging_config.get_logger("utils_test")
    logger.info("hello")

    logging_config.setup_logging(
        log_level="INFO",
        log_file=str(log_path),
        json=True,
        to_stderr=False,
        context={"app": "test"}
    )
    logger.info("world")

    lines = log_path.read_text().strip().splitlines()
    assert len(lines) == 2

    rec = json.loads(lines[0])
    assert rec["msg"] == "hello"
    assert rec["lvl"] == "INFO"
    assert rec.get("app") == "test"
    logging_config.pop_context()


def test_logging_context_push_pop():
    """Test contextual fields can be pushed and removed."""
    logging_config.pop_context()
    logging_config.push_context(job="shaft_01", op="Roughing")
    assert logging_config.get_context() == {"job": "shaft_01", "op": "Roughing"}

    logging_config.pop_context(keys=["op"])
    assert logging_config.get_context() == {"job": "shaft_01"}

    logging_config.pop_context()
    assert logging_config.get_context() == {}


def test_logging_scoped_context():
    """Test log_context restores the previous fields on exit."""
    logging_config.pop_context()
    logging_config.push_context(job="shaft_01")
    with logging_config.log_context(op="Parting"):
        assert logging_config.get_context() == {"job": "shaft_01", "op": "Parting"}
    assert logging_config.get_context() == {"job": "shaft_01"}

    with pytest.raises(RuntimeError):
        with logging_config.log_context(op="Threading"):
            raise RuntimeError("boom")
    assert logging_config.get_context() == {"job": "shaft_01"}
    logging_config.pop_context()


def test_logging_human_format(tmp_path):
    """Test human-readable file lines carry level and context."""
    log_path = tmp_path / "human.log"
    logging_config.setup_logging(
        log_level="DEBUG",
        log_file=str(log_path),
        to_stderr=False,
        capture_warnings=False,
    )
    logging_config.push_context(op="Facing")
    logging_config.get_logger("utils_test").warning("spindle clamped")
    logging_config.pop_context()

    line = log_path.read_text().strip().splitlines()[-1]
    assert "| WARNING  |" in line
    assert "op=Facing |" in line
    assert line.endswith("spindle clamped")


def test_logging_bad_rotation_mode(tmp_path):
    """Test unknown rotation modes are rejected."""
    with pytest.raises(ValueError, match="Unknown rotation mode"):
        logging_config.setup_logging(
            log_file=str(tmp_path / "x.log"),
            to_stderr=False,
            rotate={"mode": "weekly"},
        )


# ============================================================================
# PROFILER TESTS
# ============================================================================

def test_profiler_timer():
    """Test profiler timer reports to its sink."""
    times = {}
    with profiler.timer('profile_extraction', sink=times.__setitem__):
        time.sleep(0.01)

    assert list(times) == ['profile_extraction']
    assert times['profile_extraction'] > 0


def test_profiler_timer_reports_on_error():
    """Test the sink still fires when the timed block raises."""
    times = []
    with pytest.raises(RuntimeError):
        with profiler.timer('failing', sink=lambda n, t: times.append(n)):
            raise RuntimeError("boom")
    assert times == ['failing']


def test_profiler_accumulator():
    """Test accumulator mean and reset."""
    acc = profiler.TimerAccumulator("operations")
    assert acc.mean() == 0.0
    for _ in range(3):
        with acc.measure():
            pass
    assert acc.count == 3
    summary = acc.as_dict()
    assert summary['count'] == 3.0
    assert summary['mean_s'] == pytest.approx(acc.total_time / 3)
    assert summary["min_s"] <= summary["max_s"]

    acc.reset()
    assert acc.count == 0 and acc.total_time == 0.0
    assert acc.as_dict()["min_s"] == 0.0


def test_profiler_accumulator_add():
    """Test externally measured durations update the extremes."""
    acc = profiler.TimerAccumulator("operations")
    for seconds in (0.5, 0.1, 0.3):
        acc.add(seconds)
    assert acc.min_time == pytest.approx(0.1)
    assert acc.max_time == pytest.approx(0.5)
    assert acc.mean() == pytest.approx(0.3)


# ============================================================================
# VALIDATORS TESTS
# ============================================================================

def test_validators_lathe_profile(configs_dir):
    """Test load_lathe_profile works with the packaged config."""
    cfg = validators.load_lathe_profile(configs_dir / "lathe.yaml")
    assert cfg.schema_version == "lathe.v1"
    assert cfg.machine.type == "generic"
    assert cfg.machine.travel.max_z == 300.0
    assert cfg.gcode.program_number == "1001"


def test_validators_machine_type_normalised():
    """Test machine type is case-insensitive."""
    assert validators.LatheMachine(type="HAAS").type == "haas"
    with pytest.raises(ValueError, match="Machine type"):
        validators.LatheMachine(type="heidenhain")


def test_validators_inverted_travel():
    """Test inverted travel limits are rejected."""
    with pytest.raises(ValueError, match="min_z"):
        validators.TravelLimits(min_z=10.0, max_z=-10.0)


def test_validators_cam_defaults(configs_dir):
    """Test the packaged CAM defaults validate."""
    defaults = validators.load_cam_defaults(configs_dir / "cam_defaults.yaml")
    assert defaults.default_material == "steel"
    assert {"steel", "aluminum", "brass", "stainless_steel"} <= set(defaults.materials)
    assert "common" in defaults.parameters
    assert defaults.materials["stainless_steel"].requires_coolant


def test_validators_parameter_default_outside_range():
    """Test parameter definitions keep their default inside [min, max]."""
    with pytest.raises(ValueError, match="outside"):
        validators.ParameterDefinitionSchema(min=0.0, max=1.0, default=2.0)


def test_validators_job(tmp_path):
    """Test a minimal job loads with defaults filled in."""
    path = tmp_path / "job.yaml"
    fs.atomic_yaml_dump(_job_data(machine_type="Fanuc"), path)
    job = validators.load_job_config(path)
    assert job.material == "steel"
    assert job.machine_type == "fanuc"
    assert job.tools[0].type == "Turning"
    assert job.operations[0].enabled


def test_validators_job_errors(tmp_path):
    """Test job validation failures name the problem."""
    cases = [
        (_job_data(schema="job.v2"), "job.v1"),
        (_job_data(profile=[[10.0, 0.0]]), "at least 2 points"),
        (_job_data(profile=[[-1.0, 0.0], [10.0, 5.0]]), "radius"),
        (_job_data(operations=[{'type': 'Drilling'}]), "Unknown operation"),
    ]
    for i, (data, message) in enumerate(cases):
        path = tmp_path / f"job_{i}.yaml"
        fs.atomic_yaml_dump(data, path)
        with pytest.raises(ValueError, match=message):
            validators.load_job_config(path)


def test_validators_empty_job(tmp_path):
    """Test an empty job file is rejected."""
    path = tmp_path / "empty.yaml"
    path.write_text("")
    with pytest.raises(ValueError, match="empty"):
        validators.load_job_config(path)


def test_validators_flatten_config():
    """Test flatten_config correctly flattens nested dicts."""
    nested_cfg = {
        'machine': {
            'travel': {'max_x': 200.0},
            'type': 'fanuc',
        },
        'pipeline': {
            'profile_sections': 100,
        }
    }
    flat = validators.flatten_config(nested_cfg)
    assert flat['machine.travel.max_x'] == 200.0
    assert flat['machine.type'] == 'fanuc'
    assert flat['pipeline.profile_sections'] == 100


def test_validators_flatten_model():
    """Test flatten_config accepts pydantic models."""
    flat = validators.flatten_config(validators.LatheConfigV1())
    assert flat['machine.travel.min_z'] == -300.0
    assert flat['gcode.line_number_start'] == 10
