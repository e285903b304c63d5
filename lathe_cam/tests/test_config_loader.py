"""Tests for lathe and CAM defaults configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from lathe_cam.configs.loader import (
    CamDefaults,
    ConfigError,
    LatheConfig,
    default_cam_defaults,
    load_cam_defaults,
    load_config,
)


def _write(path: Path, data: dict) -> Path:
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


class TestLatheConfig:
    def test_packaged_config(self, lathe_config: LatheConfig) -> None:
        m = lathe_config.machine
        assert m.machine_type == "generic"
        assert m.absolute_coordinates
        assert m.max_spindle_speed == pytest.approx(3000.0)
        assert lathe_config.gcode.line_number_start == 10
        assert lathe_config.pipeline.time_overhead_factor == pytest.approx(1.1)

    def test_partial_file_uses_defaults(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "lathe.yaml",
            {"schema": "lathe.v1", "machine": {"type": "FANUC", "diameter_mode": True}},
        )
        cfg = load_config(path)
        assert cfg.machine.machine_type == "fanuc"
        assert cfg.machine.diameter_mode
        assert cfg.gcode.include_comments

    def test_unknown_machine_type(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "lathe.yaml", {"schema": "lathe.v1", "machine": {"type": "heidenhain"}})
        with pytest.raises(ConfigError):
            load_config(path)

    def test_wrong_schema(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "lathe.yaml", {"schema": "lathe.v2"})
        with pytest.raises(ConfigError):
            load_config(path)

    def test_retract_beyond_travel(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "lathe.yaml",
            {
                "schema": "lathe.v1",
                "machine": {"safe_retract_z": 50.0, "travel": {"max_z": 10.0}},
            },
        )
        with pytest.raises(ConfigError, match="safe_retract_z"):
            load_config(path)

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "lathe.yaml"
        path.write_text("", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")


class TestCamDefaults:
    def test_materials(self, cam_defaults: CamDefaults) -> None:
        assert set(cam_defaults.materials) >= {"steel", "aluminum", "brass", "stainless_steel"}
        assert cam_defaults.material("Stainless Steel").requires_coolant

    def test_definitions_include_common(self, cam_defaults: CamDefaults) -> None:
        names = [d.name for d in cam_defaults.definitions_for("Threading")]
        assert names[:3] == ["feed_rate", "spindle_speed", "depth_of_cut"]
        assert "thread_pitch" in names

    def test_default_outside_range_rejected(self, tmp_path: Path) -> None:
        data = yaml.safe_load(
            (Path(__file__).parents[1] / "configs" / "cam_defaults.yaml").read_text(encoding="utf-8")
        )
        data["parameters"]["common"]["feed_rate"]["default"] = 5.0
        with pytest.raises(ConfigError):
            load_cam_defaults(_write(tmp_path / "cam.yaml", data))

    def test_cached_defaults(self) -> None:
        assert default_cam_defaults() is default_cam_defaults()
