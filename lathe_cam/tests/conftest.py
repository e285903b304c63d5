"""Shared fixtures for the lathe_cam test suite."""

from __future__ import annotations

import pytest

from lathe_cam.configs.loader import CamDefaults, LatheConfig, load_cam_defaults, load_config
from lathe_cam.geometry.solids import RevolvedSolid, make_cylinder, make_stepped_shaft
from lathe_cam.profile.extractor import Profile2D, extract_segment_profile
from lathe_cam.toolpath.types import CuttingParameters, Tool, ToolGeometry, ToolType


@pytest.fixture()
def lathe_config() -> LatheConfig:
    """The packaged lathe configuration."""
    return load_config()


@pytest.fixture()
def cam_defaults() -> CamDefaults:
    return load_cam_defaults()


@pytest.fixture()
def turning_tool() -> Tool:
    return Tool(
        "CNMG 120408",
        ToolType.TURNING,
        cutting=CuttingParameters(feed_rate=0.2, spindle_speed=1000.0),
        tool_number=1,
    )


@pytest.fixture()
def parting_tool() -> Tool:
    return Tool(
        "Parting blade 3mm",
        ToolType.PARTING,
        geometry=ToolGeometry(insert_width=3.0, length=20.0),
        tool_number=4,
    )


@pytest.fixture()
def grooving_tool() -> Tool:
    return Tool(
        "Groove 2mm",
        ToolType.GROOVING,
        geometry=ToolGeometry(insert_width=2.0),
        tool_number=3,
    )


@pytest.fixture()
def threading_tool() -> Tool:
    return Tool("Thread 60deg", ToolType.THREADING, tool_number=2)


@pytest.fixture()
def cylinder() -> RevolvedSolid:
    """R10 x 50 cylinder, z in [0, 50]."""
    return make_cylinder(10.0, 50.0)


@pytest.fixture()
def cylinder_profile(cylinder: RevolvedSolid) -> Profile2D:
    return extract_segment_profile(cylinder)


@pytest.fixture()
def shaft() -> RevolvedSolid:
    """R15 x 20 at the chuck side, R10 x 30 toward the face (z = 50)."""
    return make_stepped_shaft([(15.0, 20.0), (10.0, 30.0)])


@pytest.fixture()
def shaft_profile(shaft: RevolvedSolid) -> Profile2D:
    return extract_segment_profile(shaft)
