#!/usr/bin/env python3
"""Turn a YAML job into a G-code program.

Usage::

    python -m lathe_cam.scripts.generate_gcode --part job.yaml -o part.nc
    python -m lathe_cam.scripts.generate_gcode --part job.yaml -o part.nc \\
        --config my_lathe.yaml --machine-type fanuc
    python -m lathe_cam.scripts.generate_gcode --part job.yaml -o part.nc \\
        --log-level DEBUG --log-file outputs/logs/generate.log --json-logs

The job file (``job.v1``) gives the part generatrix as ``(radius, z)``
points, the stock, the material, the tools and the operations; see
``src/utils/validators.py`` for the schema.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from lathe_cam.configs.loader import ConfigError, load_cam_defaults, load_config
from lathe_cam.errors import CamError
from lathe_cam.gcode.postprocessor import PostProcessor
from lathe_cam.geometry.solids import RevolvedSolid
from lathe_cam.params.config import BOOLEAN_FIELDS, NUMERIC_FIELDS, STRING_FIELDS, OperationConfig
from lathe_cam.params.manager import OperationParameterManager
from lathe_cam.pipeline.pipeline import (
    GenerationRequest,
    GlobalParameters,
    OperationRequest,
    ToolpathGenerationPipeline,
)
from lathe_cam.toolpath.types import CuttingParameters, OperationType, Tool, ToolGeometry, ToolType
from src.utils.fs import atomic_write_text
from src.utils.logging_config import setup_logging
from src.utils.validators import JobOperation, JobTool, JobV1, load_job_config

logger = logging.getLogger(__name__)

_CONFIG_FIELDS = set(NUMERIC_FIELDS) | set(STRING_FIELDS) | set(BOOLEAN_FIELDS)


# ---------------------------------------------------------------------------
# Job -> request
# ---------------------------------------------------------------------------


def build_tool(spec: JobTool) -> Tool:
    return Tool(
        name=spec.name,
        tool_type=ToolType(spec.type),
        geometry=ToolGeometry(tip_radius=spec.tip_radius, insert_width=spec.insert_width),
        cutting=CuttingParameters(
            feed_rate=spec.feed_rate,
            spindle_speed=spec.spindle_speed,
            depth_of_cut=spec.depth_of_cut,
            stepover=spec.stepover,
            rapid_feed_rate=spec.rapid_feed_rate,
        ),
        tool_number=spec.tool_number,
    )


def build_operation(entry: JobOperation, tools: dict[str, Tool]) -> OperationRequest:
    """Config fields become user settings, other keys become overrides."""
    values = {k: v for k, v in entry.params.items() if k in _CONFIG_FIELDS}
    overrides = {k: v for k, v in entry.params.items() if k not in _CONFIG_FIELDS}
    op_type = OperationType(entry.type)
    config = OperationConfig.from_values(op_type, overrides=overrides, **values)
    return OperationRequest(op_type, entry.enabled, config, tools.get(entry.type))


def build_request(job: JobV1, global_params: GlobalParameters) -> GenerationRequest:
    tools = [build_tool(t) for t in job.tools]
    by_operation: dict[str, Tool] = {}
    for spec, tool in zip(job.tools, tools):
        for name in spec.operations:
            by_operation.setdefault(name, tool)
    return GenerationRequest(
        part=RevolvedSolid.from_points(job.profile),
        operations=[build_operation(entry, by_operation) for entry in job.operations],
        primary_tool=tools[0],
        global_params=global_params,
    )


def _progress(fraction: float, status: str) -> None:
    logger.info("[%3.0f%%] %s", fraction * 100.0, status)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate lathe G-code from a YAML job",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--part", "-p", type=str, required=True,
                        help="Job YAML (job.v1)")
    parser.add_argument("--output", "-o", type=str, required=True,
                        help="Output G-code file")
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Lathe config YAML (default: packaged lathe.yaml)")
    parser.add_argument("--defaults", type=str, default=None,
                        help="CAM defaults YAML (default: packaged cam_defaults.yaml)")
    parser.add_argument("--machine-type", type=str, default=None,
                        help="Override the machine type (generic, fanuc, haas, ...)")
    parser.add_argument("--log-level", type=str, default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-file", type=str, default=None,
                        help="Also log to this file")
    parser.add_argument("--json-logs", action="store_true",
                        help="JSON lines in the log file")
    parser.add_argument("--crlf", action="store_true",
                        help="Write the program with CR/LF line endings")
    args = parser.parse_args(argv)

    setup_logging(
        log_level=args.log_level,
        log_file=args.log_file,
        json=args.json_logs,
        context={"app": "generate_gcode"},
    )

    try:
        config = load_config(args.config)
        defaults = load_cam_defaults(args.defaults) if args.defaults else None
        job = load_job_config(args.part)
    except (ConfigError, FileNotFoundError, ValueError) as exc:
        logger.error("Cannot load inputs: %s", exc)
        return 2

    stock = job.stock
    global_params = GlobalParameters.from_config(
        config,
        material=job.material,
        profile_tolerance=job.tolerance,
        stock_diameter=stock.diameter if stock else None,
        stock_length=stock.length if stock else None,
    )
    try:
        request = build_request(job, global_params)
    except (CamError, ValueError) as exc:
        logger.error("Invalid job %s: %s", args.part, exc)
        return 2
    request.progress_callback = _progress

    pipeline = ToolpathGenerationPipeline(OperationParameterManager(defaults), config)
    result = pipeline.generate_toolpaths(request)
    for w in result.warnings:
        logger.warning("%s", w)
    if not result.success:
        for e in result.errors:
            logger.error("%s", e)
        return 1

    post = PostProcessor(config, args.machine_type or job.machine_type)
    processed = post.process(result.ordered_toolpaths())
    for w in processed.warnings:
        logger.warning("%s", w)
    if not processed.success:
        for e in processed.errors:
            logger.error("%s", e)
        return 1

    out = Path(args.output)
    atomic_write_text(out, processed.gcode, line_ending="\r\n" if args.crlf else None)
    logger.info(
        "Wrote %s: %d lines, %d toolpaths, machining %.2f min (with overhead %.2f min)",
        out,
        processed.line_count,
        processed.toolpath_count,
        processed.estimated_time,
        result.statistics.total_time,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
