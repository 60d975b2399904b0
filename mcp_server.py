#!/usr/bin/env python3
"""
MCP Server for testrun-reporter.
Provides tools for decoding test report files and rendering their markdown summary.
"""

import os
import logging
import json
import asyncio
from fastmcp import FastMCP

import core
from testrun_reporter.errors import ReporterError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# FastMCP server
mcp = FastMCP("testrun-reporter")


def _split(paths: str) -> list[str]:
    return [p.strip() for p in paths.split(",") if p.strip()]


@mcp.tool(
    name="parse_test_report",
    description="""Decode test report files into unified results.
        Args:
            reporter: Report format ("dart-json", "dotnet-trx", "flutter-json", "java-junit", "jest-junit", "mocha-json")
            paths: Comma-separated glob patterns relative to working_directory (prefix with ! to exclude)
            working_directory: Directory the reports were produced in (default: server cwd)
            parse_errors: Include failure messages and source locations (default: true)
    """
)
async def parse_test_report(
    reporter: str,
    paths: str,
    working_directory: str = ".",
    parse_errors: bool = True
) -> str:
    try:
        result = await asyncio.to_thread(
            core.parse_reports, reporter, _split(paths), working_directory, parse_errors
        )
        return json.dumps({
            "results": [tr.to_dict() for tr in result["results"]],
            "errors": result["errors"],
        }, indent=2, default=str)
    except ReporterError as e:
        logger.error(f"Error in parse_test_report: {str(e)}")
        return json.dumps({"error": str(e), "results": [], "errors": []})


@mcp.tool(
    name="render_test_report",
    description="""Render the markdown summary and check run annotations for test report files.

    The summary is the same text that is published as check run summary, pull request
    comment and job summary. It is limited to 65535 bytes.

    Args:
        reporter: Report format (see list_reporters)
        paths: Comma-separated glob patterns relative to working_directory
        working_directory: Directory the reports were produced in (default: server cwd)
        list_suites: "all" or "failed" (default: all)
        list_tests: "all", "failed" or "none" (default: all)
        only_summary: Render only the totals header (default: false)
        max_annotations: Number of failure annotations to create, 0..50 (default: 10)
    """
)
async def render_test_report(
    reporter: str,
    paths: str,
    working_directory: str = ".",
    list_suites: str = "all",
    list_tests: str = "all",
    only_summary: bool = False,
    max_annotations: int = 10
) -> str:
    try:
        result = await asyncio.to_thread(
            core.render_reports, reporter, _split(paths), working_directory,
            list_suites, list_tests, only_summary, max_annotations,
        )
        return json.dumps(result, indent=2, default=str)
    except ReporterError as e:
        logger.error(f"Error in render_test_report: {str(e)}")
        return json.dumps({"error": str(e)})


@mcp.tool(
    name="list_reporters",
    description="""List supported test report formats."""
)
async def list_reporters() -> str:
    return json.dumps(core.list_reporters(), indent=2)


async def main():
    port = int(os.getenv("FASTMCP_PORT", "8978"))
    logger.info(f"Starting MCP server on port {port}")
    await mcp.run_async(transport="sse", host="0.0.0.0", port=port)


if __name__ == "__main__":
    asyncio.run(main())
