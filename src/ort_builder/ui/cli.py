"""Command-line interface for ort-builder."""

from __future__ import annotations

import argparse
from collections.abc import Mapping, Sequence
from typing import Final

from ort_builder import __version__
from ort_builder.config import BuildConfig, dump_effective_config, resolve_build_config
from ort_builder.errors import ConfigurationError
from ort_builder.observability import (
    LoggingConfig,
    LoggingHandle,
    setup_structured_logging,
    shutdown_logging,
)
from ort_builder.pipeline import (
    ArchiveDownloader,
    BuildPipeline,
    CommandRunner,
    PipelineMode,
    PipelineResult,
)
from ort_builder.platform import HostPlatform
from ort_builder.ui.render import CLIRenderer, create_renderer

PROG: Final[str] = "ort-builder"

_STAGE_LABELS: Final[dict[str, str]] = {
    "acquire": "Fetching ONNX Runtime source",
    "patch": "Patching dependency checksums",
    "build": "Building ONNX Runtime",
    "package": "Packaging static libraries",
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser; unknown arguments exit with status 2."""

    parser = argparse.ArgumentParser(
        prog=PROG,
        description=(
            "Fetch, patch, build, and package a pinned ONNX Runtime release as\n"
            "static libraries under <output>/lib.\n\n"
            "Environment:\n"
            "  OUT_DIR       output root (default: <repo-root>/target/onnxruntime)\n"
            "  ORT_VERSION   release to build (default: 1.22.0)\n"
            "  OPS_CONFIG    operator config for a minimal build (--ops-config wins)\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--ops-config",
        metavar="PATH",
        default=None,
        help="Operator config for a minimal build (relative to the repo root).",
    )
    parser.add_argument(
        "--repo-root",
        default=".",
        help="Repository root directory (default: current working directory).",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to a TOML config (default: <repo-root>/ort_builder.toml if present).",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Resolve configuration and print the native build command without running it.",
    )
    mode.add_argument(
        "--package-only",
        action="store_true",
        default=False,
        help="Skip fetch and build; package an existing build tree.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output and mirror structured logs to stderr.",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    platform: HostPlatform | None = None,
    downloader: ArchiveDownloader | None = None,
    runner: CommandRunner | None = None,
) -> int:
    """Parse argv, run the pipeline, and return the process exit code.

    Pipeline failures propagate as :class:`~ort_builder.errors.OrtBuilderError`
    so the process boundary can map them to exit codes.
    """

    args = build_parser().parse_args(list(argv) if argv is not None else None)
    renderer = create_renderer(no_color=args.no_color, verbose=args.verbose)

    config = resolve_build_config(
        args.repo_root,
        ops_config=args.ops_config,
        config_path=args.config_path,
        environ=environ,
    )
    mode = _pipeline_mode(args)
    handle = _start_logging(config, verbose=args.verbose)
    try:
        _render_config(renderer, config, handle)
        pipeline = BuildPipeline(
            config,
            platform=platform,
            downloader=downloader,
            runner=runner,
            on_stage=lambda name: renderer.stage(_STAGE_LABELS.get(name, name)),
        )
        result = pipeline.run(mode)
        _render_result(renderer, result)
    finally:
        shutdown_logging(handle)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Compatibility wrapper for main-module wiring."""

    return run_cli(argv)


def _pipeline_mode(args: argparse.Namespace) -> PipelineMode:
    if args.dry_run:
        return PipelineMode.DRY_RUN
    if args.package_only:
        return PipelineMode.PACKAGE_ONLY
    return PipelineMode.FULL


def _start_logging(config: BuildConfig, *, verbose: bool) -> LoggingHandle:
    try:
        return setup_structured_logging(LoggingConfig.for_build(config, verbose=verbose))
    except OSError as exc:
        raise ConfigurationError(
            f"unable to create log directory under {config.effective_log_dir}: {exc}"
        ) from exc


def _render_config(
    renderer: CLIRenderer, config: BuildConfig, handle: LoggingHandle
) -> None:
    renderer.heading(f"ONNX Runtime {config.version}")
    renderer.kv("output", config.output_root)
    if config.ops_config_path is not None:
        renderer.kv("ops config", config.ops_config_path)
    renderer.detail(f"run id: {handle.run_id}")
    renderer.detail(f"log: {handle.log_path}")
    renderer.detail(f"effective config: {dump_effective_config(config.raw)}")


def _render_result(renderer: CLIRenderer, result: PipelineResult) -> None:
    if result.acquisition is not None and result.acquisition.cache_hit:
        renderer.detail(f"reused cached source tree {result.acquisition.source_dir}")
    if result.patch is not None and result.patch.changed:
        renderer.detail(f"patched {', '.join(result.patch.patched_entries) or 'deps.txt'}")

    if result.mode is PipelineMode.DRY_RUN:
        if result.invocation is not None:
            renderer.text(result.invocation.render())
        return

    package = result.package
    if package is None:
        return
    for skipped in package.copy_report.skipped:
        renderer.warning(f"could not copy {skipped.path}: {skipped.reason}")
    renderer.ok(f"{len(package.copy_report.copied)} files copied to {package.lib_dir}")
    renderer.ok(f"linker manifest: {package.manifest_path}")
    if renderer.verbose:
        renderer.items(package.libraries)


__all__ = ["PROG", "build_parser", "main", "run_cli"]
