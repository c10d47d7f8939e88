"""Process entrypoint: runs the CLI and turns failures into exit codes.

Pipeline errors print one ``error: [<stage>] <message>`` line. Anything that is
not an :class:`~ort_builder.errors.OrtBuilderError` (directly or through its
cause chain) is a bug and gets a full traceback instead.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

from ort_builder.errors import (
    AcquisitionError,
    ConfigurationError,
    NativeBuildError,
    OrtBuilderError,
    PackagingError,
    PatchError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    INTERNAL_ERROR = 1
    CONFIG_ERROR = 2
    ACQUISITION_ERROR = 3
    BUILD_ERROR = 4
    PACKAGING_ERROR = 5


# First match wins; UnsupportedPlatformError is a PackagingError.
_EXIT_CODE_BY_ERROR: tuple[tuple[type[OrtBuilderError], ExitCode], ...] = (
    (ConfigurationError, ExitCode.CONFIG_ERROR),
    (AcquisitionError, ExitCode.ACQUISITION_ERROR),
    (PatchError, ExitCode.ACQUISITION_ERROR),
    (NativeBuildError, ExitCode.BUILD_ERROR),
    (PackagingError, ExitCode.PACKAGING_ERROR),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Console-script target; also used by ``python -m ort_builder`` and the scripts shim."""

    try:
        from ort_builder.ui.cli import run_cli

        return _coerce_exit_status(run_cli(argv))
    except SystemExit as exc:
        # argparse: 0 for --help/--version, 2 for usage errors.
        return _coerce_exit_status(exc.code)
    except BaseException as exc:  # noqa: BLE001
        return _report_failure(exc)


def exit_code_for(exc: BaseException) -> ExitCode:
    builder_error = _first_builder_error(exc)
    if builder_error is not None:
        for error_type, code in _EXIT_CODE_BY_ERROR:
            if isinstance(builder_error, error_type):
                return code
    return ExitCode.INTERNAL_ERROR


def _report_failure(exc: BaseException) -> int:
    code = exit_code_for(exc)
    builder_error = _first_builder_error(exc)
    if code is ExitCode.INTERNAL_ERROR or builder_error is None:
        traceback.print_exception(exc, file=sys.stderr)
    else:
        message = str(exc).strip() or type(exc).__name__
        print(f"error: [{builder_error.stage}] {message}", file=sys.stderr)
    return int(code)


def _coerce_exit_status(status: object) -> int:
    if status is None:
        return int(ExitCode.SUCCESS)
    if isinstance(status, int):
        known = {code.value for code in ExitCode}
        return status if status in known else int(ExitCode.INTERNAL_ERROR)
    if isinstance(status, str) and status.strip():
        print(status.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _first_builder_error(exc: BaseException) -> OrtBuilderError | None:
    for link in _causes(exc):
        if isinstance(link, OrtBuilderError):
            return link
    return None


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and each explicit cause or unsuppressed context, stopping on cycles."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for"]
