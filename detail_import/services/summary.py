from __future__ import annotations

from .runner import RunResult

"""SUMMARY line rendering for batch import runs.

Format (one line, space separated key=value):
SUMMARY files={imported}/{total} rows={rows} valid={valid} errors={errors}
warnings={warnings} imported={details} area_m2={area} elapsed_sec={elapsed}
"""

__all__ = ["render_summary_line", "format_number"]


def format_number(value: float) -> str:
    """Integral values without a decimal point; tiny values without exponent."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(round(value, 3))


def render_summary_line(result: RunResult) -> str:
    """Render the SUMMARY line for a finished run.

    >>> r = RunResult(success_files=1, failed_files=0, total_rows=3, valid_rows=2,
    ...               error_rows=1, warning_rows=0, imported=2, total_area=4.8,
    ...               elapsed_seconds=2.0)
    >>> render_summary_line(r)
    'SUMMARY files=1/1 rows=3 valid=2 errors=1 warnings=0 imported=2 area_m2=4.8 elapsed_sec=2'
    """
    return (
        f"SUMMARY files={result.success_files}/{result.total_files} "
        f"rows={result.total_rows} "
        f"valid={result.valid_rows} "
        f"errors={result.error_rows} "
        f"warnings={result.warning_rows} "
        f"imported={result.imported} "
        f"area_m2={format_number(result.total_area)} "
        f"elapsed_sec={format_number(result.elapsed_seconds)}"
    )
