from __future__ import annotations

from order_migrator.models.migration import MigrationResult

"""SUMMARY line rendering.

Format:
SUMMARY sheet=<id> mode=<dry-run|live> orders=<n> customers=<n> items=<n>
deleted=<n> skipped=<n> errors=<n> elapsed_sec=<x>
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # 避免指數表示 (1e-05 等)
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: MigrationResult) -> str:
    """Render the SUMMARY line for one run.

    Args:
        result: Finished run

    Returns:
        Single line starting with "SUMMARY "

    Examples:
        >>> from order_migrator.models import MigrationResult, MigrationStats
        >>> r = MigrationResult(True, "dry run completed", MigrationStats(orders_processed=3),
        ...                     sheet_id="abc", dry_run=True)
        >>> render_summary_line(r)
        'SUMMARY sheet=abc mode=dry-run orders=3 customers=0 items=0 deleted=0 skipped=0 errors=0 elapsed_sec=0'
    """
    s = result.stats
    mode = "dry-run" if result.dry_run else "live"
    return (
        f"SUMMARY sheet={result.sheet_id or '-'} "
        f"mode={mode} "
        f"orders={s.orders_processed} "
        f"customers={s.customers_processed} "
        f"items={s.products_processed} "
        f"deleted={s.orders_deleted} "
        f"skipped={s.skipped} "
        f"errors={len(s.errors)} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)}"
    )
