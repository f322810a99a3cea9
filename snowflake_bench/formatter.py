__all__ = ['format_rowset', 'format_result', 'format_iteration', 'MAX_DISPLAY_ROWS']

import pandas as pd

from .rowset import NormalizedRowSet, rowset_to_pandas
from .stats import BenchmarkResult, Stats

MAX_DISPLAY_ROWS = 1000


def format_rowset(rowset: NormalizedRowSet, max_rows: int = MAX_DISPLAY_ROWS) -> str:
    """Render rows as a text table, showing at most ``max_rows`` of them."""
    if not rowset.rows:
        if rowset.column_names:
            return 'Query returned no rows.\nColumns: ' + ', '.join(rowset.column_names)
        return 'Query returned no rows.'
    shown = rowset
    if rowset.row_count > max_rows:
        shown = NormalizedRowSet(rowset.column_names, rowset.rows[:max_rows])
    df = rowset_to_pandas(shown)
    with pd.option_context('display.max_colwidth', None):
        text = df.to_string(index=False, na_rep='NULL')
    if rowset.row_count > max_rows:
        text += f'\n\n... (showing first {max_rows} of {rowset.row_count} rows)'
    return text


def format_iteration(index: int, stats: Stats) -> str:
    return (f'Iteration {index + 1}: {stats.duration_s * 1000:.2f}ms '
            f'({stats.line_count} rows)')


def format_result(result: BenchmarkResult) -> str:
    text = str(result)
    if result.error is not None:
        text += f'\nAborted: {result.error}'
    return text
