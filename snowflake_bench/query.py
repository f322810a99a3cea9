__all__ = ['ResultShape', 'QuerySpec', 'infer_shape']

import re
from collections import namedtuple
from enum import Enum
from typing import Optional, Union


class ResultShape(Enum):
    TABULAR = 'tabular'  # SELECT-like
    STATUS = 'status'  # SHOW, DESCRIBE, DDL, DML

    def __str__(self):
        return self.value


_TABULAR_KEYWORDS = {'SELECT', 'WITH', 'VALUES', 'TABLE', 'FROM'}

_LEADING_NOISE = re.compile(r'^(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/|\()*', re.DOTALL)
_FIRST_WORD = re.compile(r'[A-Za-z_]+')


def infer_shape(sql_text: str) -> ResultShape:
    """
    Guess the result shape from the statement's leading keyword.

    Comments, whitespace and opening parentheses before the keyword are
    skipped. Anything that isn't recognisably a query is a status statement.
    """
    rest = _LEADING_NOISE.sub('', sql_text, count=1)
    match = _FIRST_WORD.match(rest)
    if match and match.group(0).upper() in _TABULAR_KEYWORDS:
        return ResultShape.TABULAR
    return ResultShape.STATUS


class QuerySpec(namedtuple('QuerySpec', ['sql_text', 'expected_result_shape'])):
    """A SQL statement together with the result shape the caller expects."""

    def __new__(
            cls,
            sql_text: str,
            expected_result_shape: Optional[Union[ResultShape, str]] = None) -> 'QuerySpec':
        sql_text = (sql_text or '').strip()
        if not sql_text:
            raise ValueError('Empty SQL text')
        if expected_result_shape is None:
            expected_result_shape = infer_shape(sql_text)
        else:
            expected_result_shape = ResultShape(expected_result_shape)
        return super().__new__(cls, sql_text, expected_result_shape)
