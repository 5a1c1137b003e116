"""
Validation utilities public API.

Re-exports:
    - Reference order:
        ORACLE_NAME
        oracle_order
        equals_oracle

    - Property checks:
        is_ranked
        first_rank_violation_index
        is_permutation
        permutation_counter_diff
        assert_no_mutation
"""

from .oracle import ORACLE_NAME, equals_oracle, oracle_order
from .properties import (
    assert_no_mutation,
    first_rank_violation_index,
    is_permutation,
    is_ranked,
    permutation_counter_diff,
)

__all__ = [
    "ORACLE_NAME",
    "oracle_order",
    "equals_oracle",
    "is_ranked",
    "first_rank_violation_index",
    "is_permutation",
    "permutation_counter_diff",
    "assert_no_mutation",
]
