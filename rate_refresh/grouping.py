"""
Currency pair grouping for claimed rate requests.

Collapses duplicate requests for the same (base, result) pair so each base
currency costs one provider call and each pair one batched write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from rate_refresh.domain.models import CurrencyCode, RateRequest


@dataclass
class CurrencyPairGroup:
    result_currency: CurrencyCode
    ids: List[str] = field(default_factory=list)


def group_rates(records: Iterable[RateRequest]) -> Dict[CurrencyCode, List[CurrencyPairGroup]]:
    """
    Partition records by base currency, then by result currency.

    Groups under a base and ids inside a group keep input order.
    """
    grouped: Dict[CurrencyCode, List[CurrencyPairGroup]] = {}
    index: Dict[tuple, CurrencyPairGroup] = {}
    for record in records:
        key = (record.base_currency, record.result_currency)
        group = index.get(key)
        if group is None:
            group = CurrencyPairGroup(result_currency=record.result_currency)
            index[key] = group
            grouped.setdefault(record.base_currency, []).append(group)
        group.ids.append(record.id)
    return grouped


def flatten_group_ids(groups: Iterable[CurrencyPairGroup]) -> List[str]:
    """Concatenate the ids of every group, in group order."""
    return [rate_id for group in groups for rate_id in group.ids]


__all__ = ["CurrencyPairGroup", "flatten_group_ids", "group_rates"]
