"""
Transform step for the Owls table.

Derives the model columns from the validated table without touching
the input:
    Nest    re-keyed as an ordered categorical, nests sorted by their
            mean negotiation rate per chick (display order only)
    NCalls  alias of SiblingNegotiation
    FT      alias of FoodTreatment
"""

from __future__ import annotations

import pandas as pd

from countglmm.core.datasource import DataSource


def nest_order(frame: pd.DataFrame) -> list[str]:
    """Nest labels in ascending order of mean SiblingNegotiation / BroodSize.

    Ties are broken by the nest label so the order is reproducible.
    """
    rate = frame['SiblingNegotiation'] / frame['BroodSize']
    nests = frame['Nest'].astype(str)
    means = rate.groupby(nests, sort=True).mean()
    ordered = sorted(means.items(), key=lambda kv: (kv[1], kv[0]))
    return [label for label, _ in ordered]


def prepare_owls(source: DataSource) -> DataSource:
    """Return a new DataSource with the reordered Nest, NCalls and FT.

    Idempotent: the ordering is computed from the raw columns, so
    applying it twice gives the same result.
    """
    frame = source.frame()
    order = nest_order(frame)
    nest = pd.Categorical(
        frame['Nest'].astype(str), categories=order, ordered=True,
    )
    return source.with_columns(
        Nest=pd.Series(nest),
        NCalls=frame['SiblingNegotiation'].to_numpy(copy=True),
        FT=frame['FoodTreatment'].copy(),
    )
