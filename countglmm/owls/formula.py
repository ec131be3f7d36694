"""
Structured model formula and design-matrix builder.

The formula is configuration, not text: a frozen ModelFormula names the
response, the fixed-effect terms and their interactions, the offset and
the random-intercept grouping factor. ModelFormula.describe() renders
R-style text for reports; nothing here parses formula strings.

Design matrices follow R's model.matrix() conventions:
    - an intercept column named '(Intercept)'
    - treatment contrasts for categorical predictors (first level is the
      reference), columns named <variable><level>, e.g. 'FTSatiated'
    - numeric predictors enter as-is
    - interaction columns are element-wise products named 'a:b'
    - column order: intercept, main effects, then interactions, each in
      declaration order
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
import pandas as pd
from numpy.typing import NDArray

from countglmm.core.datasource import DataSource
from countglmm.core.exceptions import ValidationError
from countglmm.core.validation import check_positive


@dataclass(frozen=True)
class FixedTerm:
    """A main effect, optionally crossed with other variables.

    FixedTerm('FT', ('SexParent',)) stands for FT + SexParent + FT:SexParent.
    """
    variable: str
    interacts_with: tuple[str, ...] = ()


@dataclass(frozen=True)
class RandomTerm:
    """A random effect for one grouping factor. Only 'intercept' is supported."""
    group: str
    kind: str = 'intercept'


@dataclass(frozen=True)
class ModelFormula:
    """Structured count-GLMM formula.

    Attributes:
        response: Count response column.
        fixed: Fixed-effect terms in declaration order.
        offset: Column entering the linear predictor with coefficient 1.
        offset_transform: 'log' or 'identity', applied to the offset column.
        random: Random-effect terms (exactly one intercept term).
    """
    response: str
    fixed: tuple[FixedTerm, ...]
    offset: str | None = None
    offset_transform: str = 'log'
    random: tuple[RandomTerm, ...] = ()

    def main_effects(self) -> list[str]:
        """Main-effect variables in declaration order, implied ones last."""
        out = []
        for term in self.fixed:
            if term.variable not in out:
                out.append(term.variable)
        for term in self.fixed:
            for partner in term.interacts_with:
                if partner not in out:
                    out.append(partner)
        return out

    def interactions(self) -> list[tuple[str, str]]:
        """Two-way interactions (a, b) in declaration order."""
        out = []
        for term in self.fixed:
            for partner in term.interacts_with:
                pair = (term.variable, partner)
                if pair not in out:
                    out.append(pair)
        return out

    def variables(self) -> list[str]:
        """Every column the formula reads."""
        cols = [self.response] + self.main_effects()
        if self.offset is not None:
            cols.append(self.offset)
        cols.extend(r.group for r in self.random)
        return cols

    def describe(self) -> str:
        """R-style formula text, for display."""
        # terms sharing the same partners collapse to (a + b) * c
        crossed: dict[tuple[str, ...], list[str]] = {}
        for term in self.fixed:
            if term.interacts_with:
                crossed.setdefault(term.interacts_with, []).append(term.variable)

        parts = []
        shown = set()
        for partners, variables in crossed.items():
            lhs = variables[0] if len(variables) == 1 else f"({' + '.join(variables)})"
            rhs = partners[0] if len(partners) == 1 else f"({' + '.join(partners)})"
            parts.append(f"{lhs} * {rhs}")
            shown.update(variables)
            shown.update(partners)
        for term in self.fixed:
            if term.variable not in shown:
                parts.append(term.variable)
                shown.add(term.variable)

        if self.offset is not None:
            if self.offset_transform == 'log':
                parts.append(f"offset(log({self.offset}))")
            else:
                parts.append(f"offset({self.offset})")
        for r in self.random:
            parts.append(f"(1 | {r.group})")
        return f"{self.response} ~ {' + '.join(parts)}"


OWLS_FORMULA = ModelFormula(
    response='NCalls',
    fixed=(
        FixedTerm('FT', ('SexParent',)),
        FixedTerm('ArrivalTime', ('SexParent',)),
        FixedTerm('SexParent'),
    ),
    offset='BroodSize',
    offset_transform='log',
    random=(RandomTerm('Nest'),),
)


@dataclass(frozen=True)
class ModelMatrices:
    """Numeric inputs for glmm() built from a formula and a DataSource."""
    y: NDArray
    X: NDArray
    column_names: tuple[str, ...]
    offset: NDArray | None
    groups: dict[str, pd.Categorical]
    group_levels: tuple

    @property
    def group_name(self) -> str:
        return next(iter(self.groups))


def build_design(formula: ModelFormula, source: DataSource) -> ModelMatrices:
    """Build response, design matrix, offset and grouping factor.

    Raises:
        ValidationError: Unknown columns, non-positive values under a log
            offset, or an unsupported random-effect structure.
    """
    missing = [c for c in formula.variables() if c not in source]
    if missing:
        raise ValidationError(
            f"Formula '{formula.describe()}' uses columns {missing} that are "
            f"not in the data; available: {sorted(source.keys())}"
        )

    if len(formula.random) != 1:
        raise ValidationError(
            f"Exactly one random term is supported, got {len(formula.random)}"
        )
    random_term = formula.random[0]
    if random_term.kind != 'intercept':
        raise ValidationError(
            f"Only random intercepts are supported, got kind="
            f"'{random_term.kind}' for '{random_term.group}'"
        )

    y = np.asarray(source[formula.response], dtype=np.float64)
    n = len(y)

    # per-variable contrast columns
    blocks: dict[str, list[tuple[str, NDArray]]] = {}
    for var in formula.main_effects():
        blocks[var] = _predictor_columns(var, source.column(var))

    names = ['(Intercept)']
    cols = [np.ones(n, dtype=np.float64)]
    for var in formula.main_effects():
        for name, values in blocks[var]:
            names.append(name)
            cols.append(values)
    for a, b in formula.interactions():
        for b_name, b_values in blocks[b]:
            for a_name, a_values in blocks[a]:
                names.append(f"{a_name}:{b_name}")
                cols.append(a_values * b_values)

    offset = None
    if formula.offset is not None:
        offset = _offset_column(formula, source)

    group = source.column(random_term.group)
    if isinstance(group.dtype, pd.CategoricalDtype):
        labels = group.array
    else:
        labels = pd.Categorical(group.astype(str))
    labels = labels.remove_unused_categories()

    return ModelMatrices(
        y=y,
        X=np.column_stack(cols),
        column_names=tuple(names),
        offset=offset,
        groups={random_term.group: labels},
        group_levels=tuple(labels.categories.tolist()),
    )


def _predictor_columns(name: str, column: pd.Series) -> list[tuple[str, NDArray]]:
    """Treatment-contrast columns for a categorical, the column itself otherwise."""
    if (isinstance(column.dtype, pd.CategoricalDtype)
            or not pd.api.types.is_numeric_dtype(column.dtype)):
        cat = pd.Categorical(column)
        cat = cat.remove_unused_categories()
        levels = list(cat.categories)
        if len(levels) < 2:
            raise ValidationError(
                f"Factor '{name}' has {len(levels)} level(s); treatment "
                f"contrasts need at least 2"
            )
        codes = np.asarray(cat.codes)
        return [
            (f"{name}{level}", (codes == k).astype(np.float64))
            for k, level in enumerate(levels) if k > 0
        ]
    return [(name, column.to_numpy(dtype=np.float64))]


def _offset_column(formula: ModelFormula, source: DataSource) -> NDArray:
    values = np.asarray(source[formula.offset], dtype=np.float64)
    if formula.offset_transform == 'log':
        check_positive(values, f"offset log({formula.offset})")
        return np.log(values)
    if formula.offset_transform == 'identity':
        return values
    raise ValidationError(
        f"Unknown offset_transform '{formula.offset_transform}'; "
        f"expected 'log' or 'identity'"
    )
