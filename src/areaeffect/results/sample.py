"""
Stratified sampling of classification results.

Rows are drawn from two strata with a target ratio. For AoE results the
strata are core and halo; for border results they are either the two sides
(`by="side"`) or core and halo (`by="class"`). When `n` is not given the
sample is the largest one that honours the ratio without replacement
(balanced downsampling to the limiting stratum).
"""

from __future__ import annotations

import dataclasses
import math
from typing import Any, Mapping

# numpy Generator drives reproducible draws from each stratum.
import numpy as np
import pandas as pd

from areaeffect.errors import InvalidArgumentError
from areaeffect.results.model import BorderResult, Result, subset

_CLASSES = ("core", "halo")


def _validate_ratio(ratio: Mapping[str, float] | None, strata: tuple[str, str]) -> tuple[float, float]:
    if ratio is None:
        return 0.5, 0.5
    if not isinstance(ratio, Mapping) or set(ratio) != set(strata):
        raise InvalidArgumentError(f"`ratio` must map exactly {list(strata)} to proportions")
    values = tuple(float(ratio[s]) for s in strata)
    if any(v < 0 for v in values):
        raise InvalidArgumentError("`ratio` values must be non-negative")
    if abs(sum(values) - 1.0) > 1e-10:
        raise InvalidArgumentError("`ratio` must sum to 1")
    return values  # type: ignore[return-value]


def _validate_n(n: Any) -> int | None:
    if n is None:
        return None
    if isinstance(n, bool) or not isinstance(n, (int, float, np.integer)) or n < 1:
        raise InvalidArgumentError("`n` must be a positive integer")
    return int(n)


def _target_counts(n: int | None, available: tuple[int, int], ratio: tuple[float, float]) -> tuple[int, int]:
    if n is None:
        if ratio[0] > 0 and ratio[1] > 0:
            n = int(math.floor(min(available[0] / ratio[0], available[1] / ratio[1])))
        elif ratio[0] == 0:
            n = available[1]
        else:
            n = available[0]
    first = int(round(n * ratio[0]))
    return first, n - first


def _sample_group(
    frame: pd.DataFrame,
    labels: np.ndarray,
    strata: tuple[str, str],
    *,
    n: int | None,
    ratio: tuple[float, float],
    replace_rows: bool,
    rng: np.random.Generator,
) -> tuple[list[int], dict[str, int]]:
    pools = [np.flatnonzero(labels == s) for s in strata]
    available = (len(pools[0]), len(pools[1]))
    targets = _target_counts(n, available, ratio)

    picked: list[int] = []
    sampled: list[int] = []
    for pool, target in zip(pools, targets):
        size = target if replace_rows else min(target, len(pool))
        if size <= 0 or len(pool) == 0:
            sampled.append(0)
            continue
        chosen = rng.choice(pool, size=size, replace=replace_rows)
        picked.extend(frame.index[chosen].tolist())
        sampled.append(int(size))

    info = {
        f"n_{strata[0]}_available": available[0],
        f"n_{strata[1]}_available": available[1],
        f"n_{strata[0]}_sampled": sampled[0],
        f"n_{strata[1]}_sampled": sampled[1],
    }
    return picked, info


def sample(
    result: Result,
    n: int | None = None,
    ratio: Mapping[str, float] | None = None,
    *,
    replace: bool = False,
    by: str | None = None,
    seed: int | np.random.Generator | None = None,
) -> Result:
    """
    Stratified sample of `result`'s rows; returns a result of the same kind
    with `sample_info` set.

    `by` is `"overall"` (default) or `"support"` for AoE results, and
    `"side"` (default) or `"class"` for border results. With
    `by="support"`, `n` applies to each support separately.
    """
    if not isinstance(replace, bool):
        raise InvalidArgumentError("`replace` must be True or False")
    n = _validate_n(n)
    rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
    table = result.table

    group_col: str | None = None
    if isinstance(result, BorderResult):
        by = by or "side"
        if by not in ("side", "class"):
            raise InvalidArgumentError(f"`by` must be 'side' or 'class' for border results (got {by!r})")
        strata = result.side_names if by == "side" else _CLASSES
        label_col = "side" if by == "side" else "aoe_class"
    else:
        by = by or "overall"
        if by not in ("overall", "support"):
            raise InvalidArgumentError(f"`by` must be 'overall' or 'support' (got {by!r})")
        strata = _CLASSES
        label_col = "aoe_class"
        group_col = "support_id" if by == "support" else None
    weights = _validate_ratio(ratio, strata)

    groups: list[tuple[Any, pd.DataFrame]]
    if group_col is None:
        groups = [(None, table)]
    else:
        groups = [(key, frame) for key, frame in table.groupby(group_col, sort=False)]

    picked: list[int] = []
    infos: list[dict[str, Any]] = []
    for key, frame in groups:
        rows, info = _sample_group(
            frame,
            frame[label_col].to_numpy(dtype=object),
            strata,
            n=n,
            ratio=weights,
            replace_rows=replace,
            rng=rng,
        )
        picked.extend(rows)
        infos.append({group_col: key, **info} if group_col else info)

    if not infos:
        infos = [{f"n_{s}_{what}": 0 for what in ("available", "sampled") for s in strata}]
    sample_info = pd.DataFrame(infos)

    # Row labels of the table are 0..n-1, so labels double as positions.
    sampled = subset(result, np.asarray(picked, dtype=int))
    return dataclasses.replace(sampled, sample_info=sample_info)
