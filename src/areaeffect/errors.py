from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Iterable, Literal


class InvalidArgumentError(ValueError):
    """Raised before any geometry work when a call's arguments cannot be honoured."""


class CountryNotFoundError(LookupError):
    pass


class AreaEffectWarning(UserWarning):
    pass


class ConvergenceWarning(AreaEffectWarning):
    """A bisection or secant search stopped at its iteration cap; the best estimate was used."""


class TargetNotReachedWarning(AreaEffectWarning):
    """Adaptive expansion hit a cap before capturing `min_points`."""


class FragmentDroppedWarning(AreaEffectWarning):
    pass


DiagnosticKind = Literal["convergence", "target_not_reached", "fragment_dropped"]

_CATEGORIES: dict[str, type[AreaEffectWarning]] = {
    "convergence": ConvergenceWarning,
    "target_not_reached": TargetNotReachedWarning,
    "fragment_dropped": FragmentDroppedWarning,
}


@dataclass(frozen=True)
class Diagnostic:
    kind: DiagnosticKind
    message: str
    support_id: str | None = None


def emit_diagnostics(diagnostics: Iterable[Diagnostic], *, stacklevel: int = 3) -> None:
    # Each distinct message is raised once per call, after all supports finished.
    seen: set[tuple[str, str]] = set()
    for d in diagnostics:
        key = (d.kind, d.message)
        if key in seen:
            continue
        seen.add(key)
        warnings.warn(d.message, _CATEGORIES[d.kind], stacklevel=stacklevel)
