from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

FragmentPolicy = Literal["keep", "largest"]


@dataclass(frozen=True)
class BufferSolverConfig:
    rel_tol: float = 1e-4
    max_iter: int = 50


@dataclass(frozen=True)
class SecantConfig:
    rel_tol: float = 1e-4
    max_iter: int = 10


@dataclass(frozen=True)
class AdaptiveConfig:
    width: float = 1e-3
    max_iter: int = 30


@dataclass(frozen=True)
class BorderSearchConfig:
    rel_tol: float = 1e-2
    max_iter: int = 50


@dataclass(frozen=True)
class SolverConfig:
    buffer: BufferSolverConfig = field(default_factory=BufferSolverConfig)
    secant: SecantConfig = field(default_factory=SecantConfig)
    adaptive: AdaptiveConfig = field(default_factory=AdaptiveConfig)
    border: BorderSearchConfig = field(default_factory=BorderSearchConfig)
    fragment_policy: FragmentPolicy = "keep"
    fragment_dominance: float = 0.9
    workers: int = 1


DEFAULT_CONFIG = SolverConfig()
