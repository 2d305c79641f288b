"""
Settings bootstrap for areaeffect.

The library functions accept a `SolverConfig` directly; this module is the
bridge from human-editable YAML (`config/default.yaml` plus an optional
`config/scenarios/<name>.yaml`) to that dataclass, and it is where the CLI
configures logging.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

# PyYAML provides YAML parsing for config files (human-editable settings).
import yaml

from areaeffect.errors import InvalidArgumentError
from areaeffect.expansion.config import (
    AdaptiveConfig,
    BorderSearchConfig,
    BufferSolverConfig,
    SecantConfig,
    SolverConfig,
)
from areaeffect.log import configure_logging


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    # Copy the base mapping so caller-owned dictionaries are never mutated.
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        # Nested mappings merge recursively so a scenario can override a single leaf.
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path) -> dict[str, Any]:
    # Missing scenario files are treated as "no overrides".
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    # Config files must be YAML mappings (key/value), not lists or scalars.
    if not isinstance(data, dict):
        raise ValueError(f"YAML must be a mapping: {path}")
    return data


def _resolve_project_root(config_path: Path) -> Path:
    config_dir = config_path.resolve().parent
    # config/default.yaml lives one level below the project root.
    if config_dir.name == "config":
        return config_dir.parent
    return config_dir


def _resolve_optional_path(root: Path, raw: Any) -> str | None:
    if raw in (None, ""):
        return None
    p = Path(str(raw))
    return str(p if p.is_absolute() else root / p)


def load_settings(config_path: Path, scenario: str | None = None) -> dict[str, Any]:
    """
    Load base config and merge a scenario override file if present.
    Also resolves runtime paths and initializes logging.
    """
    config_path = config_path.resolve()
    root = _resolve_project_root(config_path)

    base = _load_yaml(config_path)
    scenario_path = root / "config" / "scenarios" / f"{scenario}.yaml" if scenario else None
    override = _load_yaml(scenario_path) if scenario_path is not None else {}
    settings = _deep_merge(base, override)

    project = settings.setdefault("project", {})
    paths = {
        "root": root,
        "logs_dir": root / project.get("logs_dir", "logs"),
        "output_dir": root / project.get("output_dir", "outputs"),
    }
    paths["output_dir"].mkdir(parents=True, exist_ok=True)

    logger = configure_logging(paths["logs_dir"], level=str(project.get("log_level", "INFO")))

    reference = settings.setdefault("reference", {})
    reference["countries_path"] = _resolve_optional_path(root, reference.get("countries_path"))
    reference["land_path"] = _resolve_optional_path(root, reference.get("land_path"))

    settings["_meta"] = {
        "config_path": str(config_path),
        "scenario": scenario,
        "scenario_path": str(scenario_path) if scenario_path is not None else None,
    }
    # Stored as strings so settings stays JSON-serializable.
    settings["paths"] = {k: str(v) for k, v in paths.items()}
    logger.info("Loaded settings: config=%s scenario=%s", config_path, scenario)
    return settings


def _positive(value: Any, name: str) -> float:
    out = float(value)
    if out <= 0:
        raise InvalidArgumentError(f"`{name}` must be > 0 (got {value!r})")
    return out


def _positive_int(value: Any, name: str) -> int:
    out = int(value)
    if out < 1:
        raise InvalidArgumentError(f"`{name}` must be >= 1 (got {value!r})")
    return out


def build_solver_config(settings: dict[str, Any]) -> SolverConfig:
    solver = settings.get("solver", {})
    buffer = solver.get("buffer", {})
    secant = solver.get("secant", {})
    adaptive = settings.get("search", {}).get("adaptive", {})
    border = settings.get("border", {})
    supports = settings.get("supports", {})

    defaults = SolverConfig()
    policy = str(supports.get("fragment_policy", defaults.fragment_policy))
    if policy not in ("keep", "largest"):
        raise InvalidArgumentError(f"supports.fragment_policy must be 'keep' or 'largest' (got {policy!r})")
    dominance = float(supports.get("fragment_dominance", defaults.fragment_dominance))
    if not 0.0 < dominance <= 1.0:
        raise InvalidArgumentError("supports.fragment_dominance must be in (0, 1]")

    return SolverConfig(
        buffer=BufferSolverConfig(
            rel_tol=_positive(buffer.get("rel_tol", defaults.buffer.rel_tol), "solver.buffer.rel_tol"),
            max_iter=_positive_int(buffer.get("max_iter", defaults.buffer.max_iter), "solver.buffer.max_iter"),
        ),
        secant=SecantConfig(
            rel_tol=_positive(secant.get("rel_tol", defaults.secant.rel_tol), "solver.secant.rel_tol"),
            max_iter=_positive_int(secant.get("max_iter", defaults.secant.max_iter), "solver.secant.max_iter"),
        ),
        adaptive=AdaptiveConfig(
            width=_positive(adaptive.get("width", defaults.adaptive.width), "search.adaptive.width"),
            max_iter=_positive_int(adaptive.get("max_iter", defaults.adaptive.max_iter), "search.adaptive.max_iter"),
        ),
        border=BorderSearchConfig(
            rel_tol=_positive(border.get("rel_tol", defaults.border.rel_tol), "border.rel_tol"),
            max_iter=_positive_int(border.get("max_iter", defaults.border.max_iter), "border.max_iter"),
        ),
        fragment_policy=policy,  # type: ignore[arg-type]
        fragment_dominance=dominance,
        workers=_positive_int(supports.get("workers", defaults.workers), "supports.workers"),
    )
