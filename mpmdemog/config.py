"""Configuration system for mpmdemog analyses.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → override.yaml → programmatic overrides

Each section maps 1:1 to a YAML top-level key; unknown keys are ignored
and unspecified fields keep their defaults. The config only supplies the
keyword defaults used by mpmdemog.summary; every numerical function also
takes its options directly.

Example YAML:

    life_table:
      xmax: 500
      lx_crit: 0.001
    perturbation:
      type: elasticity
    traits:
      start: 1
      weights: stable
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from mpmdemog.types import GenTimeMethod, PerturbType, R0Method


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class LifeTableSection:
    """Cohort trajectory limits."""
    xmax: int = 1000          # Hard age cap (projection intervals)
    lx_crit: float = 0.01     # Survivorship below which ages are dropped


@dataclass
class ConvergenceSection:
    """Quasi-stationary distribution convergence."""
    qsd_conv: float = 1e-3    # Total-variation distance threshold
    qsd_max_iter: int = 1000  # Iteration cap


@dataclass
class PerturbationSection:
    """Perturbation analysis."""
    type: str = "sensitivity"  # 'sensitivity' or 'elasticity'


@dataclass
class TraitsSection:
    """Trait summary options."""
    start: int = 0                    # Start stage (0-based)
    r0_method: str = "generation"     # 'generation' or 'start'
    gen_time_method: str = "R0"       # 'R0', 'age_diff' or 'cohort'
    weights: str = "stable"           # vital-rate weights: 'stable' or 'uniform'
    dorm_stages: List[int] = field(default_factory=list)
    exclude_stages: List[int] = field(default_factory=list)
    skip_failures: bool = False       # Record per-model errors instead of raising


@dataclass
class AnalysisConfig:
    """Complete analysis configuration.

    Load from YAML via `load_config()`.
    """
    life_table: LifeTableSection = field(default_factory=LifeTableSection)
    convergence: ConvergenceSection = field(default_factory=ConvergenceSection)
    perturbation: PerturbationSection = field(default_factory=PerturbationSection)
    traits: TraitsSection = field(default_factory=TraitsSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


_SECTION_MAP = {
    'life_table': LifeTableSection,
    'convergence': ConvergenceSection,
    'perturbation': PerturbationSection,
    'traits': TraitsSection,
}


def _yaml_to_config(data: Dict) -> AnalysisConfig:
    """Convert a merged YAML dict to an AnalysisConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return AnalysisConfig(**sections)


def validate_config(config: AnalysisConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure."""
    lt = config.life_table
    if lt.xmax < 1:
        raise ValueError(f"life_table.xmax must be >= 1, got {lt.xmax}")
    if not 0 < lt.lx_crit < 1:
        raise ValueError(
            f"life_table.lx_crit must lie in (0, 1), got {lt.lx_crit}"
        )

    cv = config.convergence
    if cv.qsd_conv <= 0:
        raise ValueError(f"convergence.qsd_conv must be positive, got {cv.qsd_conv}")
    if cv.qsd_max_iter < 1:
        raise ValueError(
            f"convergence.qsd_max_iter must be >= 1, got {cv.qsd_max_iter}"
        )

    valid_types = {t.value for t in PerturbType}
    if config.perturbation.type not in valid_types:
        raise ValueError(
            f"perturbation.type must be one of {valid_types}, "
            f"got '{config.perturbation.type}'"
        )

    tr = config.traits
    if tr.start < 0:
        raise ValueError(f"traits.start must be >= 0, got {tr.start}")
    valid_r0 = {m.value for m in R0Method}
    if tr.r0_method not in valid_r0:
        raise ValueError(
            f"traits.r0_method must be one of {valid_r0}, got '{tr.r0_method}'"
        )
    valid_gt = {m.value for m in GenTimeMethod}
    if tr.gen_time_method not in valid_gt:
        raise ValueError(
            f"traits.gen_time_method must be one of {valid_gt}, "
            f"got '{tr.gen_time_method}'"
        )
    valid_weights = {"stable", "uniform"}
    if tr.weights not in valid_weights:
        raise ValueError(
            f"traits.weights must be one of {valid_weights}, got '{tr.weights}'"
        )
    if any(i < 0 for i in tr.dorm_stages + tr.exclude_stages):
        raise ValueError("traits.dorm_stages / exclude_stages must be >= 0")


def load_config(
    base_path: Union[str, Path],
    override_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> AnalysisConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → override file → overrides dict.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if override_path is not None:
        override_path = Path(override_path)
        if override_path.exists():
            with open(override_path) as f:
                deep_merge(config_dict, yaml.safe_load(f) or {})

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def config_to_dict(config: AnalysisConfig) -> Dict:
    """Plain-dict form of a config, suitable for yaml.safe_dump."""
    return dataclasses.asdict(config)


def default_config() -> AnalysisConfig:
    """Return an AnalysisConfig with all default values."""
    config = AnalysisConfig()
    validate_config(config)
    return config
