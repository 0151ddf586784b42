"""Configuration system for episim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → programmatic overrides

Every numeric parameter is range-checked by validate_config(); bad values
raise ConfigurationError and are never clamped. Runtime setters on World
reuse the same checks from episim.probability.
"""

from __future__ import annotations

import dataclasses
import math
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from episim.errors import ConfigurationError
from episim.probability import (
    check_count,
    check_interval,
    check_non_negative,
    check_positive,
    check_probability,
    normalize_proportions,
)
from episim.types import AGENT_DIAMETER

MIN_POPULATION = 1
MAX_POPULATION = 1000


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Timing and control."""
    seed: int = 42
    time_scale: float = 1.0          # simulated seconds per wall-clock second
    tick_seconds: float = 1.0 / 60.0  # wall seconds per tick for headless runs
    max_ticks: int = 200_000         # headless run cut-off


@dataclass
class PopulationSection:
    """Initial population and behavior mix.

    Behavior proportions are relative weights: they are normalized
    internally and need not sum to 1.
    """
    total: int = 200
    infected: int = 3
    passive: float = 1.0
    stationary: float = 0.0
    avoidant_tracing: float = 0.0

    @property
    def behavior_weights(self) -> Tuple[float, float, float]:
        # Ordered by BehaviorType value
        return (self.passive, self.stationary, self.avoidant_tracing)


@dataclass
class WorldSection:
    """Areas and the testing / quarantine policy."""
    city_width: float = 500.0
    city_height: float = 500.0
    quarantine_width: float = 500.0
    quarantine_height: float = 500.0
    quarantine_capacity: int = 50     # policy limit on quarantined agents
    detection_rate: float = 0.5       # P(infected agent detected per test)
    testing_frequency: float = 10.0   # simulated seconds between test passes


@dataclass
class PathogenSection:
    """Strain parameters. Two strains with equal parameters are identical."""
    lifespan: float = 15.0            # seconds a pathogen lives in a host
    transmission_risk: float = 0.5    # P(transmission) per effective contact
    fatality_rate: float = 0.1        # P(host dies) when the pathogen expires
    immunity_rate: float = 0.9        # P(host learns the strain) on recovery
    immunity_duration: float = 60.0   # seconds immunity lasts once learned


@dataclass
class MovementSection:
    """Agent kinematics and contact geometry."""
    speed: float = 60.0               # units per simulated second
    cell_size: float = 25.0           # spatial index cell side
    avoidance_multiple: float = 3.0   # avoidance radius in agent radii


@dataclass
class OutputSection:
    """Optional instrumentation."""
    record_snapshots: bool = False
    snapshot_interval: int = 10       # ticks between recorded snapshots
    profile: bool = False


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    population: PopulationSection = field(default_factory=PopulationSection)
    world: WorldSection = field(default_factory=WorldSection)
    pathogen: PathogenSection = field(default_factory=PathogenSection)
    movement: MovementSection = field(default_factory=MovementSection)
    output: OutputSection = field(default_factory=OutputSection)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'population': PopulationSection,
    'world': WorldSection,
    'pathogen': PathogenSection,
    'movement': MovementSection,
    'output': OutputSection,
}


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


def _yaml_to_config(data: Dict) -> SimulationConfig:
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


def config_to_dict(config: SimulationConfig) -> Dict[str, Dict[str, Any]]:
    """Plain nested dict of a config, suitable for yaml.safe_dump."""
    return dataclasses.asdict(config)


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def area_capacity(width: float, height: float) -> int:
    """Agents that fit in a width × height area without overlapping."""
    return int(math.floor(width * height / (AGENT_DIAMETER * AGENT_DIAMETER)))


def check_area_side(name: str, length: float) -> float:
    if not length >= AGENT_DIAMETER:
        raise ConfigurationError(
            f"{name} ({length}) will not allow the area to hold any agents; "
            f"must be >= {AGENT_DIAMETER}"
        )
    return length


def validate_pathogen(p: PathogenSection) -> None:
    check_non_negative("pathogen.lifespan", p.lifespan)
    check_probability("pathogen.transmission_risk", p.transmission_risk)
    check_probability("pathogen.fatality_rate", p.fatality_rate)
    check_probability("pathogen.immunity_rate", p.immunity_rate)
    check_non_negative("pathogen.immunity_duration", p.immunity_duration)


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ConfigurationError on failure.

    Checks:
      - Area sides hold at least one agent
      - Population within [1, MAX_POPULATION] and within city capacity
      - Infected total within [1, population total]
      - Probabilities in [0, 1], durations and rates non-negative
      - Behavior proportions non-negative and not all zero
    """
    sim = config.simulation
    if sim.seed < 0:
        raise ConfigurationError("simulation.seed must be non-negative")
    check_positive("simulation.time_scale", sim.time_scale)
    check_positive("simulation.tick_seconds", sim.tick_seconds)
    if sim.max_ticks < 1:
        raise ConfigurationError("simulation.max_ticks must be >= 1")

    w = config.world
    check_area_side("world.city_width", w.city_width)
    check_area_side("world.city_height", w.city_height)
    check_area_side("world.quarantine_width", w.quarantine_width)
    check_area_side("world.quarantine_height", w.quarantine_height)
    check_count("world.quarantine_capacity", w.quarantine_capacity)
    check_probability("world.detection_rate", w.detection_rate)
    check_non_negative("world.testing_frequency", w.testing_frequency)

    pop = config.population
    city_cap = area_capacity(w.city_width, w.city_height)
    check_interval("population.total", MIN_POPULATION,
                   min(MAX_POPULATION, city_cap), pop.total)
    check_interval("population.infected", 1, pop.total, pop.infected)
    normalize_proportions("population behavior proportions",
                          pop.behavior_weights)

    validate_pathogen(config.pathogen)

    mv = config.movement
    check_non_negative("movement.speed", mv.speed)
    if not mv.cell_size >= AGENT_DIAMETER:
        raise ConfigurationError(
            f"movement.cell_size ({mv.cell_size}) must be >= agent diameter "
            f"({AGENT_DIAMETER})"
        )
    check_non_negative("movement.avoidance_multiple", mv.avoidance_multiple)

    if config.output.snapshot_interval < 1:
        raise ConfigurationError("output.snapshot_interval must be >= 1")

    q_cap = area_capacity(w.quarantine_width, w.quarantine_height)
    if w.quarantine_capacity > q_cap:
        warnings.warn(
            f"world.quarantine_capacity ({w.quarantine_capacity}) exceeds the "
            f"quarantine area's geometric capacity ({q_cap}); the area "
            f"capacity will limit quarantine instead.",
            UserWarning,
            stacklevel=2,
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ConfigurationError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
