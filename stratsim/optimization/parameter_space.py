"""
Parameter Space Definitions for Strategy Optimization.

This module defines the search space walked by the grid search:
- ParameterConfig: Configuration for an individual parameter
- ParameterSpace: Ordered collection of parameters and their grid
- DefaultParameterSpaces: Predefined ranges for the reference strategies

Parameter Types:
- Float: Stepped continuous values (e.g., stop_loss_fraction)
- Integer: Discrete values (e.g., max_open_positions)
- Categorical: Explicit candidate lists (e.g., position_sizing)

Usage:
    from stratsim.optimization.parameter_space import ParameterSpace

    # From a walk-forward config section
    space = ParameterSpace.from_ranges({
        "stop_loss_fraction": [0.03, 0.05],
        "take_profit_fraction": [0.08, 0.10, 0.15],
    })
    print(space.count_grid_combinations())  # 6
"""

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np


class ParameterType(Enum):
    """Types of parameters for optimization."""
    FLOAT = "float"
    INT = "int"
    CATEGORICAL = "categorical"


@dataclass
class ParameterConfig:
    """
    Configuration for a single parameter in optimization.

    Attributes:
        name: Parameter name (key in trial params)
        min_value: Minimum value (for float/int types)
        max_value: Maximum value (for float/int types)
        step: Grid step (for float/int types); 10 points when omitted
        param_type: Type of parameter (float, int, categorical)
        choices: Candidate values (for categorical type)
        default: Default value
        description: Human-readable description
    """
    name: str
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    step: Optional[float] = None
    param_type: str = "float"
    choices: Optional[List[Any]] = None
    default: Optional[Any] = None
    description: str = ""

    def __post_init__(self):
        ptype = ParameterType(self.param_type)

        if ptype in (ParameterType.FLOAT, ParameterType.INT):
            if self.min_value is None or self.max_value is None:
                raise ValueError(
                    f"Parameter '{self.name}': min_value and max_value required "
                    f"for {self.param_type} type"
                )
            if self.min_value > self.max_value:
                raise ValueError(
                    f"Parameter '{self.name}': min_value ({self.min_value}) must be "
                    f"<= max_value ({self.max_value})"
                )
            if self.step is not None and self.step <= 0:
                raise ValueError(f"Parameter '{self.name}': step must be positive")

        elif not self.choices:
            raise ValueError(
                f"Parameter '{self.name}': choices required for categorical type"
            )

    @property
    def ptype(self) -> ParameterType:
        return ParameterType(self.param_type)

    def get_grid_values(self) -> List[Any]:
        """
        Get all values for grid search, in ascending (or declared) order.

        Returns:
            List of values to try
        """
        if self.ptype == ParameterType.CATEGORICAL:
            return list(self.choices)

        if self.step is None:
            values = np.linspace(self.min_value, self.max_value, 10)
            if self.ptype == ParameterType.INT:
                return sorted(set(int(round(v)) for v in values))
            return [float(v) for v in values]

        if self.ptype == ParameterType.INT:
            step = max(1, int(self.step))
            return list(range(int(self.min_value), int(self.max_value) + 1, step))

        n_steps = int((self.max_value - self.min_value) / self.step + 1e-9) + 1
        values = [round(self.min_value + i * self.step, 10) for i in range(n_steps)]
        if values[-1] < self.max_value:
            values.append(self.max_value)
        return values

    def contains(self, value: Any) -> bool:
        if self.ptype == ParameterType.CATEGORICAL:
            return value in self.choices
        try:
            return self.min_value <= value <= self.max_value
        except TypeError:
            return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "step": self.step,
            "param_type": self.param_type,
            "choices": self.choices,
            "default": self.default,
            "description": self.description,
        }


@dataclass
class ParameterSpace:
    """
    Collection of parameters defining the optimization space.

    Grid combinations are generated in a fixed order: the cartesian product
    of the parameters in declaration order, each parameter's values in grid
    order. Trial ids follow this order.

    Attributes:
        parameters: List of parameter configurations
        name: Name of this parameter space
        description: Description of the space
    """
    parameters: List[ParameterConfig] = field(default_factory=list)
    name: str = "unnamed"
    description: str = ""

    def __post_init__(self):
        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            duplicates = {n for n in names if names.count(n) > 1}
            raise ValueError(f"Duplicate parameter names: {duplicates}")

    @classmethod
    def from_ranges(
        cls,
        ranges: Dict[str, Sequence[Any]],
        name: str = "parameter_ranges",
    ) -> "ParameterSpace":
        """
        Build a space of categorical parameters from explicit candidate lists.

        Args:
            ranges: Parameter name -> candidate values
            name: Name of the resulting space

        Raises:
            ValueError: If a parameter has no candidates
        """
        parameters = [
            ParameterConfig(
                name=param_name,
                param_type=ParameterType.CATEGORICAL.value,
                choices=list(values),
                default=values[0] if len(values) else None,
            )
            for param_name, values in ranges.items()
        ]
        return cls(parameters=parameters, name=name)

    def add_parameter(self, param: ParameterConfig) -> "ParameterSpace":
        """Add a parameter to the space. Returns self for chaining."""
        if any(p.name == param.name for p in self.parameters):
            raise ValueError(f"Parameter '{param.name}' already exists in space")
        self.parameters.append(param)
        return self

    def get_parameter(self, name: str) -> Optional[ParameterConfig]:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    @property
    def parameter_names(self) -> List[str]:
        return [p.name for p in self.parameters]

    def get_grid_combinations(self) -> Iterator[Dict[str, Any]]:
        """
        Generate all parameter combinations for grid search.

        An empty space yields a single empty combination, so a strategy
        without tunables is still evaluated once.

        Yields:
            Dict of parameter name -> value for each combination
        """
        if not self.parameters:
            yield {}
            return

        names = self.parameter_names
        value_lists = [p.get_grid_values() for p in self.parameters]

        for values in itertools.product(*value_lists):
            yield dict(zip(names, values))

    def count_grid_combinations(self) -> int:
        """Number of combinations get_grid_combinations() yields."""
        count = 1
        for param in self.parameters:
            count *= len(param.get_grid_values())
        return count

    def get_defaults(self) -> Dict[str, Any]:
        """
        Get default values for all parameters.

        Falls back to the first choice for categoricals and the midpoint
        for numeric parameters.
        """
        defaults = {}
        for param in self.parameters:
            if param.default is not None:
                defaults[param.name] = param.default
            elif param.ptype == ParameterType.CATEGORICAL:
                defaults[param.name] = param.choices[0]
            elif param.ptype == ParameterType.INT:
                defaults[param.name] = int((param.min_value + param.max_value) / 2)
            else:
                defaults[param.name] = (param.min_value + param.max_value) / 2
        return defaults

    def validate_params(self, params: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """
        Validate a parameter dictionary against this space.

        Args:
            params: Parameters to validate

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors = []

        for param in self.parameters:
            if param.name not in params:
                errors.append(f"Missing parameter: {param.name}")
                continue

            value = params[param.name]
            if not param.contains(value):
                if param.ptype == ParameterType.CATEGORICAL:
                    errors.append(f"{param.name}: {value} not in choices {param.choices}")
                else:
                    errors.append(
                        f"{param.name}: {value} outside range "
                        f"[{param.min_value}, {param.max_value}]"
                    )

        return len(errors) == 0, errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": [p.to_dict() for p in self.parameters],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParameterSpace":
        params = [ParameterConfig(**p) for p in data.get("parameters", [])]
        return cls(
            parameters=params,
            name=data.get("name", "unnamed"),
            description=data.get("description", ""),
        )


class DefaultParameterSpaces:
    """
    Factory for predefined parameter spaces.

    Each space tunes the execution frictions of BacktestConfig plus the
    knobs of one reference predictor.
    """

    @staticmethod
    def exits() -> ParameterSpace:
        """Stop-loss / take-profit offsets around the documented defaults."""
        return ParameterSpace(
            name="exits",
            description="Stop-loss and take-profit fractions",
            parameters=[
                ParameterConfig(
                    name="stop_loss_fraction",
                    min_value=0.02,
                    max_value=0.08,
                    step=0.02,
                    default=0.05,
                    description="Stop distance from entry",
                ),
                ParameterConfig(
                    name="take_profit_fraction",
                    min_value=0.05,
                    max_value=0.15,
                    step=0.05,
                    default=0.10,
                    description="Target distance from entry",
                ),
            ],
        )

    @staticmethod
    def trend_following() -> ParameterSpace:
        """Exit offsets plus the trend-following predictor's sensitivity."""
        space = DefaultParameterSpaces.exits()
        space.name = "trend_following"
        space.add_parameter(ParameterConfig(
            name="sensitivity",
            param_type="categorical",
            choices=[25.0, 50.0, 100.0],
            default=50.0,
            description="Scale from SMA spread to regression output",
        ))
        return space

    @staticmethod
    def mean_reversion() -> ParameterSpace:
        """Exit offsets plus the RSI bands of the mean-reversion predictor."""
        space = DefaultParameterSpaces.exits()
        space.name = "mean_reversion"
        space.add_parameter(ParameterConfig(
            name="oversold",
            min_value=20,
            max_value=35,
            step=5,
            param_type="int",
            default=30,
        ))
        space.add_parameter(ParameterConfig(
            name="overbought",
            min_value=65,
            max_value=80,
            step=5,
            param_type="int",
            default=70,
        ))
        return space

    @staticmethod
    def get(name: str) -> ParameterSpace:
        """
        Look up a predefined space by name.

        Raises:
            ValueError: If the name is unknown
        """
        spaces = {
            "exits": DefaultParameterSpaces.exits,
            "trend_following": DefaultParameterSpaces.trend_following,
            "mean_reversion": DefaultParameterSpaces.mean_reversion,
        }
        if name not in spaces:
            raise ValueError(f"Unknown parameter space '{name}'. Known: {sorted(spaces)}")
        return spaces[name]()
