"""Material property maps and piecewise-constant coefficients."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from types import MappingProxyType

import numpy as np

from joule.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ELECTRICAL_CONDUCTIVITY = "electrical_conductivity"
INVERSE_THERMAL_CONDUCTIVITY = "inverse_thermal_conductivity"
HEAT_CAPACITY = "heat_capacity"
INVERSE_HEAT_CAPACITY = "inverse_heat_capacity"

REQUIRED_PROPERTIES = (
    ELECTRICAL_CONDUCTIVITY,
    INVERSE_THERMAL_CONDUCTIVITY,
    HEAT_CAPACITY,
    INVERSE_HEAT_CAPACITY,
)


class PWConstCoefficient:
    """Scalar coefficient that is constant on each mesh attribute."""

    def __init__(self, name: str, values: Mapping[int, float]) -> None:
        self.name = name
        self._values = MappingProxyType({int(k): float(v) for k, v in values.items()})

    @property
    def values(self) -> Mapping[int, float]:
        return self._values

    def __call__(self, attributes: np.ndarray) -> np.ndarray:
        """Evaluate on a list of element attributes.

        Raises:
            ConfigurationError: If an attribute has no value.
        """
        attributes = np.asarray(attributes, dtype=np.int64)
        out = np.empty(attributes.shape, dtype=np.float64)
        for attr in np.unique(attributes):
            if int(attr) not in self._values:
                raise ConfigurationError(f"'{self.name}' has no value for attribute {int(attr)}")
            out[attributes == attr] = self._values[int(attr)]
        return out


def _inverted(name: str, values: Mapping[int, float]) -> dict[int, float]:
    """Reciprocal of every value; zero has no reciprocal."""
    for attr, value in values.items():
        if value == 0.0:
            raise ConfigurationError(f"'{name}' is zero on attribute {attr}, its inverse is undefined")
    return {a: 1.0 / v for a, v in values.items()}


class DomainProperties(Mapping[str, PWConstCoefficient]):
    """Immutable collection of named material property maps.

    Args:
        properties: ``{property name: {attribute: value}}``. When only one of
            a property and its inverse is given, the other is derived.
    """

    def __init__(self, properties: Mapping[str, Mapping[int, float]]) -> None:
        props = {name: dict(values) for name, values in properties.items()}
        for name, values in props.items():
            for attr, value in values.items():
                if value < 0.0:
                    raise ConfigurationError(
                        f"'{name}' must be non-negative, got {value} on attribute {attr}"
                    )

        for direct, inverse in (
            ("thermal_conductivity", INVERSE_THERMAL_CONDUCTIVITY),
            (HEAT_CAPACITY, INVERSE_HEAT_CAPACITY),
        ):
            if direct in props and inverse not in props:
                props[inverse] = _inverted(direct, props[direct])
            elif inverse in props and direct not in props:
                props[direct] = _inverted(inverse, props[inverse])

        for name in REQUIRED_PROPERTIES:
            if name not in props:
                raise ConfigurationError(f"missing material property '{name}'")

        self._coefficients = {name: PWConstCoefficient(name, values) for name, values in props.items()}

    def __getitem__(self, name: str) -> PWConstCoefficient:
        return self._coefficients[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._coefficients)

    def __len__(self) -> int:
        return len(self._coefficients)

    def check_attributes(self, attributes: np.ndarray) -> None:
        """Raise :class:`ConfigurationError` if any attribute lacks a required property."""
        for name in REQUIRED_PROPERTIES:
            self._coefficients[name](attributes)
