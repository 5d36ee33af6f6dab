"""Unit conversion for DoseCalc formulas.

A small fixed table of clinical units grouped by category. Every unit
carries a factor relative to the smallest unit of its category so that
common conversions (kg -> g, L -> mL) come out exact.
"""

from dataclasses import dataclass
from enum import Enum

from dosecalc.core.exceptions import IncompatibleUnitsError
from dosecalc.core.logging import get_logger

logger = get_logger(__name__)


class UnitCategory(str, Enum):
    """Groups of mutually convertible units."""

    WEIGHT = "weight"
    VOLUME = "volume"
    MASS_CONCENTRATION = "mass_concentration"
    MOLAR_CONCENTRATION = "molar_concentration"
    LENGTH = "length"


@dataclass(frozen=True)
class UnitDefinition:
    category: UnitCategory
    factor: float  # multiples of the category's smallest unit


UNITS: dict[str, UnitDefinition] = {
    # Weight (mg)
    "kg": UnitDefinition(UnitCategory.WEIGHT, 1_000_000),
    "g": UnitDefinition(UnitCategory.WEIGHT, 1_000),
    "mg": UnitDefinition(UnitCategory.WEIGHT, 1),
    "lb": UnitDefinition(UnitCategory.WEIGHT, 453_592),
    # Volume (mL)
    "L": UnitDefinition(UnitCategory.VOLUME, 1_000),
    "dL": UnitDefinition(UnitCategory.VOLUME, 100),
    "mL": UnitDefinition(UnitCategory.VOLUME, 1),
    # Mass concentration (mg/dL)
    "g/L": UnitDefinition(UnitCategory.MASS_CONCENTRATION, 100),
    "mg/dL": UnitDefinition(UnitCategory.MASS_CONCENTRATION, 1),
    # Molar concentration (mmol/L); monovalent ions assumed
    "mmol/L": UnitDefinition(UnitCategory.MOLAR_CONCENTRATION, 1),
    "mEq/L": UnitDefinition(UnitCategory.MOLAR_CONCENTRATION, 1),
    # Length (mm)
    "m": UnitDefinition(UnitCategory.LENGTH, 1_000),
    "cm": UnitDefinition(UnitCategory.LENGTH, 10),
    "mm": UnitDefinition(UnitCategory.LENGTH, 1),
}

# Lower-case spellings seen in hand-written documents
UNIT_ALIASES = {
    "l": "L",
    "ml": "mL",
    "dl": "dL",
    "lbs": "lb",
}


class UnitConverter:
    """Convert values between units of the same category."""

    def __init__(self, units: dict[str, UnitDefinition] | None = None):
        self._units = units or UNITS

    def lookup(self, unit: str) -> UnitDefinition | None:
        """Find a unit definition by symbol or alias."""
        definition = self._units.get(unit)
        if definition is None:
            alias = UNIT_ALIASES.get(unit)
            if alias is not None:
                definition = self._units.get(alias)
        return definition

    def get_unit_type(self, unit: str) -> UnitCategory | None:
        """Get the category of a unit, or None if unknown."""
        definition = self.lookup(unit)
        return definition.category if definition else None

    def are_units_compatible(self, unit1: str, unit2: str) -> bool:
        """Check if two known units share a category."""
        type1 = self.get_unit_type(unit1)
        return type1 is not None and type1 == self.get_unit_type(unit2)

    def convert(self, value: float, from_unit: str, to_unit: str) -> float:
        """
        Convert a value from one unit to another.

        Unknown units leave the value unchanged.

        Args:
            value: Numeric value
            from_unit: Source unit symbol
            to_unit: Target unit symbol

        Returns:
            Converted value

        Raises:
            IncompatibleUnitsError: If the units belong to different categories
        """
        if from_unit == to_unit:
            return value

        from_def = self.lookup(from_unit)
        to_def = self.lookup(to_unit)
        if from_def is None or to_def is None:
            logger.warning(f"Unit conversion not found: {from_unit} to {to_unit}")
            return value

        if from_def.category != to_def.category:
            raise IncompatibleUnitsError(from_unit, to_unit)

        return value * from_def.factor / to_def.factor


_converter = UnitConverter()


def convert_unit(value: float, from_unit: str, to_unit: str) -> float:
    """Convert a value using the standard unit table."""
    return _converter.convert(value, from_unit, to_unit)
