"""
Transformation Configuration Schema.

Precision, toggles and code formats for templates, orders and execution.
Values come from ``transformation_config`` (YAML) at runtime; the field
defaults are what the engine uses when nothing is configured.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Self

from transformation_config import get_active_config
from transformation_config.loader import extract_section, load_yaml_file
from transformation_kernel.db.types import QUANTITY_DECIMAL_PLACES
from transformation_kernel.logging_config import get_logger

logger = get_logger("modules.transformation.config")


@dataclass
class TransformationConfig:
    """
    Configuration schema for the transformation module.

    Override at instantiation:

        config = TransformationConfig(precheck_stock=False, max_cas_retries=5)
    """

    # Precision
    money_decimal_places: int = 2
    cost_per_unit_places: int = 9
    quantity_places: int = 9

    # Execution
    precheck_stock: bool = True
    strict_waste_recording: bool = False
    max_cas_retries: int = 3

    # Generated codes
    stock_transaction_prefix: str = "ST-"
    stock_transaction_code_width: int = 8
    order_code_prefix: str = "TRN-"
    order_code_width: int = 5

    def __post_init__(self):
        if self.max_cas_retries < 1:
            raise ValueError("max_cas_retries must be at least 1")
        for name in ("money_decimal_places", "cost_per_unit_places", "quantity_places"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.quantity_places > QUANTITY_DECIMAL_PLACES:
            raise ValueError(
                f"quantity_places cannot exceed the stored {QUANTITY_DECIMAL_PLACES} places"
            )

        logger.info(
            "transformation_config_initialized",
            extra={
                "money_decimal_places": self.money_decimal_places,
                "cost_per_unit_places": self.cost_per_unit_places,
                "precheck_stock": self.precheck_stock,
                "strict_waste_recording": self.strict_waste_recording,
                "max_cas_retries": self.max_cas_retries,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the built-in defaults."""
        logger.info("transformation_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary; unknown keys are rejected."""
        logger.info(
            "transformation_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown transformation config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_file(cls, path: Path | str) -> Self:
        """Load from a YAML file (top level or a ``transformation:`` section)."""
        return cls.from_dict(extract_section(load_yaml_file(Path(path))))

    @classmethod
    def from_active(cls) -> Self:
        """Load the runtime configuration via ``transformation_config``."""
        return cls.from_dict(get_active_config().settings)
