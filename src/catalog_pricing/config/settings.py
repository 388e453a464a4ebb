"""
Centralized settings and path configuration for catalog pricing.

Every field can be overridden with a CATALOG_PRICING_<FIELD> environment
variable, e.g. CATALOG_PRICING_DATA_DIR or CATALOG_PRICING_ROWS_PER_PAUSE.
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ENV_PREFIX = "CATALOG_PRICING_"


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


class Settings(BaseSettings):
    """Application settings with sensible defaults."""

    # Project paths; data_dir defaults to <root>/data, the workbook to <data_dir>/pricing.xlsx
    project_root: Path = Field(default_factory=get_project_root)
    data_dir: Optional[Path] = None
    workbook_path: Optional[Path] = None

    # "csv" = one file per table in data_dir, "xlsx" = one sheet per table in workbook_path
    store_backend: str = "csv"

    # Table names in the external store
    products_table: str = "FinalPriceList"
    params_table: str = "Pricing_Params"
    partner_tiers_table: str = "Partner_Tiers"
    channels_table: str = "Channels"
    amazon_tiers_table: str = "Amazon_Size_Tiers"
    dhl_matrix_table: str = "Shipping_Matrix_DHL"
    dhl_surcharges_table: str = "DHL_Surcharges"

    # Guardrails and solver
    guardrail_min_margin_pct: float = 45.0
    solver_epsilon: float = 0.01
    solver_max_iterations: int = 5

    # Batch repricing
    rows_per_pause: int = 10
    pause_seconds: float = 0.1
    job_retention_seconds: float = 60 * 60.0
    sweep_interval_seconds: float = 15 * 60.0

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def _derive_paths(self) -> 'Settings':
        if self.data_dir is None:
            self.data_dir = self.project_root / 'data'
        if self.workbook_path is None:
            self.workbook_path = self.data_dir / 'pricing.xlsx'
        return self


@lru_cache()
def get_settings() -> Settings:
    """Return cached application settings (singleton)."""
    return Settings()
