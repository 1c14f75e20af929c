"""
CAPM Allocator - Configuration Settings
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "CAPM Allocator"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # =========================
    # Logging
    # =========================
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_DIR: str = "logs"

    # =========================
    # Risk/Return Estimation
    # =========================
    RISK_FREE_RATE: float = 0.02
    BETA_DECIMALS: int = 2
    RETURN_DECIMALS: int = 4

    # =========================
    # Allocation Constraints
    # =========================
    BUDGET: float = 10000.0
    MAX_POSITION_FRACTION: float = 0.4
    SECTOR_CAP_FRACTION: float = 0.5
    RISK_CAP_BETA: float = 1.0
    MIN_HOLDING: int = 22

    # =========================
    # Candidate Reduction
    # =========================
    MAX_CANDIDATES: int = 5
    MIN_CANDIDATES: int = 0
    CORRELATION_THRESHOLD: float = 0.7

    # =========================
    # Solver (HiGHS via scipy)
    # =========================
    SOLVER_TIME_LIMIT: float = 60.0
    SOLVER_MIP_REL_GAP: float = 0.0
    BUDGET_TOLERANCE: float = 0.005

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("BUDGET", "SOLVER_TIME_LIMIT")
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("MAX_POSITION_FRACTION", "SECTOR_CAP_FRACTION")
    @classmethod
    def fraction_in_range(cls, v):
        if not 0 < v <= 1:
            raise ValueError("fraction must be in (0, 1]")
        return v

    @field_validator(
        "BETA_DECIMALS", "RETURN_DECIMALS", "MIN_HOLDING",
        "MAX_CANDIDATES", "MIN_CANDIDATES", "SOLVER_MIP_REL_GAP", "BUDGET_TOLERANCE"
    )
    @classmethod
    def non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @model_validator(mode="after")
    def check_candidate_limits(self):
        if self.MIN_CANDIDATES > self.MAX_CANDIDATES:
            raise ValueError("MIN_CANDIDATES cannot exceed MAX_CANDIDATES")
        return self


# Create global settings instance
settings = Settings()
