"""
CAPM Allocator - Configuration Tests
Unit tests for environment-driven settings.
"""
import pytest
from pydantic import ValidationError

from capm_allocator.config import Settings, settings
from capm_allocator.utils.exceptions import (
    AllocationError,
    ConfigurationError,
    DegenerateInputError,
    InfeasibleError,
    SolverError,
    UnboundedError,
)


# =========================
# Settings Tests
# =========================

class TestSettings:
    """Tests for the Settings model."""

    def test_defaults(self):
        """Test documented default values."""
        s = Settings(_env_file=None)

        assert s.RISK_FREE_RATE == 0.02
        assert s.BETA_DECIMALS == 2
        assert s.RETURN_DECIMALS == 4
        assert s.BUDGET == 10000.0
        assert s.MAX_CANDIDATES == 5
        assert s.MIN_HOLDING == 22
        assert s.SOLVER_MIP_REL_GAP == 0.0

    def test_environment_override(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("BUDGET", "25000")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        s = Settings(_env_file=None)

        assert s.BUDGET == 25000.0
        assert s.LOG_LEVEL == "DEBUG"

    def test_test_environment_loaded(self):
        """Test the global instance picks up the test environment."""
        assert settings.APP_ENV == "testing"
        assert settings.LOG_TO_FILE is False

    def test_allocation_defaults_follow_settings(self):
        """Test sector and holding defaults come from the settings."""
        from capm_allocator.core.optimizer.strategies import AllocationConstraints

        constraints = AllocationConstraints(sector_caps=["core"], minimum_holdings=["A2"])

        assert constraints.sector_caps == {"core": settings.SECTOR_CAP_FRACTION}
        assert constraints.minimum_holdings == {"A2": settings.MIN_HOLDING}

    @pytest.mark.parametrize("field,value", [
        ("BUDGET", 0),
        ("MAX_POSITION_FRACTION", 1.5),
        ("SECTOR_CAP_FRACTION", 0),
        ("MIN_HOLDING", -1),
        ("SOLVER_TIME_LIMIT", -5),
    ])
    def test_invalid_values_rejected(self, field, value):
        """Test field validators."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_candidate_limits_ordered(self):
        """Test MIN_CANDIDATES may not exceed MAX_CANDIDATES."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, MIN_CANDIDATES=6, MAX_CANDIDATES=5)


# =========================
# Exception Tests
# =========================

class TestExceptions:
    """Tests for the error hierarchy."""

    def test_hierarchy(self):
        """Test every failure is an AllocationError."""
        assert issubclass(DegenerateInputError, AllocationError)
        assert issubclass(ConfigurationError, AllocationError)
        assert issubclass(InfeasibleError, AllocationError)
        assert issubclass(SolverError, AllocationError)

    def test_infeasible_to_dict(self):
        """Test serialized payload carries row, entity and conflicts."""
        error = InfeasibleError("no fit", row="budget", entity=None, conflicting_rows=["budget", "cap:A"])

        payload = error.to_dict()

        assert payload["code"] == "INFEASIBLE"
        assert payload["details"]["row"] == "budget"
        assert payload["details"]["conflicting_rows"] == ["budget", "cap:A"]

    def test_configuration_error_fields(self):
        """Test configuration errors name row and entity."""
        error = ConfigurationError("bad", row="sector:tech", entity="tech")

        assert error.row == "sector:tech"
        assert error.entity == "tech"
        assert error.details == {"row": "sector:tech", "entity": "tech"}

    def test_solver_errors_name_the_model(self):
        """Test unbounded and limit failures carry the model label as row."""
        unbounded = UnboundedError("toy is unbounded", row="toy")
        stopped = SolverError("toy: time limit", row="toy", status=1)

        assert unbounded.to_dict()["details"]["row"] == "toy"
        assert stopped.row == "toy"
        assert stopped.details == {"row": "toy", "entity": None, "status": 1}


# =========================
# Logger Tests
# =========================

class TestLogger:
    """Tests for the loguru setup."""

    def test_records_carry_app_and_env(self):
        """Test every record is tagged with the application name and environment."""
        from capm_allocator.utils.logger import logger

        seen = []
        sink_id = logger.add(lambda m: seen.append(dict(m.record["extra"])), level="INFO")
        try:
            logger.info("hello")
        finally:
            logger.remove(sink_id)

        assert seen[0]["app"] == settings.APP_NAME
        assert seen[0]["env"] == "testing"
