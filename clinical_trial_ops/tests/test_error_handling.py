"""
Tests for the exception hierarchy and error tracking
"""

import pytest
from datetime import datetime

from clinical_trial_ops.core.error_handling import (
    ClinicalDataError,
    ConfigurationError,
    DataValidationError,
    ErrorTracker,
    RecordNotFoundError,
    SeedingError,
    StudyNotFoundError,
    error_boundary,
    get_error_tracker,
)


# =============================================================================
# Exception Tests
# =============================================================================

class TestCustomExceptions:
    """Tests for custom exception classes"""

    def test_clinical_data_error_creation(self):
        """Test base ClinicalDataError creation"""
        error = ClinicalDataError("Test error", error_code="TEST001")
        assert str(error) == "Test error"
        assert error.error_code == "TEST001"
        assert error.recoverable is True
        assert error.status_code == 500
        assert isinstance(error.timestamp, datetime)

    def test_clinical_data_error_to_dict(self):
        """Test error serialization"""
        error = ClinicalDataError("Test error", details={'key': 'value'})
        error_dict = error.to_dict()

        assert error_dict['error_type'] == 'ClinicalDataError'
        assert error_dict['message'] == 'Test error'
        assert error_dict['details']['key'] == 'value'
        assert 'timestamp' in error_dict

    def test_seeding_error(self):
        error = SeedingError("No generator", domain="XX")
        assert error.error_code == "CDM100"
        assert error.details['domain'] == "XX"

    def test_validation_error(self):
        """Validation errors map to 400"""
        error = DataValidationError("Bad status", field="status", value="bogus")
        assert error.status_code == 400
        assert error.details['field'] == "status"
        assert error.details['invalid_value'] == "bogus"

    def test_not_found_errors(self):
        """Unknown studies are not-found errors"""
        error = StudyNotFoundError(42)
        assert isinstance(error, RecordNotFoundError)
        assert error.status_code == 404
        assert str(error) == "Study 42 not found"
        assert error.details == {'entity': 'study', 'entity_id': '42'}

    def test_configuration_error_not_recoverable(self):
        assert ConfigurationError("bad", config_key="database_url").recoverable is False


# =============================================================================
# Error Tracking Tests
# =============================================================================

class TestErrorTracker:
    """Tests for error tracking"""

    def test_record_error(self):
        """Test error recording"""
        tracker = ErrorTracker()
        error_id = tracker.record_error(ValueError("Test error"), context={'operation': 'test'})

        assert error_id.startswith("err_")
        recent = tracker.get_recent_errors(1)
        assert recent[0]['error_id'] == error_id
        assert recent[0]['context'] == {'operation': 'test'}

    def test_error_summary(self):
        """Repeated errors are counted under one key"""
        tracker = ErrorTracker()
        for _ in range(3):
            tracker.record_error(ValueError("Same error"))
        tracker.record_error(KeyError("other"))

        summary = tracker.get_error_summary()
        assert summary['total_errors'] == 4
        assert summary['unresolved'] == 4
        assert summary['error_counts']['ValueError:Same error'] == 3

    def test_history_is_bounded(self):
        tracker = ErrorTracker(max_history=5)
        for i in range(8):
            tracker.record_error(ValueError(f"error {i}"))

        recent = tracker.get_recent_errors(10)
        assert len(recent) == 5
        assert recent[0]['message'] == "error 7"

    def test_resolve_error(self):
        tracker = ErrorTracker()
        error_id = tracker.record_error(ValueError("x"))

        assert tracker.resolve_error(error_id) is True
        assert tracker.resolve_error("err_missing") is False
        assert tracker.get_error_summary()['unresolved'] == 0

    def test_global_tracker_singleton(self):
        assert get_error_tracker() is get_error_tracker()


class TestErrorBoundary:
    """Tests for the error boundary context manager"""

    def test_reraises_and_records(self):
        tracker = get_error_tracker()
        tracker.clear()

        with pytest.raises(SeedingError):
            with error_boundary('seed_LB_trial_1'):
                raise SeedingError("boom", domain="LB")

        recent = tracker.get_recent_errors(1)
        assert recent[0]['error_type'] == 'SeedingError'
        assert recent[0]['context'] == {'operation': 'seed_LB_trial_1'}

    def test_swallow_when_not_reraising(self):
        tracker = get_error_tracker()
        tracker.clear()

        with error_boundary('refresh', reraise=False):
            raise RuntimeError("ignored")

        assert tracker.get_error_summary()['total_errors'] == 1
