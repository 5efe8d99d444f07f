"""
Error handling shared by services, seeders and the API
"""

from .error_handling import (
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
