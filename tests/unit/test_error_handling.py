"""
Unit tests for the error hierarchy and its derived flags.
"""

import pytest
from flask import Flask
from structlog.testing import capture_logs

from qa_rbac.utils.error_handling import (
    ApplicationError,
    AuthenticationError,
    AuthorizationError,
    BusinessLogicError,
    ConflictError,
    ConstraintViolationError,
    DatabaseError,
    ErrorCategory,
    ErrorSeverity,
    NotFoundError,
    ValidationError,
    classify_status_code,
    log_application_error,
    register_error_handlers,
)


class TestStatusClassification:

    @pytest.mark.parametrize("status_code, category, severity", [
        (401, ErrorCategory.AUTHENTICATION, ErrorSeverity.LOW),
        (403, ErrorCategory.AUTHORIZATION, ErrorSeverity.LOW),
        (422, ErrorCategory.VALIDATION, ErrorSeverity.LOW),
        (409, ErrorCategory.BUSINESS, ErrorSeverity.MEDIUM),
        (404, ErrorCategory.USER, ErrorSeverity.LOW),
        (400, ErrorCategory.USER, ErrorSeverity.LOW),
        (500, ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL),
        (503, ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL),
        (302, ErrorCategory.BUSINESS, ErrorSeverity.MEDIUM),
    ])
    def test_classify_status_code(self, status_code, category, severity):
        assert classify_status_code(status_code) == (category, severity)

    def test_application_error_derives_classification_from_status(self):
        error = ApplicationError("boom", status_code=403)

        assert error.category is ErrorCategory.AUTHORIZATION
        assert error.severity is ErrorSeverity.LOW

    def test_explicit_classification_wins(self):
        error = ApplicationError(
            "boom", status_code=400,
            category=ErrorCategory.SYSTEM, severity=ErrorSeverity.HIGH,
        )

        assert error.category is ErrorCategory.SYSTEM
        assert error.severity is ErrorSeverity.HIGH


class TestDerivedFlags:
    """should_log / should_alert / retryable follow category and severity only."""

    def test_low_user_error_is_not_logged(self):
        error = NotFoundError("Role not found")

        assert error.status_code == 404
        assert error.should_log is False
        assert error.should_alert is False
        assert error.retryable is False

    def test_business_errors_are_logged_but_not_alerted(self):
        for error in (BusinessLogicError("inactive role"), ConflictError("duplicate")):
            assert error.category is ErrorCategory.BUSINESS
            assert error.severity is ErrorSeverity.MEDIUM
            assert error.should_log is True
            assert error.should_alert is False
            assert error.retryable is False

    def test_conflict_is_a_business_error_with_409(self):
        error = ConflictError("User already has role 'user'")

        assert isinstance(error, BusinessLogicError)
        assert error.status_code == 409

    def test_critical_database_error_alerts(self):
        error = DatabaseError("insert failed", operation='create')

        assert error.status_code == 500
        assert error.is_operational is False
        assert error.should_alert is True
        assert error.retryable is False
        assert error.details['operation'] == 'create'

    def test_unavailable_database_error_is_retryable(self):
        error = DatabaseError.unavailable("MongoDB is unavailable", operation='find_all')

        assert error.status_code == 503
        assert error.severity is ErrorSeverity.HIGH
        assert error.retryable is True
        assert error.should_alert is False

    def test_constraint_violation_is_high_system_error(self):
        error = ConstraintViolationError("duplicate key", operation='create')

        assert isinstance(error, DatabaseError)
        assert error.category is ErrorCategory.SYSTEM
        assert error.severity is ErrorSeverity.HIGH
        assert error.retryable is True

    def test_auth_errors(self):
        assert AuthenticationError().status_code == 401
        assert AuthorizationError().status_code == 403
        assert AuthorizationError().category is ErrorCategory.AUTHORIZATION


class TestSerialisation:

    def test_to_dict_carries_flags_and_details(self):
        error = ValidationError("bad input", field_errors={'name': 'required'})
        data = error.to_dict()

        assert data['error_code'] == 'ValidationError'
        assert data['category'] == 'validation'
        assert data['severity'] == 'low'
        assert data['status_code'] == 422
        assert data['details']['field_errors'] == {'name': 'required'}
        assert data['correlation_id'] == error.correlation_id
        assert {'should_log', 'should_alert', 'retryable'} <= set(data)

    def test_correlation_ids_are_unique(self):
        assert NotFoundError().correlation_id != NotFoundError().correlation_id


class TestFlaskErrorHandlers:

    @pytest.fixture
    def error_app(self):
        app = Flask(__name__)
        register_error_handlers(app)

        @app.route('/conflict')
        def conflict():
            raise ConflictError("Permission 'questions:read' already exists")

        @app.route('/invalid')
        def invalid():
            raise ValidationError("Required fields missing: name", field_errors={'name': 'required'})

        return app

    def test_conflict_rendered_as_json(self, error_app):
        response = error_app.test_client().get('/conflict')

        assert response.status_code == 409
        body = response.get_json()
        assert body['success'] is False
        assert body['error'] == 'ConflictError'
        assert body['category'] == 'business'
        assert 'correlation_id' in body

    def test_validation_error_includes_field_errors(self, error_app):
        response = error_app.test_client().get('/invalid')

        assert response.status_code == 422
        assert response.get_json()['field_errors'] == {'name': 'required'}


class TestErrorLogging:

    def test_logged_event_keeps_error_timestamp(self):
        error = BusinessLogicError("Cannot delete system role 'admin'")

        with capture_logs() as logs:
            log_application_error(error)

        assert len(logs) == 1
        assert logs[0]['log_level'] == 'warning'
        assert logs[0]['error_timestamp'] == error.timestamp.isoformat()
        assert 'timestamp' not in logs[0]
        assert logs[0]['correlation_id'] == error.correlation_id

    def test_unavailable_database_is_logged_as_error(self):
        with capture_logs() as logs:
            log_application_error(DatabaseError.unavailable("MongoDB unreachable"))

        assert logs[0]['log_level'] in ('error', 'critical')

    def test_unlogged_errors_emit_nothing(self):
        with capture_logs() as logs:
            log_application_error(NotFoundError("Role not found"))

        assert logs == []
