"""
Tests for the error taxonomy, its HTTP rendering and the logging context.
"""
import json
import logging

import pytest

from editorial.core.error_handling import (
    AlreadyPublishedError,
    AlreadyRespondedError,
    ApplicationError,
    ExternalFailureError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
    ValidationError,
    status_code_for,
)
from editorial.core.logging_config import (
    JsonFormatter,
    LoggingContext,
    clear_request_context,
    current_context,
    operation_var,
    request_id_var,
    set_request_context,
)
from editorial.core.response_formatter import ResponseFormatter
from editorial.models import ManuscriptStatus


class TestErrorTaxonomy:

    @pytest.mark.parametrize("error, expected", [
        (NotFoundError("Manuscript not found"), 404),
        (UnauthorizedError("Not authorized to publish"), 403),
        (ValidationError("Title is required", field="title"), 400),
        (PreconditionFailedError("Manuscript is not under review"), 400),
        (AlreadyRespondedError("Invitation already answered"), 400),
        (AlreadyPublishedError("Issue already published"), 409),
        (ExternalFailureError("Registrar unreachable", service="doi_registrar"), 502),
        (ApplicationError("Unexpected"), 500),
    ])
    def test_status_code_follows_category(self, error, expected):
        assert status_code_for(error) == expected

    def test_keyword_context_is_folded_into_details(self):
        error = NotFoundError("Issue not found", resource="issue", resource_id=42, details={"hint": "check volume"})
        assert error.details == {"hint": "check volume", "resource": "issue", "resource_id": "42"}

    def test_enum_state_is_rendered_by_value(self):
        error = PreconditionFailedError("Not accepted", current_state=ManuscriptStatus.UNDER_REVIEW)
        assert error.details["current_state"] == ManuscriptStatus.UNDER_REVIEW.value

    def test_subclass_code_can_be_overridden(self):
        error = PreconditionFailedError("Deposit not failed", error_code="DEPOSIT_NOT_FAILED")
        assert error.error_code == "DEPOSIT_NOT_FAILED"
        assert AlreadyRespondedError("x").error_code == "ALREADY_RESPONDED"

    def test_none_context_values_are_dropped(self):
        error = ValidationError("Bad value", field="pages", value=None)
        assert error.details == {"field": "pages"}


class TestErrorEnvelope:

    def test_application_error_response(self):
        error = NotFoundError("Review not found", resource="review", resource_id="abc")
        response = ResponseFormatter.from_application_error(error)
        body = json.loads(response.body)

        assert response.status_code == 404
        assert response.headers["X-Error-ID"] == error.error_id
        assert body["success"] is False
        assert body["error_code"] == "NOT_FOUND"
        assert body["details"]["resource_id"] == "abc"
        assert body["details"]["category"] == "not_found"


class TestLoggingContext:

    def setup_method(self):
        clear_request_context()

    def test_binds_operation_and_restores_previous_context(self):
        set_request_context(request_id="req12345")
        with LoggingContext("publish_issue", user_id="editor-1"):
            assert current_context() == {
                "request_id": "req12345",
                "user_id": "editor-1",
                "operation": "publish_issue",
            }
        assert current_context() == {"request_id": "req12345"}

    def test_generates_request_id_outside_a_request(self):
        with LoggingContext("doi_bulk_retry"):
            assert request_id_var.get() is not None
        assert request_id_var.get() is None
        assert operation_var.get() is None

    def test_exception_propagates(self):
        with pytest.raises(RuntimeError):
            with LoggingContext("publish_issue"):
                raise RuntimeError("registrar down")
        assert operation_var.get() is None

    def test_json_formatter_includes_context_and_extras(self):
        set_request_context(request_id="req12345", operation="assign_reviewers")
        record = logging.LogRecord("editorial.test", logging.INFO, __file__, 1, "assigned %d", (2,), None)
        record.manuscript_id = "PUJMS-2026-00001"

        entry = json.loads(JsonFormatter().format(record))

        assert entry["message"] == "assigned 2"
        assert entry["request_id"] == "req12345"
        assert entry["operation"] == "assign_reviewers"
        assert entry["extra"] == {"manuscript_id": "PUJMS-2026-00001"}
