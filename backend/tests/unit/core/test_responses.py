"""
Unit Tests for the response envelope, error mapping and pagination helpers
"""
import pytest
from datetime import date

from app.core.exceptions import (
    LibraryError,
    ValidationError,
    UnauthorizedError,
    ForbiddenError,
    NotFoundError,
    ConflictError,
    PaymentGatewayError,
    error_response,
)
from app.utils.pagination import PaginationParams, build_pagination
from app.utils.responses import success_response, envelope, parse_id


class TestSuccessEnvelope:

    def test_data_and_message(self):
        body = success_response({"when": date(2024, 1, 2)}, message="Done")

        assert body == {"success": True, "data": {"when": "2024-01-02"}, "message": "Done"}

    def test_message_only(self):
        assert success_response(message="Logged out") == {"success": True, "message": "Logged out"}

    def test_envelope_status_code(self):
        response = envelope({"id": 1}, status_code=201)
        assert response.status_code == 201


class TestErrorMapping:

    @pytest.mark.parametrize("error,status,code", [
        (ValidationError("bad"), 400, "VALIDATION_ERROR"),
        (UnauthorizedError(), 401, "UNAUTHORIZED"),
        (ForbiddenError(), 403, "FORBIDDEN"),
        (NotFoundError(), 404, "NOT_FOUND"),
        (ConflictError(), 409, "CONFLICT"),
        (PaymentGatewayError("PayPal down"), 400, "PAYMENT_GATEWAY_ERROR"),
        (LibraryError(), 500, "INTERNAL_ERROR"),
    ])
    def test_status_and_code(self, error, status, code):
        assert error.status_code == status
        assert error.code == code

    def test_error_response_shape(self):
        body = error_response(ValidationError("Start date cannot be in the past", field="start_date"))

        assert body == {
            "success": False,
            "error": "Start date cannot be in the past",
            "code": "VALIDATION_ERROR",
            "details": {"field": "start_date"},
        }

    def test_error_response_omits_empty_details(self):
        assert "details" not in error_response(NotFoundError("Book not found"))

    def test_custom_code(self):
        error = ConflictError("Email already registered", code="EMAIL_EXISTS")
        assert error_response(error)["code"] == "EMAIL_EXISTS"


class TestParseId:

    def test_valid_id(self):
        assert parse_id("12", "book id") == 12

    @pytest.mark.parametrize("value", [0, -3, "abc", None])
    def test_invalid_ids(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_id(value, "book id")
        assert exc_info.value.message == "Invalid book id"


class TestPagination:

    def test_defaults(self):
        params = PaginationParams.clamp(None, None)

        assert params.page == 1
        assert params.limit == 10
        assert params.offset == 0

    def test_limit_is_capped(self):
        assert PaginationParams.clamp(2, 500).limit == 100

    def test_non_positive_values_fall_back(self):
        params = PaginationParams.clamp(-4, 0)
        assert (params.page, params.limit) == (1, 10)

    def test_blank_search_ignored(self):
        assert PaginationParams.clamp(1, 10, "   ").search is None
        assert PaginationParams.clamp(1, 10, " orwell ").search == "orwell"

    def test_offset(self):
        assert PaginationParams.clamp(3, 20).offset == 40

    def test_total_pages_rounds_up(self):
        assert build_pagination(1, 10, 21) == {"page": 1, "limit": 10, "total": 21, "total_pages": 3}

    def test_empty_result(self):
        assert build_pagination(1, 10, 0)["total_pages"] == 0
