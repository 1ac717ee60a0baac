import pytest

from app.core import exceptions
from app.core.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
)


class TestAppErrorHierarchy:
    @pytest.mark.parametrize(
        ("error", "status_code", "error_code"),
        [
            (NotFoundError(), 404, "NOT_FOUND"),
            (ForbiddenError(), 403, "FORBIDDEN"),
            (ConflictError(), 409, "CONFLICT"),
            (UnauthorizedError(), 401, "UNAUTHORIZED"),
        ],
    )
    def test_status_and_code(self, error, status_code, error_code):
        assert isinstance(error, AppError)
        assert error.status_code == status_code
        assert error.error_code == error_code

    def test_message_is_translated_from_key(self):
        assert NotFoundError("message_not_found").message == "Mensaje no encontrado"

    def test_resource_is_reported_in_details(self):
        assert ConflictError(resource="conversation").details == {"resource": "conversation"}

    def test_defined_error_kinds(self):
        defined = {
            name
            for name, value in vars(exceptions).items()
            if isinstance(value, type) and issubclass(value, AppError) and value is not AppError
        }

        assert defined == {"NotFoundError", "ForbiddenError", "ConflictError", "UnauthorizedError"}
