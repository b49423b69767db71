"""
Tests de validadores y helpers comunes
"""

import pytest
from datetime import date, datetime

from app.common.exceptions import AlreadyInvoicedError, ValidationError
from app.common.timeutils import business_date_key, end_of_day, start_of_day
from app.common.validators import (
    CONSUMIDOR_FINAL_RUC, calculate_ruc_dv, normalize_ruc, validate_paraguay_ruc
)


class TestRucValidation:
    """Tests del RUC paraguayo (módulo 11)"""

    def test_calculate_dv(self):
        assert calculate_ruc_dv("44444401") == 7
        assert calculate_ruc_dv("80012346") == 8
        assert calculate_ruc_dv("80012345") == 0

    def test_calculate_dv_invalid_input(self):
        assert calculate_ruc_dv("") is None
        assert calculate_ruc_dv("abc") is None

    def test_validate_ruc(self):
        assert validate_paraguay_ruc("44444401-7")
        assert validate_paraguay_ruc("80.012.346-8")
        assert not validate_paraguay_ruc("80012346-1")
        assert not validate_paraguay_ruc("80012346")

    def test_normalize_defaults_to_consumidor_final(self):
        assert normalize_ruc(None) == CONSUMIDOR_FINAL_RUC
        assert normalize_ruc("   ") == CONSUMIDOR_FINAL_RUC

    def test_normalize_strips_dots(self):
        assert normalize_ruc("80.012.346-8") == "80012346-8"
        assert normalize_ruc("1.234.567") == "1234567"

    def test_normalize_rejects_wrong_dv(self):
        with pytest.raises(ValueError):
            normalize_ruc("80012346-1")


class TestTimeHelpers:

    def test_business_date_key(self):
        assert business_date_key(datetime(2024, 1, 5, 23, 59)) == "2024-01-05"

    def test_day_bounds(self):
        assert start_of_day(date(2024, 1, 31)) == datetime(2024, 1, 31)
        assert end_of_day(date(2024, 1, 31)) == datetime(2024, 1, 31, 23, 59, 59, 999000)


class TestApplicationErrors:

    def test_to_dict_includes_details_and_context(self):
        error = ValidationError("Datos inválidos", field_errors=[{"field": "products", "message": "vacío"}])
        error.add_context("sale_id", "abc")

        assert error.status_code == 400
        assert error.to_dict() == {
            "success": False,
            "message": "Datos inválidos",
            "type": "ValidationError",
            "errors": [{"field": "products", "message": "vacío"}],
            "sale_id": "abc",
        }

    def test_conflict_subclasses_share_status(self):
        assert AlreadyInvoicedError("x").status_code == 409
