"""
Tests para el cálculo de IVA paraguayo

- IVA contenido en precios con IVA incluido (10%, 5%, exenta)
- Agregación de gravadas e IVA por tasa
- Validación del IVA informado en los items
- Endpoints de tasas y previsualización
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace
from pydantic import ValidationError as PydanticValidationError

from app.modules.sales.schemas import LineItemIn
from app.modules.taxes.calculator import (
    TaxAggregator, compute_iva_amount, is_iva_consistent, get_paraguayan_iva_rates
)
from app.modules.taxes.schemas import IvaRate


def _item(total_price, iva_rate, iva_amount=None):
    if iva_amount is None:
        iva_amount = compute_iva_amount(Decimal(total_price), iva_rate)
    return SimpleNamespace(
        total_price=Decimal(total_price),
        iva_rate=iva_rate,
        iva_amount=Decimal(iva_amount)
    )


class TestComputeIva:
    """Tests del IVA contenido en un precio"""

    def test_iva_10(self):
        assert compute_iva_amount(Decimal("11000"), 10) == Decimal("1000.00")
        assert compute_iva_amount(Decimal("5500"), 10) == Decimal("500.00")

    def test_iva_5(self):
        assert compute_iva_amount(Decimal("10500"), 5) == Decimal("500.00")

    def test_exenta(self):
        assert compute_iva_amount(Decimal("8000"), IvaRate.EXENTA) == Decimal("0.00")

    def test_rounding_half_up(self):
        # 1000 * 10 / 110 = 90.909...
        assert compute_iva_amount(Decimal("1000"), 10) == Decimal("90.91")

    def test_consistency_tolerance(self):
        """Se acepta hasta 1 Gs. de diferencia por redondeo del cliente"""
        assert is_iva_consistent(Decimal("1000"), 10, Decimal("91"))
        assert is_iva_consistent(Decimal("1000"), 10, Decimal("90"))
        assert not is_iva_consistent(Decimal("1000"), 10, Decimal("100"))


class TestTaxAggregator:
    """Tests de la liquidación por tasa"""

    def test_two_items_at_10(self):
        """11.000 + 5.500 al 10% → gravada10 15.000, iva10 1.500"""
        totals = TaxAggregator.aggregate([_item("11000", 10), _item("5500", 10)])

        assert totals.gravada10 == Decimal("15000")
        assert totals.iva10 == Decimal("1500")
        assert totals.gravada5 == Decimal("0")
        assert totals.exenta == Decimal("0")
        assert totals.iva_total == Decimal("1500")

    def test_mixed_rates(self):
        items = [_item("11000", 10), _item("10500", 5), _item("3000", 0)]
        totals = TaxAggregator.aggregate(items)

        assert totals.gravada10 + totals.iva10 == Decimal("11000")
        assert totals.gravada5 + totals.iva5 == Decimal("10500")
        assert totals.exenta == Decimal("3000")
        assert totals.iva5 == Decimal("500")

    def test_bucket_sums_match_item_totals(self):
        """gravada + iva de cada tasa es la suma de los totales de esa tasa"""
        items = [
            _item("1000", 10), _item("2350", 10), _item("777", 5),
            _item("1999", 5), _item("450", 0), _item("12345", 10),
        ]
        totals = TaxAggregator.aggregate(items)

        for rate, gravada, iva in (
            (10, totals.gravada10, totals.iva10),
            (5, totals.gravada5, totals.iva5),
        ):
            expected = sum(i.total_price for i in items if i.iva_rate == rate)
            assert gravada + iva == expected
        assert totals.exenta == sum(i.total_price for i in items if i.iva_rate == 0)

    def test_empty_returns_zeros(self):
        totals = TaxAggregator.aggregate([])
        assert totals.gravada10 == totals.gravada5 == totals.exenta == Decimal("0")
        assert totals.iva10 == totals.iva5 == Decimal("0")

    def test_iva_rates_catalog(self):
        rates = {r["rate"] for r in get_paraguayan_iva_rates()}
        assert rates == {IvaRate.IVA_10, IvaRate.IVA_5, IvaRate.EXENTA}


class TestLineItemValidation:
    """Tests del esquema de item"""

    def test_iva_amount_computed_when_missing(self):
        item = LineItemIn(product_id="p1", name="Café", quantity=1, iva_rate=10, total_price="11000")
        assert item.iva_amount == Decimal("1000.00")

    def test_iva_amount_accepted_within_tolerance(self):
        item = LineItemIn(
            product_id="p1", name="Café", quantity=1, iva_rate=10,
            total_price="1000", iva_amount="91"
        )
        assert item.iva_amount == Decimal("91")

    def test_inconsistent_iva_amount_rejected(self):
        with pytest.raises(PydanticValidationError):
            LineItemIn(
                product_id="p1", name="Café", quantity=1, iva_rate=10,
                total_price="11000", iva_amount="500"
            )

    def test_exenta_forces_zero_iva(self):
        item = LineItemIn(
            product_id="p1", name="Agua", quantity=1, iva_rate=0,
            total_price="3000", iva_amount="0.50"
        )
        assert item.iva_amount == Decimal("0.00")

    def test_unknown_rate_rejected(self):
        with pytest.raises(PydanticValidationError):
            LineItemIn(product_id="p1", name="Café", quantity=1, iva_rate=7, total_price="1000")

    def test_quantity_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            LineItemIn(product_id="p1", name="Café", quantity=0, iva_rate=10, total_price="1000")


class TestTaxesEndpoints:
    """Tests de los endpoints de impuestos"""

    def test_iva_rates_requires_auth(self, client):
        response = client.get("/taxes/iva-rates")
        assert response.status_code in (401, 403)

    def test_preview_totals(self, client, cashier_headers, line_item_payload):
        response = client.post(
            "/taxes/preview",
            json=[line_item_payload("11000", 10), line_item_payload("5500", 10)],
            headers=cashier_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["gravada10"]) == Decimal("15000")
        assert Decimal(body["iva10"]) == Decimal("1500")

    def test_preview_rejects_bad_iva(self, client, cashier_headers, line_item_payload):
        response = client.post(
            "/taxes/preview",
            json=[line_item_payload("11000", 10, iva_amount="10")],
            headers=cashier_headers
        )
        assert response.status_code == 422
        assert response.json()["success"] is False
