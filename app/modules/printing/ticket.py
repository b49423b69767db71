"""
Render de tickets en texto plano para impresoras térmicas de 80 mm

El ticket de cliente lleva cabecera del negocio, datos del cliente, detalle,
liquidación de IVA por tasa, pagos y, si la venta está facturada, los datos
del timbrado. La comanda de cocina solo lleva número de orden, modo de
consumo y los items.
"""
from decimal import Decimal
from typing import List

from app.core.config import settings

WIDTH = 48  # columnas en papel de 80 mm con fuente A

MODE_LABELS = {
    "local": "En local",
    "carry": "Para llevar",
    "delivery": "Delivery",
}

PAYMENT_LABELS = {
    "cash": "Efectivo",
    "card": "Tarjeta",
    "qr": "QR",
    "transfer": "Transferencia",
}


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def format_guaranies(amount) -> str:
    """15000 -> 'Gs. 15.000' (el guaraní no usa decimales)"""
    rounded = int(Decimal(amount or 0).quantize(Decimal("1")))
    return "Gs. " + f"{rounded:,}".replace(",", ".")


def _center(text: str) -> str:
    return text[:WIDTH].center(WIDTH).rstrip()


def _columns(left: str, right: str) -> str:
    space = WIDTH - len(right) - 1
    return f"{left[:space]:<{space}} {right}"


def _separator() -> str:
    return "-" * WIDTH


def _detail_lines(sale) -> List[str]:
    lines = []
    for item in sale.products:
        label = f"{item.quantity} x {item.name}"
        if item.unit:
            label += f" ({item.unit})"
        lines.append(_columns(label, format_guaranies(item.total_price)))
    return lines


def render_customer_ticket(sale) -> str:
    lines = [
        _center(settings.TICKET_BUSINESS_NAME),
        _center(settings.TICKET_BUSINESS_ADDRESS),
        _center(f"Tel: {settings.TICKET_BUSINESS_PHONE}"),
        _separator(),
    ]

    if sale.invoiced:
        lines += [
            f"Timbrado: {sale.timbrado_number}",
            f"Inicio vigencia: {sale.timbrado_init:%d/%m/%Y}",
            f"Factura: {sale.invoice_number}",
            _separator(),
        ]

    lines += [
        f"Orden N°: {sale.daily_id}",
        f"Fecha: {sale.date:%d/%m/%Y %H:%M}",
        f"Cliente: {sale.customer_name or 'Sin nombre'}",
        f"RUC: {sale.ruc}",
        f"Vendedor: {sale.user_name or sale.user_id}",
        f"Modo: {MODE_LABELS.get(_value(sale.mode), _value(sale.mode))}",
        _separator(),
    ]
    lines += _detail_lines(sale)
    lines += [
        _separator(),
        _columns("TOTAL", format_guaranies(sale.total_amount)),
        _separator(),
    ]

    totals = sale.totals
    lines += [
        _columns("Gravada 10%", format_guaranies(totals.gravada10)),
        _columns("Gravada 5%", format_guaranies(totals.gravada5)),
        _columns("Exenta", format_guaranies(totals.exenta)),
        _columns("IVA 10%", format_guaranies(totals.iva10)),
        _columns("IVA 5%", format_guaranies(totals.iva5)),
        _columns("Total IVA", format_guaranies(totals.iva_total)),
    ]

    if sale.payment:
        lines.append(_separator())
        for entry in sale.payment:
            method = _value(entry.payment_method)
            lines.append(_columns(PAYMENT_LABELS.get(method, method), format_guaranies(entry.total_amount)))

    lines += ["", _center("¡Gracias por su compra!"), ""]
    return "\n".join(lines) + "\n"


def render_kitchen_order(sale) -> str:
    lines = [
        _center("COMANDA"),
        _center(f"ORDEN N° {sale.daily_id}"),
        _separator(),
        f"Fecha: {sale.date:%d/%m/%Y %H:%M}",
        f"Modo: {MODE_LABELS.get(_value(sale.mode), _value(sale.mode))}",
    ]
    if sale.customer_name:
        lines.append(f"Cliente: {sale.customer_name}")
    lines.append(_separator())

    for item in sale.products:
        label = f"{item.quantity} x {item.name}"
        if item.unit:
            label += f" ({item.unit})"
        lines.append(label[:WIDTH])

    lines += [_separator(), ""]
    return "\n".join(lines) + "\n"
