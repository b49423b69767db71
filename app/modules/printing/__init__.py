"""
Módulo de Impresión

Tickets de cliente y comandas de cocina en texto plano, encolados en
Celery después de confirmar la venta.
"""
