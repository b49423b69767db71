"""
Módulo de Ventas

Ciclo de vida de la venta del punto de venta:
- Número de orden diario (dailyId) asignado al crear
- Liquidación de IVA por tasa (10%, 5%, exenta)
- Estados pending/ordered/completed/canceled/annulled y etapa derivada
- Facturación con el timbrado vigente, a lo sumo una vez por venta
- Despacho de comanda o ticket a la cola de impresión
"""
