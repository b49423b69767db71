"""Contador diario de órdenes (dailyId)."""
