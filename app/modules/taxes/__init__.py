"""Cálculo y liquidación de IVA paraguayo."""
