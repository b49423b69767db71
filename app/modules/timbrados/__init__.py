"""
Módulo de Timbrados

Autorizaciones fiscales de la SET: un solo timbrado vigente a la vez y
numeración correlativa de facturas "EST-PTO-NNNNNN" por timbrado.
"""
