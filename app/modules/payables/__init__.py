"""
Cuentas por pagar: saldos, pagos, cuotas y banca en línea.
"""
