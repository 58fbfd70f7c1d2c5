"""
Módulo de Clientes (fiado)

Cuenta corriente de clientes con crédito en tienda:

- models.py: Client y ClientMovement (historial append-only)
- schemas.py: validación y serialización Pydantic
- service.py: CreditLedger (saldo + historial) y ClientService (directorio)
- router.py: endpoints REST
- tasks.py: verificación de saldos en segundo plano
- tests.py: pruebas del libro de crédito
"""

from .models import Client, ClientMovement, MovementType, PaymentSchedule
from .service import CreditLedger, ClientService

__all__ = [
    "Client",
    "ClientMovement",
    "MovementType",
    "PaymentSchedule",
    "CreditLedger",
    "ClientService",
]
