"""
Errores de dominio del núcleo POS.

Todos son recuperables por quien llama: se lanzan de forma síncrona desde
la operación que los detecta y nunca se reintentan dentro del núcleo.
El ``context`` lleva los valores numéricos que la interfaz muestra al
cajero (por ejemplo crédito solicitado vs. cupo disponible).
"""
from typing import Any, Dict

from fastapi import status


class POSError(Exception):
    """Base de los errores de dominio"""
    kind = "pos_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "kind": self.kind,
            "context": {k: str(v) if not isinstance(v, (int, float, bool, type(None))) else v
                        for k, v in self.context.items()},
        }


class NotFound(POSError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidMovement(POSError):
    """Monto o tipo inválido, o un pago que dejaría saldo negativo"""
    kind = "invalid_movement"
    status_code = 422


class CreditDenied(POSError):
    """Cupo excedido o cliente no autorizado"""
    kind = "credit_denied"
    status_code = status.HTTP_409_CONFLICT


class InsufficientStock(POSError):
    kind = "insufficient_stock"
    status_code = status.HTTP_409_CONFLICT


class InvalidSale(POSError):
    """Carro vacío, cantidades no positivas, datos de pago incompletos"""
    kind = "invalid_sale"
    status_code = 422


class ShiftClosed(POSError):
    kind = "shift_closed"
    status_code = status.HTTP_409_CONFLICT


class AlreadyClosed(POSError):
    kind = "already_closed"
    status_code = status.HTTP_409_CONFLICT


class InvalidCount(POSError):
    kind = "invalid_count"
    status_code = 422


class ShiftAlreadyOpen(POSError):
    kind = "shift_already_open"
    status_code = status.HTTP_409_CONFLICT


class ResourceConflict(POSError):
    """No debería ocurrir con el bloqueo correcto: indica un error de programación"""
    kind = "resource_conflict"
    status_code = status.HTTP_409_CONFLICT


class InvalidRange(POSError):
    """Rango de fechas de reporte incompleto o invertido"""
    kind = "invalid_range"
    status_code = 422
