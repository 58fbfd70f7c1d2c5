"""
Montos en pesos chilenos.

El peso no tiene fracción: todo monto es un entero (``int``) y nunca un
float. Las entradas externas (str, Decimal) se convierten con ``to_amount``,
que rechaza valores con parte decimal en vez de redondearlos.
"""
from decimal import Decimal, InvalidOperation
from typing import Annotated, Union

from pydantic import Field


Amount = Annotated[int, Field(description="Monto en pesos (entero)")]
PositiveAmount = Annotated[int, Field(gt=0, description="Monto en pesos, mayor a cero")]
NonNegativeAmount = Annotated[int, Field(ge=0, description="Monto en pesos, cero o mayor")]


def to_amount(value: Union[int, str, Decimal]) -> int:
    """Convierte un valor a monto entero; falla si tiene decimales."""
    if isinstance(value, bool):
        raise ValueError("Un booleano no es un monto")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValueError("Los montos no se aceptan como float")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Monto inválido: {value!r}")
    if not number.is_finite() or number != number.to_integral_value():
        raise ValueError(f"El monto debe ser un número entero de pesos: {value!r}")
    return int(number)


def format_currency(amount: int) -> str:
    """Formato es-CL sin decimales: 20000 -> '$20.000', -1500 -> '-$1.500'."""
    sign = "-" if amount < 0 else ""
    grouped = f"{abs(amount):,}".replace(",", ".")
    return f"{sign}${grouped}"
