"""
Reports Module

Reportes de solo lectura sobre datos ya confirmados. No crea tablas:
consulta las de clientes y turnos.

- Estado de cuenta de un cliente fiado por período
- Resumen general de clientes (autorizados, bloqueados, deuda total)
- Turnos cerrados con sus arqueos
- Exportación CSV de todos los reportes

Los períodos siguen los filtros today / week / month / custom.
"""

from .service import ReportService

__all__ = ["ReportService"]
