"""
Bloqueo por clave de recurso.

Las operaciones que mutan estado se serializan por clave (producto,
cliente, turno, secuencia de tickets). Operaciones sobre claves disjuntas
avanzan en paralelo; sobre la misma clave quedan estrictamente ordenadas.

Una operación multi-recurso toma todas sus claves de una vez con
``resource_locks.acquire(...)``, que las ordena globalmente (productos por
id, luego cliente, turno, vendedor y secuencia) para que dos ventas con
productos en común no se bloqueen mutuamente.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterable, List, Tuple

from app.common.exceptions import ResourceConflict
from app.core.config import settings

logger = logging.getLogger(__name__)

PRODUCT = "product"
CLIENT = "client"
SHIFT = "shift"
SELLER = "seller"
SEQUENCE = "sequence"

_KIND_ORDER = {PRODUCT: 0, CLIENT: 1, SHIFT: 2, SELLER: 3, SEQUENCE: 4}

ResourceKey = Tuple[str, Hashable]


def product_key(product_id) -> ResourceKey:
    return (PRODUCT, str(product_id))


def client_key(client_id) -> ResourceKey:
    return (CLIENT, str(client_id))


def shift_key(shift_id) -> ResourceKey:
    return (SHIFT, str(shift_id))


def seller_key(seller: str) -> ResourceKey:
    return (SELLER, seller)


def sequence_key(name: str) -> ResourceKey:
    return (SEQUENCE, name)


def ordered_keys(keys: Iterable[ResourceKey]) -> List[ResourceKey]:
    """Quita duplicados y aplica el orden global de adquisición."""
    return sorted(set(keys), key=lambda key: (_KIND_ORDER[key[0]], str(key[1])))


class KeyedLocks:
    """
    Registro de locks reentrantes, uno por clave de recurso.

    Cada entrada cuenta cuántas adquisiciones la retienen o la esperan y se
    elimina cuando ese conteo vuelve a cero, así el registro solo guarda las
    claves en uso.
    """

    def __init__(self, timeout: float = None):
        self._guard = threading.Lock()
        self._locks: Dict[ResourceKey, list] = {}  # clave -> [RLock, usuarios]
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings.LOCK_TIMEOUT_SECONDS

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, key: ResourceKey) -> threading.RLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._locks[key] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: ResourceKey) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def acquire(self, *keys: ResourceKey):
        acquired = []
        try:
            for key in ordered_keys(keys):
                lock = self._checkout(key)
                if not lock.acquire(timeout=self.timeout):
                    self._checkin(key)
                    logger.error(f"Timeout esperando el recurso {key[0]}:{key[1]}")
                    raise ResourceConflict(
                        f"No se pudo obtener el recurso {key[0]} {key[1]}",
                        resource=key[0],
                        resource_id=key[1],
                        timeout_seconds=self.timeout,
                    )
                acquired.append((key, lock))
            yield
        finally:
            for key, lock in reversed(acquired):
                lock.release()
                self._checkin(key)


resource_locks = KeyedLocks()
