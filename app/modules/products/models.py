from app.database.database import Base
from sqlalchemy import Column, Integer, BigInteger, String, Boolean, CheckConstraint, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin


class Product(Base, TimestampMixin):
    """
    Producto del catálogo.

    El catálogo (externo al núcleo) crea y edita nombre, categoría y precio;
    ``stock`` solo lo modifica StockLedger en respuesta a ventas y devoluciones.
    """
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False, index=True)
    barcode = Column(String(50), nullable=True, unique=True)  # Código de barras
    category = Column(String(100), nullable=False, default="General", index=True)
    price = Column(BigInteger, nullable=False, default=0)  # Precio unitario en pesos
    stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0)  # Umbral de alerta
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("price >= 0", name="ck_product_price_non_negative"),
    )

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock
