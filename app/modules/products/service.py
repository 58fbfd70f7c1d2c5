"""
Catálogo de productos (colaborador externo del núcleo).

Solo expone la lectura que necesitan SaleProcessor y StockLedger
(``get_product``) y el alta/edición mínima para poblar el catálogo.
"""
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_
from uuid import UUID
from typing import Optional, Dict, Any
import logging

from .models import Product
from .schemas import ProductCreate, ProductUpdate
from app.common.exceptions import NotFound, ResourceConflict
from app.database.database import unit_of_work

logger = logging.getLogger(__name__)


def get_product(db: Session, product_id: UUID) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFound("Producto no encontrado", product_id=product_id)
    return product


def create_product(db: Session, data: ProductCreate) -> Product:
    product = Product(
        name=data.name,
        barcode=data.barcode,
        category=data.category,
        price=data.price,
        stock=data.stock,
        min_stock=data.min_stock,
        is_active=True
    )
    try:
        with unit_of_work(db):
            db.add(product)
    except IntegrityError:
        raise ResourceConflict("Ya existe un producto con este código de barras", barcode=data.barcode)

    db.refresh(product)
    logger.info(f"Producto creado {product.id} ({product.name})")
    return product


def update_product(db: Session, product_id: UUID, data: ProductUpdate) -> Product:
    with unit_of_work(db):
        product = get_product(db, product_id)
        update_data = data.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            setattr(product, field, value)

    db.refresh(product)
    return product


def list_products(
    db: Session,
    search: Optional[str] = None,
    category: Optional[str] = None,
    limit: int = 100,
    offset: int = 0
) -> Dict[str, Any]:
    query = db.query(Product).filter(Product.is_active == True)

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.barcode.ilike(pattern)))

    if category:
        query = query.filter(Product.category == category)

    query = query.order_by(Product.name)

    total = query.count()
    products = query.offset(offset).limit(limit).all()

    return {
        "products": products,
        "total": total,
        "limit": limit,
        "offset": offset
    }
