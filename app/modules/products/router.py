from fastapi import APIRouter, Query, status
from uuid import UUID
from typing import Optional

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency
from app.modules.products import service
from app.modules.products.schemas import ProductCreate, ProductUpdate, ProductOut, ProductList

product_router = APIRouter(prefix="/products", tags=["Products"])


@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(data: ProductCreate, db: db_dependency):
    """Crear producto en el catálogo."""
    return service.create_product(db, data)


@product_router.get("/", response_model=ProductList)
def list_products(
    db: db_dependency,
    search: Optional[str] = Query(None, description="Buscar por nombre o código de barras"),
    category: Optional[str] = Query(None, description="Filtrar por categoría"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0)
):
    return service.list_products(db, search=search, category=category, limit=limit, offset=offset)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: UUID, db: db_dependency):
    return service.get_product(db, product_id)


@product_router.patch("/{product_id}", response_model=ProductOut)
def update_product(product_id: UUID, data: ProductUpdate, db: db_dependency):
    """Editar datos de catálogo. El stock no se modifica por esta vía."""
    return service.update_product(db, product_id, data)
