"""
Category Routes
=================
JSON API for the category tree: list, tree, breadcrumb path, descendants, CRUD.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import CommerceError, raise_http
from modules.catalog.models import Category
from modules.catalog.service import category_service

router = APIRouter(prefix="/api/categories", tags=["catalog"])


# ==========================================
# Schemas
# ==========================================

class CategoryCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    parent_id: Optional[int] = None
    description: Optional[str] = None
    sort_order: int = 0
    is_active: bool = True
    slug: Optional[str] = None


class CategoryUpdateRequest(BaseModel):
    name: Optional[str] = None
    parent_id: Optional[int] = None
    description: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None
    slug: Optional[str] = None


def serialize_category(c: Category) -> dict:
    return {
        "id": c.id,
        "name": c.name,
        "slug": c.slug,
        "description": c.description,
        "sort_order": c.sort_order,
        "is_active": c.is_active,
        "parent_id": c.parent_id,
    }


# ==========================================
# 🗂️ Query
# ==========================================

@router.get("")
async def list_categories(
    search: Optional[str] = None,
    parent_id: Optional[int] = None,
    roots_only: bool = False,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
):
    cats = category_service.list_categories(
        db, search=search, parent_id=parent_id, roots_only=roots_only,
        is_active=None if include_inactive else True,
    )
    return {"categories": [serialize_category(c) for c in cats]}


@router.get("/tree")
async def category_tree(include_inactive: bool = False, db: Session = Depends(get_db)):
    tree = category_service.get_tree(db, active_only=not include_inactive)
    return {"tree": [node.to_dict() for node in tree]}


@router.get("/{category_id}")
async def get_category(category_id: int, db: Session = Depends(get_db)):
    try:
        category = category_service.get_category(db, category_id)
    except CommerceError as e:
        raise_http(e)
    return serialize_category(category)


@router.get("/{category_id}/path")
async def category_path(category_id: int, db: Session = Depends(get_db)):
    """Breadcrumb, root first."""
    try:
        path = category_service.get_path(db, category_id)
    except CommerceError as e:
        raise_http(e)
    return {"path": [serialize_category(c) for c in path]}


@router.get("/{category_id}/descendants")
async def category_descendants(category_id: int, db: Session = Depends(get_db)):
    try:
        cats = category_service.get_descendants(db, category_id)
    except CommerceError as e:
        raise_http(e)
    return {"categories": [serialize_category(c) for c in cats]}


# ==========================================
# ✏️ Mutations
# ==========================================

@router.post("", status_code=201)
async def create_category(body: CategoryCreateRequest, db: Session = Depends(get_db)):
    try:
        category = category_service.create_category(db, **body.model_dump())
    except CommerceError as e:
        raise_http(e)
    return serialize_category(category)


@router.patch("/{category_id}")
async def update_category(category_id: int, body: CategoryUpdateRequest, db: Session = Depends(get_db)):
    # exclude_unset keeps an explicit "parent_id": null (move to root) distinct from "not sent"
    try:
        category = category_service.update_category(db, category_id, body.model_dump(exclude_unset=True))
    except CommerceError as e:
        raise_http(e)
    return serialize_category(category)


@router.delete("/{category_id}")
async def delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        category_service.delete_category(db, category_id)
    except CommerceError as e:
        raise_http(e)
    return {"success": True}
