# Category API - Per-owner credential categories

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..storage import StorageBackend
from .services import get_owner_id, get_storage_backend

router = APIRouter(prefix="/api/categories", tags=["categories"])

COLOR_PATTERN = "^#[0-9a-fA-F]{6}$"


class CategoryRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


class UpdateCategoryRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


@router.get("")
def list_categories(
    owner_id: str = Depends(get_owner_id),
    store: StorageBackend = Depends(get_storage_backend),
):
    """List categories ordered by name."""
    return [c.to_dict() for c in store.list_categories(owner_id)]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    request: CategoryRequest,
    owner_id: str = Depends(get_owner_id),
    store: StorageBackend = Depends(get_storage_backend),
):
    return store.create_category(owner_id, request.model_dump(exclude_none=True)).to_dict()


@router.put("/{category_id}")
def update_category(
    category_id: str,
    request: UpdateCategoryRequest,
    owner_id: str = Depends(get_owner_id),
    store: StorageBackend = Depends(get_storage_backend),
):
    updated = store.update_category(
        category_id, owner_id, request.model_dump(exclude_unset=True, exclude_none=True)
    )
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return updated.to_dict()


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    owner_id: str = Depends(get_owner_id),
    store: StorageBackend = Depends(get_storage_backend),
):
    """Delete a category. Passwords in it become uncategorized."""
    if not store.delete_category(category_id, owner_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return {"success": True, "message": "Category deleted"}
