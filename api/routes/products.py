"""
Products routes — create, list, get, history, status update and delete.
Coordinator errors are translated to HTTP responses in api/main.py.
"""
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from api.deps import get_coordinator
from sync.coordinator import SyncCoordinator

router = APIRouter()


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    manufacturer: Optional[str] = Field(None, max_length=200)


class StatusUpdate(BaseModel):
    status: str     # Created | InTransit | Delivered


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_product(
    body: ProductCreate,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Create the product on-chain, then store it with the transaction hash."""
    product = coordinator.create_product(body.name, body.description, body.manufacturer)
    return product.to_dict()


@router.get("/")
def list_products(coordinator: SyncCoordinator = Depends(get_coordinator)):
    """List stored products, newest first."""
    return [p.to_dict() for p in coordinator.list_products()]


@router.get("/{product_id}")
def get_product(
    product_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    product, chain, error = coordinator.get_product(product_id)
    result = product.to_dict()
    result["blockchain_data"] = None
    if chain is not None:
        result["blockchain_data"] = {
            "status": chain.status,
            "timestamp": chain.timestamp.isoformat() if chain.timestamp else None,
            "exists": chain.exists,
        }
    if error:
        result["blockchain_error"] = error
    return result


@router.get("/{product_id}/history")
def get_product_history(
    product_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    product, history = coordinator.get_history(product_id)
    return {
        "product": product.to_dict(),
        "history": [h.to_dict() for h in history],
    }


@router.put("/{product_id}/status")
def update_product_status(
    product_id: str,
    body: StatusUpdate,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    """Submit the status to the ledger, then mirror it into the store."""
    product = coordinator.request_status_change(product_id, body.status)
    return product.to_dict()


@router.delete("/{product_id}")
def delete_product(
    product_id: str,
    coordinator: SyncCoordinator = Depends(get_coordinator),
):
    coordinator.delete_product(product_id)
    return {"message": "Product deleted successfully"}
