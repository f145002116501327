# checkout/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from checkout.api.deps import get_product_client
from checkout.api.errors import http_error
from checkout.data.database import get_db
from checkout.domain.errors import CheckoutError
from checkout.domain.schemas import ItemIn, QuantityIn, CartOut, StockShortfall
from checkout.services.cart_service import CartService
from checkout.services.product_client import ProductClient

router = APIRouter(prefix="/carts", tags=["carts"])


def get_service(db: Session = Depends(get_db), product_client: ProductClient = Depends(get_product_client)):
    return CartService(db=db, product_client=product_client)


@router.get("/{customer_id}", response_model=CartOut)
def get_cart(customer_id: str, svc: CartService = Depends(get_service)):
    cart = svc.get_cart(customer_id)
    if not cart:
        raise HTTPException(status_code=404, detail="Cart not found")
    return cart


@router.post("/{customer_id}", response_model=CartOut)
def open_cart(customer_id: str, svc: CartService = Depends(get_service)):
    try:
        return svc.find_or_create(customer_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{customer_id}/items", response_model=CartOut)
def add_item(customer_id: str, payload: ItemIn, svc: CartService = Depends(get_service)):
    try:
        return svc.add_item(customer_id, payload.product_id, payload.quantity, payload.variant())
    except CheckoutError as e:
        raise http_error(e)


@router.put("/{customer_id}/items/{product_id}", response_model=CartOut)
def update_item(customer_id: str, product_id: str, payload: QuantityIn, svc: CartService = Depends(get_service)):
    """quantity 0 removes the line"""
    try:
        return svc.update_item_quantity(customer_id, product_id, payload.quantity, payload.variants)
    except CheckoutError as e:
        raise http_error(e)


@router.delete("/{customer_id}/items/{product_id}", response_model=CartOut)
def remove_item(customer_id: str, product_id: str, svc: CartService = Depends(get_service)):
    try:
        return svc.remove_item(customer_id, product_id)
    except CheckoutError as e:
        raise http_error(e)


@router.delete("/{customer_id}", response_model=CartOut)
def clear_cart(customer_id: str, svc: CartService = Depends(get_service)):
    try:
        return svc.clear_cart(customer_id)
    except CheckoutError as e:
        raise http_error(e)


@router.get("/{customer_id}/validation", response_model=list[StockShortfall])
def validate_cart(customer_id: str, svc: CartService = Depends(get_service)):
    return svc.validate_against_stock(customer_id)
