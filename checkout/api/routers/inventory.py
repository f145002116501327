# checkout/api/routers/inventory.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from checkout.api.errors import http_error
from checkout.data.database import get_db
from checkout.domain.errors import CheckoutError
from checkout.domain.schemas import InventoryIn, AdjustIn, HoldIn, AvailabilityOut, InventoryStats, FindingOut
from checkout.services.auditor import ConsistencyAuditor
from checkout.services.inventory_service import InventoryService

router = APIRouter(prefix="/inventory", tags=["inventory"])


def get_service(db: Session = Depends(get_db)):
    return InventoryService(db)


def get_auditor(db: Session = Depends(get_db)):
    return ConsistencyAuditor(db)


@router.post("/", response_model=AvailabilityOut, status_code=201)
def register(payload: InventoryIn, svc: InventoryService = Depends(get_service)):
    try:
        return svc.register(
            payload.product_id,
            payload.sku,
            payload.quantity_available,
            payload.reorder_level,
            payload.max_stock_level,
        )
    except CheckoutError as e:
        raise http_error(e)


@router.get("/stats", response_model=InventoryStats)
def stats(svc: InventoryService = Depends(get_service)):
    return svc.stats()


@router.get("/low-stock", response_model=list[AvailabilityOut])
def low_stock(threshold: int | None = Query(None), svc: InventoryService = Depends(get_service)):
    try:
        return svc.list_low_stock(threshold)
    except CheckoutError as e:
        raise http_error(e)


@router.get("/audit/findings", response_model=list[FindingOut])
def open_findings(auditor: ConsistencyAuditor = Depends(get_auditor)):
    return auditor.open_findings()


@router.post("/audit/scan", response_model=list[FindingOut])
def run_audit(auditor: ConsistencyAuditor = Depends(get_auditor)):
    auditor.scan()
    return auditor.open_findings()


@router.post("/audit/findings/{finding_id}/repair", response_model=FindingOut)
def repair_finding(finding_id: int, auditor: ConsistencyAuditor = Depends(get_auditor)):
    try:
        return auditor.repair_orphan_reservation(finding_id)
    except CheckoutError as e:
        raise http_error(e)


@router.get("/{product_id}", response_model=AvailabilityOut)
def get_availability(product_id: str, svc: InventoryService = Depends(get_service)):
    try:
        return svc.get_availability(product_id)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{product_id}/adjust", response_model=AvailabilityOut)
def adjust(product_id: str, payload: AdjustIn, svc: InventoryService = Depends(get_service)):
    try:
        return svc.adjust(product_id, payload.delta, payload.reason)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{product_id}/lock", response_model=AvailabilityOut)
def lock(product_id: str, payload: HoldIn, svc: InventoryService = Depends(get_service)):
    try:
        return svc.lock(product_id, payload.quantity)
    except CheckoutError as e:
        raise http_error(e)


@router.post("/{product_id}/unlock", response_model=AvailabilityOut)
def unlock(product_id: str, payload: HoldIn, svc: InventoryService = Depends(get_service)):
    try:
        return svc.unlock(product_id, payload.quantity)
    except CheckoutError as e:
        raise http_error(e)
