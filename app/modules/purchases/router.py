from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.purchases.models import PurchaseInvoiceStatus
from app.modules.purchases.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoiceUpdate, PurchaseInvoiceVoid,
    PurchaseInvoiceDetail, PurchaseInvoiceList,
)
from app.modules.purchases.service import PurchaseInvoiceService

purchases_router = APIRouter(prefix="/purchase-invoices", tags=["Purchase Invoices"])

WRITE_ROLES = ["owner", "admin", "accountant"]
READ_ROLES = ["owner", "admin", "accountant", "viewer"]


@purchases_router.post("/", response_model=PurchaseInvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_purchase_invoice(
    invoice: PurchaseInvoiceCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """
    Registrar factura de proveedor.

    - **draft**: no genera cuenta por pagar.
    - **open**: se contabiliza y crea la cuenta por pagar por el total.
    """
    return PurchaseInvoiceService(db).create_invoice(invoice, auth_context.tenant_id, auth_context.user_id)


@purchases_router.get("/", response_model=PurchaseInvoiceList)
def list_purchase_invoices(
    status_filter: Optional[PurchaseInvoiceStatus] = Query(None, alias="status"),
    supplier_id: Optional[UUID] = Query(None),
    branch_id: Optional[UUID] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return PurchaseInvoiceService(db).list_invoices(
        auth_context.tenant_id, status_filter, supplier_id, branch_id, start_date, end_date, limit, offset
    )


@purchases_router.get("/{invoice_id}", response_model=PurchaseInvoiceDetail)
def get_purchase_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return PurchaseInvoiceService(db).get_invoice(invoice_id, auth_context.tenant_id)


@purchases_router.patch("/{invoice_id}", response_model=PurchaseInvoiceDetail)
def update_purchase_invoice(
    invoice_id: UUID,
    invoice: PurchaseInvoiceUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """Solo facturas en borrador."""
    return PurchaseInvoiceService(db).update_invoice(invoice_id, invoice, auth_context.tenant_id)


@purchases_router.post("/{invoice_id}/post", response_model=PurchaseInvoiceDetail)
def post_purchase_invoice(
    invoice_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(WRITE_ROLES))
):
    """Contabilizar factura (draft -> open) y generar su cuenta por pagar."""
    return PurchaseInvoiceService(db).post_invoice(invoice_id, auth_context.tenant_id, auth_context.user_id)


@purchases_router.post("/{invoice_id}/void", response_model=PurchaseInvoiceDetail)
def void_purchase_invoice(
    invoice_id: UUID,
    payload: PurchaseInvoiceVoid,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(["owner", "admin"]))
):
    """Anular factura sin pagos completados."""
    return PurchaseInvoiceService(db).void_invoice(invoice_id, payload.reason, auth_context.tenant_id)
