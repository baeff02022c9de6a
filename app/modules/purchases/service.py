import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.common.validators import money
from app.modules.branches.models import Branch
from app.modules.payables.models import (
    AccountPayable, Payment, PayableStatus, PaymentStatus, PaymentSource,
)
from app.modules.purchases.models import PurchaseInvoice, PurchaseInvoiceLine, PurchaseInvoiceStatus
from app.modules.purchases.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoiceUpdate, PurchaseInvoiceLineCreate,
)
from app.modules.suppliers.service import SupplierService

logger = logging.getLogger(__name__)


class PurchaseInvoiceService:
    """Servicio para facturas de compra y su contabilización en cuentas por pagar"""

    def __init__(self, db: Session):
        self.db = db

    # ----- helpers -----

    def _require_branch(self, branch_id: Optional[UUID], tenant_id: UUID):
        if branch_id is None:
            return
        branch = self.db.query(Branch).filter(Branch.id == branch_id, Branch.tenant_id == tenant_id).first()
        if not branch:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sede no encontrada")

    def _ensure_unique_number(self, tenant_id: UUID, supplier_id: UUID, number_ext: str, exclude_id: UUID = None):
        query = self.db.query(PurchaseInvoice).filter(
            PurchaseInvoice.tenant_id == tenant_id,
            PurchaseInvoice.supplier_id == supplier_id,
            PurchaseInvoice.number_ext == number_ext
        )
        if exclude_id:
            query = query.filter(PurchaseInvoice.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"La factura {number_ext} ya está registrada para este proveedor"
            )

    def _set_lines(self, invoice: PurchaseInvoice, lines: List[PurchaseInvoiceLineCreate]):
        """Reemplaza las líneas y recalcula subtotal, impuestos y total."""
        invoice.lines.clear()
        subtotal = Decimal("0")
        tax_total = Decimal("0")
        for position, line in enumerate(lines):
            line_subtotal = money(line.quantity * line.unit_price)
            line_tax = money(line_subtotal * line.tax_rate / Decimal("100"))
            invoice.lines.append(PurchaseInvoiceLine(
                position=position,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                tax_rate=line.tax_rate,
                line_subtotal=line_subtotal,
                line_tax=line_tax,
                line_total=line_subtotal + line_tax
            ))
            subtotal += line_subtotal
            tax_total += line_tax
        invoice.subtotal = subtotal
        invoice.tax_total = tax_total
        invoice.total = subtotal + tax_total

    def _post(self, invoice: PurchaseInvoice, user_id: Optional[UUID]) -> AccountPayable:
        if invoice.total <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No se puede contabilizar una factura con total en cero"
            )
        invoice.status = PurchaseInvoiceStatus.OPEN.value
        invoice.balance = invoice.total
        account = AccountPayable(
            tenant_id=invoice.tenant_id,
            supplier_id=invoice.supplier_id,
            invoice=invoice,
            branch_id=invoice.branch_id,
            amount=invoice.total,
            balance=invoice.total,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            currency=invoice.currency,
            status=PayableStatus.PENDING.value,
            created_by=user_id
        )
        self.db.add(account)
        return account

    # ----- operaciones -----

    def create_invoice(self, data: PurchaseInvoiceCreate, tenant_id: UUID, user_id: Optional[UUID] = None) -> PurchaseInvoice:
        """Crear factura. Con status=open se contabiliza en la misma transacción."""
        try:
            supplier = SupplierService(self.db).get_supplier(data.supplier_id, tenant_id)
            self._require_branch(data.branch_id, tenant_id)
            self._ensure_unique_number(tenant_id, supplier.id, data.number_ext)

            due_date = data.due_date or data.issue_date + timedelta(days=supplier.payment_terms_days or 0)

            invoice = PurchaseInvoice(
                tenant_id=tenant_id,
                supplier_id=supplier.id,
                branch_id=data.branch_id,
                number_ext=data.number_ext,
                issue_date=data.issue_date,
                due_date=due_date,
                currency=data.currency.upper(),
                notes=data.notes,
                status=PurchaseInvoiceStatus.DRAFT.value,
                created_by=user_id
            )
            self._set_lines(invoice, data.lines)
            self.db.add(invoice)

            if data.status == PurchaseInvoiceStatus.OPEN:
                self._post(invoice, user_id)

            self.db.commit()
            self.db.refresh(invoice)
            logger.info(f"Purchase invoice {invoice.number_ext} created ({invoice.status}) for tenant {tenant_id}")
            return invoice
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando factura de compra: {str(e)}"
            )

    def get_invoice(self, invoice_id: UUID, tenant_id: UUID) -> PurchaseInvoice:
        invoice = self.db.query(PurchaseInvoice).filter(
            PurchaseInvoice.id == invoice_id,
            PurchaseInvoice.tenant_id == tenant_id
        ).first()
        if not invoice:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Factura de compra no encontrada")
        return invoice

    def list_invoices(
        self,
        tenant_id: UUID,
        status_filter: Optional[PurchaseInvoiceStatus] = None,
        supplier_id: Optional[UUID] = None,
        branch_id: Optional[UUID] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 100,
        offset: int = 0
    ) -> dict:
        query = self.db.query(PurchaseInvoice).filter(PurchaseInvoice.tenant_id == tenant_id)
        if status_filter:
            query = query.filter(PurchaseInvoice.status == status_filter.value)
        if supplier_id:
            query = query.filter(PurchaseInvoice.supplier_id == supplier_id)
        if branch_id:
            query = query.filter(PurchaseInvoice.branch_id == branch_id)
        if start_date:
            query = query.filter(PurchaseInvoice.issue_date >= start_date)
        if end_date:
            query = query.filter(PurchaseInvoice.issue_date <= end_date)

        total = query.count()
        items = query.order_by(PurchaseInvoice.issue_date.desc(), PurchaseInvoice.created_at.desc()) \
            .offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def update_invoice(self, invoice_id: UUID, data: PurchaseInvoiceUpdate, tenant_id: UUID) -> PurchaseInvoice:
        """Actualizar una factura solo si está en borrador"""
        try:
            invoice = self.get_invoice(invoice_id, tenant_id)
            if invoice.status != PurchaseInvoiceStatus.DRAFT.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Solo se pueden actualizar facturas en estado borrador"
                )

            update = data.model_dump(exclude_unset=True, exclude={"lines"})
            if "supplier_id" in update:
                SupplierService(self.db).get_supplier(update["supplier_id"], tenant_id)
            if "branch_id" in update:
                self._require_branch(update["branch_id"], tenant_id)
            if "supplier_id" in update or "number_ext" in update:
                self._ensure_unique_number(
                    tenant_id,
                    update.get("supplier_id", invoice.supplier_id),
                    update.get("number_ext", invoice.number_ext),
                    exclude_id=invoice.id
                )

            for field, value in update.items():
                setattr(invoice, field, value.upper() if field == "currency" else value)

            if invoice.due_date < invoice.issue_date:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="La fecha de vencimiento no puede ser anterior a la fecha de emisión"
                )

            if data.lines is not None:
                self._set_lines(invoice, data.lines)

            self.db.commit()
            self.db.refresh(invoice)
            return invoice
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error actualizando factura de compra: {str(e)}"
            )

    def post_invoice(self, invoice_id: UUID, tenant_id: UUID, user_id: Optional[UUID] = None) -> PurchaseInvoice:
        """draft -> open: genera la cuenta por pagar por el total de la factura."""
        try:
            invoice = self.get_invoice(invoice_id, tenant_id)
            if invoice.status != PurchaseInvoiceStatus.DRAFT.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Solo se pueden contabilizar facturas en borrador"
                )
            self._post(invoice, user_id)
            self.db.commit()
            self.db.refresh(invoice)
            logger.info(f"Purchase invoice {invoice.id} posted, payable created for {invoice.total}")
            return invoice
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error contabilizando factura: {str(e)}"
            )

    def void_invoice(self, invoice_id: UUID, reason: str, tenant_id: UUID) -> PurchaseInvoice:
        """
        Anula la factura. Solo es posible sin pagos completados; la cuenta por
        pagar pasa a cancelled y sus pagos programados se cancelan.
        """
        try:
            invoice = self.get_invoice(invoice_id, tenant_id)
            if invoice.status == PurchaseInvoiceStatus.VOID.value:
                return invoice

            account = invoice.account_payable
            if account is not None:
                payments = self.db.query(Payment).filter(
                    Payment.tenant_id == tenant_id,
                    Payment.source == PaymentSource.ACCOUNT_PAYABLE.value,
                    Payment.source_id == account.id,
                    Payment.status.in_([PaymentStatus.COMPLETED.value, PaymentStatus.PENDING.value])
                ).all()
                if any(p.status == PaymentStatus.COMPLETED.value for p in payments):
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail="No se puede anular una factura con pagos registrados"
                    )
                for payment in payments:
                    payment.status = PaymentStatus.CANCELLED.value
                    payment.review_comments = "Cancelado por anulación de la factura"
                account.status = PayableStatus.CANCELLED.value
                account.balance = Decimal("0")

            invoice.status = PurchaseInvoiceStatus.VOID.value
            invoice.balance = Decimal("0")
            note = (invoice.notes or "").strip()
            invoice.notes = f"{note}\n[VOID] {reason}".strip()

            self.db.commit()
            self.db.refresh(invoice)
            logger.info(f"Purchase invoice {invoice.id} voided: {reason}")
            return invoice
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error anulando factura: {str(e)}"
            )
