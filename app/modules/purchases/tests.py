"""
Tests para facturas de compra

Cubren creación en borrador y contabilizada, cálculo de totales,
actualización solo en borrador y anulación.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.modules.payables.models import AccountPayable, PayableStatus, Payment, PaymentStatus
from app.modules.payables.schemas import PaymentCreate, PaymentSchedule
from app.modules.payables.service import AccountPayableService
from app.modules.purchases.models import PurchaseInvoiceStatus
from app.modules.purchases.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoiceUpdate, PurchaseInvoiceLineCreate,
)
from app.modules.purchases.service import PurchaseInvoiceService


def invoice_data(supplier, **overrides):
    data = {
        "supplier_id": supplier.id,
        "number_ext": "FV-1001",
        "issue_date": date(2024, 3, 1),
        "lines": [
            {"description": "Resma papel carta", "quantity": "10", "unit_price": "12500", "tax_rate": "19"},
            {"description": "Tóner", "quantity": "1", "unit_price": "180000"},
        ],
    }
    data.update(overrides)
    return PurchaseInvoiceCreate(**data)


class TestPurchaseInvoiceSchemas:

    def test_lines_required(self, sample_supplier):
        with pytest.raises(ValidationError):
            invoice_data(sample_supplier, lines=[])

    def test_due_date_before_issue_date(self, sample_supplier):
        with pytest.raises(ValidationError):
            invoice_data(sample_supplier, due_date=date(2024, 2, 1))

    def test_cannot_create_as_paid(self, sample_supplier):
        with pytest.raises(ValidationError):
            invoice_data(sample_supplier, status="paid")


class TestCreateInvoice:

    def test_draft_totals_without_account(self, db_session: Session, sample_company, sample_supplier):
        invoice = PurchaseInvoiceService(db_session).create_invoice(invoice_data(sample_supplier), sample_company.id)

        assert invoice.status == PurchaseInvoiceStatus.DRAFT.value
        assert invoice.subtotal == Decimal("305000.00")
        assert invoice.tax_total == Decimal("23750.00")
        assert invoice.total == Decimal("328750.00")
        assert [line.position for line in invoice.lines] == [0, 1]
        assert invoice.account_payable is None
        assert db_session.query(AccountPayable).count() == 0

    def test_due_date_defaults_to_supplier_terms(self, db_session: Session, sample_company, sample_supplier):
        invoice = PurchaseInvoiceService(db_session).create_invoice(invoice_data(sample_supplier), sample_company.id)
        assert invoice.due_date == date(2024, 3, 31)

    def test_open_creates_account_payable(self, db_session: Session, sample_company, sample_supplier):
        invoice = PurchaseInvoiceService(db_session).create_invoice(
            invoice_data(sample_supplier, status="open"), sample_company.id
        )

        account = invoice.account_payable
        assert invoice.status == PurchaseInvoiceStatus.OPEN.value
        assert invoice.balance == invoice.total
        assert account.amount == invoice.total
        assert account.balance == invoice.total
        assert account.status == PayableStatus.PENDING.value
        assert account.due_date == invoice.due_date

    def test_duplicate_number_per_supplier(self, db_session: Session, sample_company, sample_supplier):
        service = PurchaseInvoiceService(db_session)
        service.create_invoice(invoice_data(sample_supplier), sample_company.id)

        with pytest.raises(HTTPException) as exc:
            service.create_invoice(invoice_data(sample_supplier), sample_company.id)
        assert exc.value.status_code == 409

    def test_unknown_supplier(self, db_session: Session, sample_company):
        with pytest.raises(HTTPException) as exc:
            PurchaseInvoiceService(db_session).create_invoice(
                PurchaseInvoiceCreate(
                    supplier_id=uuid4(), number_ext="X-1",
                    lines=[PurchaseInvoiceLineCreate(description="Item", quantity=1, unit_price=10)]
                ),
                sample_company.id
            )
        assert exc.value.status_code == 404

    def test_zero_total_cannot_be_posted(self, db_session: Session, sample_company, sample_supplier):
        data = invoice_data(
            sample_supplier, status="open",
            lines=[{"description": "Muestra gratis", "quantity": "1", "unit_price": "0"}]
        )
        with pytest.raises(HTTPException) as exc:
            PurchaseInvoiceService(db_session).create_invoice(data, sample_company.id)
        assert exc.value.status_code == 400


class TestUpdateAndPost:

    def test_update_draft_recalculates(self, db_session: Session, sample_company, sample_supplier):
        service = PurchaseInvoiceService(db_session)
        invoice = service.create_invoice(invoice_data(sample_supplier), sample_company.id)

        updated = service.update_invoice(invoice.id, PurchaseInvoiceUpdate(
            currency="usd",
            lines=[PurchaseInvoiceLineCreate(description="Servicio", quantity=2, unit_price=Decimal("50.25"))]
        ), sample_company.id)

        assert updated.currency == "USD"
        assert updated.total == Decimal("100.50")
        assert len(updated.lines) == 1

    def test_update_rejects_bad_dates(self, db_session: Session, sample_company, sample_supplier):
        service = PurchaseInvoiceService(db_session)
        invoice = service.create_invoice(invoice_data(sample_supplier), sample_company.id)

        with pytest.raises(HTTPException) as exc:
            service.update_invoice(invoice.id, PurchaseInvoiceUpdate(due_date=date(2023, 12, 31)), sample_company.id)
        assert exc.value.status_code == 400

    def test_post_then_update_fails(self, db_session: Session, sample_company, sample_supplier):
        service = PurchaseInvoiceService(db_session)
        invoice = service.create_invoice(invoice_data(sample_supplier), sample_company.id)

        posted = service.post_invoice(invoice.id, sample_company.id)
        assert posted.status == PurchaseInvoiceStatus.OPEN.value
        assert posted.account_payable_id is not None

        with pytest.raises(HTTPException) as exc:
            service.update_invoice(invoice.id, PurchaseInvoiceUpdate(notes="cambio"), sample_company.id)
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            service.post_invoice(invoice.id, sample_company.id)
        assert exc.value.status_code == 400


class TestVoidInvoice:

    def test_void_cancels_account_and_scheduled_payments(self, db_session: Session, sample_company, sample_supplier):
        service = PurchaseInvoiceService(db_session)
        invoice = service.create_invoice(invoice_data(sample_supplier, status="open"), sample_company.id)
        account_id = invoice.account_payable.id
        AccountPayableService(db_session).schedule_payment(
            account_id,
            PaymentSchedule(amount=Decimal("1000"), scheduled_date=date.today() + timedelta(days=5)),
            sample_company.id
        )

        voided = service.void_invoice(invoice.id, "Factura duplicada", sample_company.id)

        account = db_session.get(AccountPayable, account_id)
        scheduled = db_session.query(Payment).filter(Payment.source_id == account_id).one()
        assert voided.status == PurchaseInvoiceStatus.VOID.value
        assert voided.balance == Decimal("0")
        assert "[VOID] Factura duplicada" in voided.notes
        assert account.status == PayableStatus.CANCELLED.value
        assert account.balance == Decimal("0")
        assert scheduled.status == PaymentStatus.CANCELLED.value

    def test_void_with_completed_payment_fails(self, db_session: Session, sample_company, sample_supplier):
        service = PurchaseInvoiceService(db_session)
        invoice = service.create_invoice(invoice_data(sample_supplier, status="open"), sample_company.id)
        AccountPayableService(db_session).register_payment(
            invoice.account_payable.id, PaymentCreate(amount=Decimal("1000")), sample_company.id
        )

        with pytest.raises(HTTPException) as exc:
            service.void_invoice(invoice.id, "Error de digitación", sample_company.id)
        assert exc.value.status_code == 400


class TestPurchaseInvoicesAPI:

    def test_create_list_and_get(self, client, auth_headers, sample_supplier):
        payload = {
            "supplier_id": str(sample_supplier.id),
            "number_ext": "FE-77",
            "issue_date": "2024-05-10",
            "status": "open",
            "lines": [{"description": "Cajas", "quantity": "4", "unit_price": "2500"}],
        }
        response = client.post("/purchase-invoices/", json=payload, headers=auth_headers)
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "open"
        assert body["account_payable_id"] is not None

        response = client.get("/purchase-invoices/?status=open", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = client.get(f"/purchase-invoices/{body['id']}", headers=auth_headers)
        assert Decimal(response.json()["lines"][0]["line_total"]) == Decimal("10000")
