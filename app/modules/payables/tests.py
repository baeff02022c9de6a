"""
Tests para el módulo de Cuentas por Pagar

Cubren:
- Reglas de saldo y estado (pending -> partial -> paid)
- Pagos programados: aprobación y rechazo
- Sincronización con la factura de compra
- Planes de cuotas
- Archivos de banca en línea y su conciliación
- Estado de cuenta en texto plano
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.common.validators import format_currency_co
from app.database.database import SessionLocal
from app.modules.notifications.models import EventTrigger, Notification
from app.modules.payables.bank import (
    BankFileService, parse_bank_confirmation, format_bancolombia, format_generic,
)
from app.modules.payables.installments import InstallmentService, add_months, split_principal
from app.modules.payables.models import (
    Payment, PaymentStatus, PayableStatus, BankFileFormat, InstallmentStatus,
)
from app.modules.payables.schemas import (
    EstadoFiltro, VencimientoFiltro, PaymentCreate, PaymentSchedule, MarkAsPaid,
    InstallmentPlanCreate, InstallmentPayment,
)
from app.modules.payables.service import (
    AccountPayableService, derive_status, aging_info, aging_bucket,
)
from app.modules.purchases.schemas import PurchaseInvoiceCreate
from app.modules.purchases.service import PurchaseInvoiceService


def completed_total(db: Session, account_id) -> Decimal:
    payments = db.query(Payment).filter(
        Payment.source_id == account_id,
        Payment.status == PaymentStatus.COMPLETED.value
    ).all()
    return sum((p.amount for p in payments), Decimal("0.00"))


# ===== FUNCIONES PURAS =====

class TestBalanceRules:

    def test_derive_status(self):
        assert derive_status(Decimal("100"), Decimal("100")) == "pending"
        assert derive_status(Decimal("100"), Decimal("40")) == "partial"
        assert derive_status(Decimal("100"), Decimal("0")) == "paid"

    def test_aging_info_levels(self):
        assert aging_info(-3) == {"label": "Al día", "severity": "low"}
        assert aging_info(0)["severity"] == "low"
        assert aging_info(30)["label"] == "1-30 días"
        assert aging_info(31)["severity"] == "high"
        assert aging_info(61) == {"label": "Más de 60 días", "severity": "critical"}

    def test_aging_buckets(self):
        assert [aging_bucket(d) for d in (0, 1, 45, 90, 91)] == ["current", "1_30", "31_60", "61_90", "over_90"]

    def test_split_principal_last_absorbs_remainder(self):
        parts = split_principal(Decimal("100.00"), 3)
        assert parts == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(parts) == Decimal("100.00")

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 11, 30), 3) == date(2024, 2, 29)
        assert add_months(date(2024, 5, 15), 0) == date(2024, 5, 15)

    def test_currency_format_co(self):
        assert format_currency_co(Decimal("1234567.89")) == "$ 1.234.567,89"
        assert format_currency_co(0) == "$ 0,00"


# ===== PAGOS =====

class TestRegisterPayment:

    def test_partial_then_full_payment(self, db_session: Session, sample_company, sample_user, make_account):
        account = make_account("1000000.00")
        service = AccountPayableService(db_session)

        result = service.register_payment(
            account.id, PaymentCreate(amount=Decimal("400000")), sample_company.id, sample_user.id
        )
        assert result["account"]["balance"] == Decimal("600000.00")
        assert result["account"]["status"] == "partial"
        assert result["payment"].status == PaymentStatus.COMPLETED.value

        result = service.register_payment(
            account.id, PaymentCreate(amount=Decimal("600000")), sample_company.id, sample_user.id
        )
        assert result["account"]["status"] == "paid"
        db_session.refresh(account)
        assert account.balance == Decimal("0.00")
        assert account.amount - completed_total(db_session, account.id) == account.balance

    def test_payment_cannot_exceed_balance(self, db_session: Session, sample_company, make_account):
        account = make_account("500.00")
        with pytest.raises(HTTPException) as exc:
            AccountPayableService(db_session).register_payment(
                account.id, PaymentCreate(amount=Decimal("500.01")), sample_company.id
            )
        assert exc.value.status_code == 400
        db_session.refresh(account)
        assert account.balance == Decimal("500.00")
        assert db_session.query(Payment).count() == 0

    def test_paid_and_cancelled_accounts_reject_payments(self, db_session: Session, sample_company, make_account):
        service = AccountPayableService(db_session)
        paid = make_account("100.00", balance=Decimal("0.00"), status="paid")
        cancelled = make_account("100.00", status="cancelled")
        for account in (paid, cancelled):
            with pytest.raises(HTTPException) as exc:
                service.register_payment(account.id, PaymentCreate(amount=Decimal("1")), sample_company.id)
            assert exc.value.status_code == 400

    def test_mark_as_paid_pays_full_balance(self, db_session: Session, sample_company, make_account):
        account = make_account("750000.00")
        result = AccountPayableService(db_session).mark_as_paid(account.id, MarkAsPaid(), sample_company.id)
        assert result["payment"].amount == Decimal("750000.00")
        assert result["payment"].reference == "Pago total"
        assert result["account"]["status"] == "paid"

    def test_other_tenant_cannot_see_account(self, db_session: Session, make_account):
        account = make_account()
        with pytest.raises(HTTPException) as exc:
            AccountPayableService(db_session).get_account(account.id, uuid4())
        assert exc.value.status_code == 404

    def test_payment_updates_linked_invoice(self, db_session: Session, sample_company, sample_supplier):
        invoice = PurchaseInvoiceService(db_session).create_invoice(PurchaseInvoiceCreate(
            supplier_id=sample_supplier.id,
            number_ext="FV-1001",
            status="open",
            lines=[{"description": "Arroz x 50kg", "quantity": 10, "unit_price": 100000, "tax_rate": 19}]
        ), sample_company.id)
        account = invoice.account_payable
        assert account.amount == Decimal("1190000.00")

        AccountPayableService(db_session).register_payment(
            account.id, PaymentCreate(amount=Decimal("190000")), sample_company.id
        )
        db_session.refresh(invoice)
        assert invoice.balance == Decimal("1000000.00")
        assert invoice.status == "partial"

        AccountPayableService(db_session).mark_as_paid(account.id, MarkAsPaid(), sample_company.id)
        db_session.refresh(invoice)
        assert invoice.balance == Decimal("0.00")
        assert invoice.status == "paid"

    def test_paid_event_reaches_trigger(self, db_session: Session, sample_company, make_account):
        db_session.add(EventTrigger(
            tenant_id=sample_company.id,
            name="Cuenta saldada",
            event_code="cuenta_pagar.pagada",
            channels=["in_app"],
            priority=7
        ))
        db_session.commit()
        account = make_account("200.00")

        AccountPayableService(db_session).register_payment(
            account.id, PaymentCreate(amount=Decimal("200")), sample_company.id
        )
        notifications = db_session.query(Notification).filter(Notification.tenant_id == sample_company.id).all()
        assert len(notifications) == 1
        assert notifications[0].event_code == "cuenta_pagar.pagada"
        assert notifications[0].payload["balance"] == 0.0


class TestScheduledPayments:

    def test_schedule_keeps_balance(self, db_session: Session, sample_company, make_account):
        account = make_account("300000.00")
        when = date.today() + timedelta(days=5)
        payment = AccountPayableService(db_session).schedule_payment(
            account.id, PaymentSchedule(amount=Decimal("100000"), scheduled_date=when), sample_company.id
        )
        assert payment.status == "pending"
        assert payment.reference == f"Pago programado para {when.isoformat()}"
        db_session.refresh(account)
        assert account.balance == Decimal("300000.00")
        assert account.status == "pending"

    def test_approve_applies_payment(self, db_session: Session, sample_company, sample_user, make_account):
        account = make_account("300000.00")
        service = AccountPayableService(db_session)
        payment = service.schedule_payment(
            account.id, PaymentSchedule(amount=Decimal("100000"), scheduled_date=date.today()), sample_company.id
        )

        result = service.approve_payment(payment.id, "Ok tesorería", sample_company.id, sample_user.id)
        assert result["payment"].status == "completed"
        assert result["payment"].reviewed_by == sample_user.id
        assert result["account"]["balance"] == Decimal("200000.00")
        assert result["account"]["status"] == "partial"

        # Una segunda aprobación no aplica dos veces
        with pytest.raises(HTTPException) as exc:
            service.approve_payment(payment.id, None, sample_company.id)
        assert exc.value.status_code == 400
        db_session.refresh(account)
        assert account.balance == Decimal("200000.00")

    def test_approval_from_stale_session_is_refused(self, db_session: Session, sample_company, make_account):
        account = make_account("300000.00")
        payment = AccountPayableService(db_session).schedule_payment(
            account.id, PaymentSchedule(amount=Decimal("100000"), scheduled_date=date.today()), sample_company.id
        )
        other = SessionLocal()
        try:
            # La otra sesión ya tiene el pago cargado como pendiente
            assert other.get(Payment, payment.id).status == "pending"
            AccountPayableService(db_session).approve_payment(payment.id, "Primera", sample_company.id)

            with pytest.raises(HTTPException) as exc:
                AccountPayableService(other).approve_payment(payment.id, "Segunda", sample_company.id)
            assert exc.value.status_code == 400
            with pytest.raises(HTTPException):
                AccountPayableService(other).reject_payment(payment.id, "Tarde", sample_company.id)
        finally:
            other.close()

        db_session.refresh(account)
        assert account.balance == Decimal("200000.00")
        assert completed_total(db_session, account.id) == Decimal("100000.00")

    def test_approve_revalidates_against_current_balance(self, db_session: Session, sample_company, make_account):
        account = make_account("100000.00")
        service = AccountPayableService(db_session)
        scheduled = service.schedule_payment(
            account.id, PaymentSchedule(amount=Decimal("80000"), scheduled_date=date.today()), sample_company.id
        )
        service.register_payment(account.id, PaymentCreate(amount=Decimal("50000")), sample_company.id)

        with pytest.raises(HTTPException) as exc:
            service.approve_payment(scheduled.id, None, sample_company.id)
        assert exc.value.status_code == 400
        db_session.refresh(scheduled)
        assert scheduled.status == "pending"

    def test_reject_requires_comment_and_keeps_balance(self, db_session: Session, sample_company, make_account):
        account = make_account("100000.00")
        service = AccountPayableService(db_session)
        payment = service.schedule_payment(
            account.id, PaymentSchedule(amount=Decimal("10000"), scheduled_date=date.today()), sample_company.id
        )

        with pytest.raises(HTTPException):
            service.reject_payment(payment.id, "   ", sample_company.id)

        rejected = service.reject_payment(payment.id, "Proveedor en revisión", sample_company.id)
        assert rejected.status == "cancelled"
        assert rejected.review_comments == "Proveedor en revisión"
        db_session.refresh(account)
        assert account.balance == Decimal("100000.00")

        with pytest.raises(HTTPException):
            service.approve_payment(payment.id, None, sample_company.id)

    def test_list_scheduled_payments(self, db_session: Session, sample_company, make_account):
        account = make_account("100000.00")
        service = AccountPayableService(db_session)
        first = service.schedule_payment(
            account.id, PaymentSchedule(amount=Decimal("1000"), scheduled_date=date.today()), sample_company.id
        )
        service.schedule_payment(
            account.id, PaymentSchedule(amount=Decimal("2000"), scheduled_date=date.today()), sample_company.id
        )
        service.reject_payment(first.id, "No", sample_company.id)

        pending = service.list_scheduled_payments(sample_company.id)
        assert [p["amount"] for p in pending] == [Decimal("2000.00")]
        assert pending[0]["supplier_name"] == "Distribuidora del Valle"
        assert len(service.list_scheduled_payments(sample_company.id, "todos")) == 2


class TestListingAndReports:

    def test_filters(self, db_session: Session, sample_company, make_account):
        overdue = make_account("500.00", due_in_days=-10)
        make_account("700.00", due_in_days=5)
        make_account("900.00", due_in_days=60)
        service = AccountPayableService(db_session)

        result = service.list_accounts(sample_company.id, estado=EstadoFiltro.OVERDUE)
        assert [item["id"] for item in result["items"]] == [overdue.id]
        assert result["items"][0]["days_overdue"] == 10
        assert result["items"][0]["is_overdue"] is True

        assert service.list_accounts(sample_company.id, vencimiento=VencimientoFiltro.PROXIMAS)["total"] == 1
        assert service.list_accounts(sample_company.id, vencimiento=VencimientoFiltro.FUTURAS)["total"] == 1
        assert service.list_accounts(sample_company.id, monto_minimo=Decimal("600"))["total"] == 2
        assert service.list_accounts(sample_company.id, busqueda="valle")["total"] == 3

        paged = service.list_accounts(sample_company.id, page=1, page_size=2)
        assert paged["total_pages"] == 2
        assert [i["due_date"] for i in paged["items"]] == sorted(i["due_date"] for i in paged["items"])

    def test_summary(self, db_session: Session, sample_company, make_account):
        make_account("500.00", due_in_days=-10)
        make_account("700.00", due_in_days=5, balance=Decimal("300.00"), status="partial")
        make_account("900.00", due_in_days=5)
        make_account("100.00", balance=Decimal("0.00"), status="paid")

        summary = AccountPayableService(db_session).get_summary(sample_company.id)
        assert summary["total_pending"] == Decimal("1400.00")
        assert summary["total_partial"] == Decimal("300.00")
        assert summary["total_overdue"] == Decimal("500.00")
        assert summary["overdue_count"] == 1
        assert summary["total_amount"] == Decimal("1700.00")
        assert summary["suppliers_count"] == 1
        assert summary["next_due_amount"] == Decimal("1200.00")
        assert summary["next_due_date"] == date.today() + timedelta(days=5)

    def test_aging_report(self, db_session: Session, sample_company, make_account):
        make_account("100.00", due_in_days=3)
        make_account("200.00", due_in_days=-15)
        make_account("300.00", due_in_days=-100)

        report = AccountPayableService(db_session).get_aging_report(sample_company.id)
        assert report["buckets"]["current"] == {"total": Decimal("100.00"), "count": 1}
        assert report["buckets"]["1_30"]["total"] == Decimal("200.00")
        assert report["buckets"]["over_90"]["count"] == 1
        assert report["total"] == Decimal("600.00")

    def test_detail_actions(self, db_session: Session, sample_company, make_account):
        service = AccountPayableService(db_session)
        open_detail = service.get_account_detail(make_account("100.00").id, sample_company.id)
        assert all(open_detail["actions"].values())

        paid = make_account("100.00", balance=Decimal("0.00"), status="paid")
        paid_detail = service.get_account_detail(paid.id, sample_company.id)
        assert not any(paid_detail["actions"].values())

    def test_reconcile_fixes_drifted_balance(self, db_session: Session, sample_company, make_account):
        account = make_account("1000.00")
        service = AccountPayableService(db_session)
        service.register_payment(account.id, PaymentCreate(amount=Decimal("250")), sample_company.id)

        account.balance = Decimal("1000.00")
        account.status = "pending"
        db_session.commit()

        result = service.reconcile_account(account.id, sample_company.id)
        assert result["changed"] is True
        assert result["previous_balance"] == Decimal("1000.00")
        assert result["balance"] == Decimal("750.00")
        assert result["status"] == "partial"

        assert service.reconcile_account(account.id, sample_company.id)["changed"] is False

    def test_suppliers_with_balance(self, db_session: Session, sample_company, make_account):
        make_account("100.00")
        make_account("50.00")
        make_account("80.00", balance=Decimal("0.00"), status="paid")
        rows = AccountPayableService(db_session).list_suppliers_with_balance(sample_company.id)
        assert len(rows) == 1
        assert rows[0]["accounts_count"] == 2
        assert rows[0]["total_balance"] == Decimal("150.00")

    def test_statement(self, db_session: Session, sample_company, make_account):
        account = make_account("1234567.89")
        service = AccountPayableService(db_session)
        empty = service.generate_statement(account.id, sample_company.id)
        assert "ESTADO DE CUENTA - CUENTA POR PAGAR" in empty
        assert "Sin pagos registrados" in empty
        assert "$ 1.234.567,89" in empty

        service.register_payment(account.id, PaymentCreate(amount=Decimal("1000")), sample_company.id)
        text = service.generate_statement(account.id, sample_company.id)
        assert "Sin pagos registrados" not in text
        assert "$ 1.233.567,89" in text
        assert date.today().strftime("%d/%m/%Y") in text


# ===== CUOTAS =====

class TestInstallments:

    def test_create_plan_with_interest(self, db_session: Session, sample_company, make_account):
        account = make_account("1000.00")
        plan = InstallmentService(db_session).create_installments(
            account.id,
            InstallmentPlanCreate(number_of_installments=3, start_date=date(2025, 1, 31), interest_rate=Decimal("2")),
            sample_company.id
        )
        assert [i.principal for i in plan] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
        assert plan[0].interest == Decimal("6.67")
        assert plan[0].amount == Decimal("340.00")
        assert [i.due_date for i in plan] == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]

    def test_replace_plan_and_refuse_after_payment(self, db_session: Session, sample_company, make_account):
        account = make_account("900.00")
        service = InstallmentService(db_session)
        service.create_installments(
            account.id, InstallmentPlanCreate(number_of_installments=3, start_date=date.today()), sample_company.id
        )
        plan = service.create_installments(
            account.id, InstallmentPlanCreate(number_of_installments=2, start_date=date.today()), sample_company.id
        )
        assert len(plan) == 2

        result = service.pay_installment(plan[0].id, InstallmentPayment(amount=Decimal("100")), sample_company.id)
        assert result["installment"].status == InstallmentStatus.PARTIAL.value
        assert result["payment"].reference == "Cuota 1"
        assert result["account"]["balance"] == Decimal("800.00")

        with pytest.raises(HTTPException):
            service.create_installments(
                account.id, InstallmentPlanCreate(number_of_installments=4, start_date=date.today()), sample_company.id
            )
        with pytest.raises(HTTPException):
            service.delete_installments(account.id, sample_company.id)

    def test_installment_payment_limits(self, db_session: Session, sample_company, make_account):
        account = make_account("600.00")
        service = InstallmentService(db_session)
        plan = service.create_installments(
            account.id, InstallmentPlanCreate(number_of_installments=2, start_date=date.today()), sample_company.id
        )
        with pytest.raises(HTTPException) as exc:
            service.pay_installment(plan[0].id, InstallmentPayment(amount=Decimal("300.01")), sample_company.id)
        assert exc.value.status_code == 400

        result = service.pay_installment(plan[0].id, InstallmentPayment(amount=Decimal("300")), sample_company.id)
        assert result["installment"].status == "paid"
        assert result["installment"].paid_at is not None
        db_session.refresh(account)
        assert account.balance == Decimal("300.00")
        assert account.status == PayableStatus.PARTIAL.value

    def test_interest_plan_paid_to_the_end(self, db_session: Session, sample_company, make_account):
        account = make_account("100.00")
        service = InstallmentService(db_session)
        plan = service.create_installments(
            account.id,
            InstallmentPlanCreate(number_of_installments=2, start_date=date.today(), interest_rate=Decimal("10")),
            sample_company.id
        )
        assert [i.amount for i in plan] == [Decimal("55.00"), Decimal("55.00")]

        service.pay_installment(plan[0].id, InstallmentPayment(amount=Decimal("55")), sample_company.id)
        result = service.pay_installment(plan[1].id, InstallmentPayment(amount=Decimal("55")), sample_company.id)

        # La última cuota solo abona lo que queda de la cuenta
        assert result["payment"].amount == Decimal("45.00")
        assert result["installment"].status == InstallmentStatus.PAID.value
        assert result["account"]["balance"] == Decimal("0.00")
        assert result["account"]["status"] == PayableStatus.PAID.value
        assert completed_total(db_session, account.id) == Decimal("100.00")


# ===== BANCA EN LÍNEA =====

class TestBankFiles:

    def test_parse_confirmation(self):
        text = "REFERENCIA;DESCRIPCION;VALOR\n\n800197268;Pago factura;$ 1000.50\n123;sin monto\n900;Otro;abc"
        records = parse_bank_confirmation(text)
        assert records == [
            {"reference": "800197268", "description": "Pago factura", "amount": Decimal("1000.50")},
            {"reference": "900", "description": "Otro", "amount": Decimal("0.00")},
        ]

    def test_formats(self, db_session: Session, make_account):
        account = make_account("1500.5")
        fixed = format_bancolombia([account])
        assert fixed == "800197268      " + "Distribuidora del Valle       " + "000001500.50"

        generic = format_generic([account]).splitlines()
        assert generic[0] == "NIT,Nombre,Monto,Referencia,Vencimiento"
        assert generic[1].startswith('800197268,"Distribuidora del Valle",1500.50')

    def test_export_and_reconcile(self, db_session: Session, sample_company, sample_user, make_account):
        first = make_account("1000.00")
        second = make_account("2000.00")
        make_account("50.00", balance=Decimal("0.00"), status="paid")
        service = BankFileService(db_session)

        bank_file = service.export_bank_file(
            [first.id, second.id], BankFileFormat.BBVA_CSV, sample_company.id, sample_user.id
        )
        assert bank_file.file_name == f"pagos_{date.today().isoformat()}.csv"
        assert bank_file.records_count == 2
        assert bank_file.content.splitlines()[0] == "NIT;NOMBRE;MONTO;REFERENCIA"

        result = service.reconcile_bank_file(
            bank_file.id, "800197268;Pago;1000.00\n999999999;Desconocido;5.00", sample_company.id
        )
        assert result["status"] == "partial"
        assert result["processed_count"] == 1
        assert len(result["matched"]) == 1
        assert result["unmatched"][0]["reference"] == "999999999"

        db_session.refresh(first)
        assert first.status == "paid"
        payment = db_session.query(Payment).filter(Payment.source_id == first.id).one()
        assert payment.reference == f"Banca en línea {bank_file.file_name}"

        result = service.reconcile_bank_file(bank_file.id, "800197268;Pago;2000.00", sample_company.id)
        assert result["status"] == "processed"
        assert result["processed_count"] == 2

    def test_export_requires_open_accounts(self, db_session: Session, sample_company, make_account):
        paid = make_account("50.00", balance=Decimal("0.00"), status="paid")
        with pytest.raises(HTTPException) as exc:
            BankFileService(db_session).export_bank_file([paid.id], BankFileFormat.GENERIC_CSV, sample_company.id)
        assert exc.value.status_code == 400


# ===== API =====

class TestPayablesAPI:

    def test_payment_flow_endpoints(self, client, auth_headers, make_account):
        account = make_account("100000.00")

        response = client.post(
            f"/accounts-payable/{account.id}/payments",
            json={"amount": "40000", "method": "cash"},
            headers=auth_headers
        )
        assert response.status_code == 201
        assert response.json()["account"]["status"] == "partial"

        response = client.post(
            f"/accounts-payable/{account.id}/schedule",
            json={"amount": "60000", "scheduled_date": date.today().isoformat()},
            headers=auth_headers
        )
        assert response.status_code == 201
        payment_id = response.json()["id"]

        response = client.get("/accounts-payable/payments/scheduled", headers=auth_headers)
        assert [p["id"] for p in response.json()] == [payment_id]

        response = client.post(f"/accounts-payable/payments/{payment_id}/approve", json={}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["account"]["status"] == "paid"

        detail = client.get(f"/accounts-payable/{account.id}", headers=auth_headers).json()
        assert len(detail["payments"]) == 2
        assert detail["actions"]["can_register_payment"] is False

    def test_statement_download(self, client, auth_headers, make_account):
        account = make_account("5000.00")
        response = client.get(f"/accounts-payable/{account.id}/statement", headers=auth_headers)
        assert response.status_code == 200
        assert "attachment" in response.headers["content-disposition"]
        assert "ESTADO DE CUENTA" in response.text

    def test_viewer_cannot_register_payments(self, client, db_session, sample_company, make_account):
        from conftest import make_user, headers_for
        viewer = make_user(db_session, sample_company, "viewer@andina.co", role="viewer")
        account = make_account("100.00")

        headers = headers_for(viewer, sample_company)
        response = client.post(f"/accounts-payable/{account.id}/payments", json={"amount": "10"}, headers=headers)
        assert response.status_code == 403
        assert client.get("/accounts-payable/", headers=headers).status_code == 200

    def test_missing_company_header(self, client, auth_headers):
        headers = {"Authorization": auth_headers["Authorization"]}
        response = client.get("/accounts-payable/", headers=headers)
        assert response.status_code == 400

    def test_bank_file_upload_reconcile(self, client, auth_headers, make_account):
        account = make_account("2500.00")
        response = client.post(
            "/accounts-payable/bank-files",
            json={"account_ids": [str(account.id)], "file_format": "generic_csv"},
            headers=auth_headers
        )
        assert response.status_code == 201
        file_id = response.json()["id"]

        download = client.get(f"/accounts-payable/bank-files/{file_id}/download", headers=auth_headers)
        assert download.headers["content-type"].startswith("text/csv")

        response = client.post(
            f"/accounts-payable/bank-files/{file_id}/reconcile",
            files={"file": ("confirmacion.csv", b"NIT;DESCRIPCION;MONTO\n800197268;Pago;2500.00\n", "text/csv")},
            headers=auth_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "processed"
