"""
Servicio de cuentas por pagar.

Reglas de saldo:
- balance = amount - suma de pagos completados (nunca negativo).
- El estado se deriva del saldo: 0 -> paid, < amount -> partial, = amount -> pending.
- La factura de compra asociada refleja el mismo saldo y estado.
- Cada pago se aplica en la misma transacción que actualiza cuenta y factura.
"""
import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from app.core.config import settings
from app.common.dates import days_overdue, format_date_co
from app.common.validators import money, format_currency_co
from app.modules.payables.models import (
    AccountPayable, Payment, PayableStatus, PaymentStatus, PaymentMethod, PaymentSource,
)
from app.modules.payables.schemas import (
    EstadoFiltro, VencimientoFiltro, PaymentCreate, PaymentSchedule, MarkAsPaid,
)
from app.modules.purchases.models import PurchaseInvoice, PurchaseInvoiceStatus
from app.modules.suppliers.models import Supplier

logger = logging.getLogger(__name__)

OPEN_STATUSES = (PayableStatus.PENDING.value, PayableStatus.PARTIAL.value)

# Eventos emitidos al módulo de notificaciones
EVENT_PAYMENT_REGISTERED = "cuenta_pagar.pago_registrado"
EVENT_PAYMENT_SCHEDULED = "cuenta_pagar.pago_programado"
EVENT_PAYMENT_APPROVED = "cuenta_pagar.pago_aprobado"
EVENT_PAYMENT_REJECTED = "cuenta_pagar.pago_rechazado"
EVENT_ACCOUNT_PAID = "cuenta_pagar.pagada"


def derive_status(amount: Decimal, balance: Decimal) -> str:
    if balance <= 0:
        return PayableStatus.PAID.value
    if balance < amount:
        return PayableStatus.PARTIAL.value
    return PayableStatus.PENDING.value


def aging_info(days: int) -> dict:
    """Clasificación de antigüedad de una cuenta según días de mora."""
    if days <= 0:
        return {"label": "Al día", "severity": "low"}
    if days <= 30:
        return {"label": "1-30 días", "severity": "medium"}
    if days <= 60:
        return {"label": "31-60 días", "severity": "high"}
    return {"label": "Más de 60 días", "severity": "critical"}


def aging_bucket(days: int) -> str:
    if days <= 0:
        return "current"
    if days <= 30:
        return "1_30"
    if days <= 60:
        return "31_60"
    if days <= 90:
        return "61_90"
    return "over_90"


class AccountPayableService:
    """Servicio para gestión de cuentas por pagar y sus pagos"""

    def __init__(self, db: Session):
        self.db = db

    # ===== CONSULTAS BASE =====

    def _query(self, tenant_id: UUID):
        return self.db.query(AccountPayable).filter(AccountPayable.tenant_id == tenant_id)

    def get_account(self, account_id: UUID, tenant_id: UUID, lock: bool = False) -> AccountPayable:
        query = self._query(tenant_id).filter(AccountPayable.id == account_id)
        if lock:
            query = query.with_for_update()
        account = query.first()
        if not account:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cuenta por pagar no encontrada")
        return account

    def get_payment(self, payment_id: UUID, tenant_id: UUID, lock: bool = False) -> Payment:
        query = self.db.query(Payment).filter(
            Payment.id == payment_id,
            Payment.tenant_id == tenant_id,
            Payment.source == PaymentSource.ACCOUNT_PAYABLE.value
        )
        if lock:
            query = query.with_for_update().populate_existing()
        payment = query.first()
        if not payment:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pago no encontrado")
        return payment

    def _payments_query(self, tenant_id: UUID):
        return self.db.query(Payment).filter(
            Payment.tenant_id == tenant_id,
            Payment.source == PaymentSource.ACCOUNT_PAYABLE.value
        )

    # ===== REGLAS DE SALDO =====

    @staticmethod
    def ensure_payable(account: AccountPayable):
        """La cuenta debe estar abierta y con saldo."""
        if account.status == PayableStatus.CANCELLED.value:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La cuenta por pagar está cancelada")
        if account.status == PayableStatus.PAID.value or account.balance <= 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La cuenta por pagar ya está pagada")

    @staticmethod
    def ensure_amount(account: AccountPayable, amount: Decimal):
        if amount <= 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El monto debe ser mayor a cero")
        if money(amount) > account.balance:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"El monto ({money(amount)}) excede el saldo pendiente ({account.balance})"
            )

    def _sync_invoice(self, account: AccountPayable):
        invoice = account.invoice
        if invoice is None or invoice.status == PurchaseInvoiceStatus.VOID.value:
            return
        invoice.balance = account.balance
        if account.balance <= 0:
            invoice.status = PurchaseInvoiceStatus.PAID.value
        elif account.balance < invoice.total:
            invoice.status = PurchaseInvoiceStatus.PARTIAL.value
        else:
            invoice.status = PurchaseInvoiceStatus.OPEN.value

    def apply_payment(self, account: AccountPayable, amount: Decimal):
        """Descuenta un pago completado del saldo y actualiza estados (sin commit)."""
        new_balance = money(account.balance - money(amount))
        account.balance = new_balance if new_balance > 0 else Decimal("0.00")
        account.status = derive_status(account.amount, account.balance)
        self._sync_invoice(account)

    def new_payment(
        self,
        account: AccountPayable,
        amount: Decimal,
        method: PaymentMethod,
        reference: Optional[str],
        status_value: PaymentStatus,
        user_id: Optional[UUID],
        **extra
    ) -> Payment:
        payment = Payment(
            tenant_id=account.tenant_id,
            source=PaymentSource.ACCOUNT_PAYABLE.value,
            source_id=account.id,
            branch_id=account.branch_id,
            method=PaymentMethod(method).value,
            amount=money(amount),
            currency=account.currency,
            reference=reference,
            status=status_value.value,
            created_by=user_id,
            **extra
        )
        self.db.add(payment)
        return payment

    # ===== SERIALIZACIÓN =====

    def serialize(self, account: AccountPayable, as_of: Optional[date] = None) -> dict:
        overdue_days = days_overdue(account.due_date, as_of)
        is_open = account.status in OPEN_STATUSES and account.balance > 0
        supplier = account.supplier
        invoice = account.invoice
        return {
            "id": account.id,
            "supplier_id": account.supplier_id,
            "supplier_name": supplier.name if supplier else None,
            "supplier_nit": supplier.nit if supplier else None,
            "invoice_id": account.invoice_id,
            "invoice_number": invoice.number_ext if invoice else None,
            "branch_id": account.branch_id,
            "amount": account.amount,
            "balance": account.balance,
            "paid_amount": money(account.amount - account.balance),
            "issue_date": account.issue_date,
            "due_date": account.due_date,
            "currency": account.currency,
            "status": account.status,
            "days_overdue": max(0, overdue_days) if is_open else 0,
            "is_overdue": is_open and overdue_days > 0,
            "notes": account.notes,
            "created_at": account.created_at,
        }

    def _event_payload(self, account: AccountPayable, payment: Optional[Payment] = None) -> dict:
        payload = {
            "account_id": str(account.id),
            "supplier_id": str(account.supplier_id),
            "supplier_name": account.supplier.name if account.supplier else None,
            "invoice_number": account.invoice.number_ext if account.invoice else None,
            "amount": float(account.amount),
            "balance": float(account.balance),
            "status": account.status,
            "due_date": account.due_date.isoformat(),
        }
        if payment is not None:
            payload.update({
                "payment_id": str(payment.id),
                "payment_amount": float(payment.amount),
                "payment_method": payment.method,
                "payment_status": payment.status,
                "reference": payment.reference,
            })
        return payload

    def _emit(self, tenant_id: UUID, event_code: str, payload: dict):
        """Dispara notificaciones después del commit; un fallo no revierte el pago."""
        from app.modules.notifications.dispatcher import NotificationDispatcher
        try:
            NotificationDispatcher(self.db).emit(tenant_id, event_code, payload)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Notification dispatch failed for {event_code}: {str(e)}")

    def _emit_payment_events(self, account: AccountPayable, payment: Payment, event_code: str):
        payload = self._event_payload(account, payment)
        self._emit(account.tenant_id, event_code, payload)
        if account.status == PayableStatus.PAID.value:
            self._emit(account.tenant_id, EVENT_ACCOUNT_PAID, payload)

    # ===== LISTADO Y RESUMEN =====

    def list_accounts(
        self,
        tenant_id: UUID,
        estado: EstadoFiltro = EstadoFiltro.TODOS,
        proveedor: Optional[UUID] = None,
        busqueda: Optional[str] = None,
        fecha_desde: Optional[date] = None,
        fecha_hasta: Optional[date] = None,
        monto_minimo: Optional[Decimal] = None,
        monto_maximo: Optional[Decimal] = None,
        vencimiento: Optional[VencimientoFiltro] = None,
        page: int = 1,
        page_size: int = 20,
        today: Optional[date] = None
    ) -> dict:
        today = today or date.today()
        query = (
            self._query(tenant_id)
            .join(Supplier, AccountPayable.supplier_id == Supplier.id)
            .outerjoin(PurchaseInvoice, AccountPayable.invoice_id == PurchaseInvoice.id)
            .options(joinedload(AccountPayable.supplier), joinedload(AccountPayable.invoice))
        )

        if estado == EstadoFiltro.OVERDUE:
            query = query.filter(
                AccountPayable.due_date < today,
                AccountPayable.balance > 0,
                AccountPayable.status.in_(OPEN_STATUSES)
            )
        elif estado != EstadoFiltro.TODOS:
            query = query.filter(AccountPayable.status == estado.value)

        if proveedor:
            query = query.filter(AccountPayable.supplier_id == proveedor)
        if busqueda:
            pattern = f"%{busqueda.strip()}%"
            query = query.filter(or_(Supplier.name.ilike(pattern), PurchaseInvoice.number_ext.ilike(pattern)))
        if fecha_desde:
            query = query.filter(AccountPayable.due_date >= fecha_desde)
        if fecha_hasta:
            query = query.filter(AccountPayable.due_date <= fecha_hasta)
        if monto_minimo is not None:
            query = query.filter(AccountPayable.balance >= monto_minimo)
        if monto_maximo is not None:
            query = query.filter(AccountPayable.balance <= monto_maximo)

        if vencimiento == VencimientoFiltro.VENCIDAS:
            query = query.filter(AccountPayable.due_date < today, AccountPayable.balance > 0)
        elif vencimiento == VencimientoFiltro.PROXIMAS:
            query = query.filter(
                AccountPayable.due_date >= today,
                AccountPayable.due_date <= today + timedelta(days=settings.UPCOMING_DUE_DAYS)
            )
        elif vencimiento == VencimientoFiltro.FUTURAS:
            query = query.filter(AccountPayable.due_date > today + timedelta(days=settings.UPCOMING_DUE_DAYS))

        total = query.count()
        accounts = (
            query.order_by(AccountPayable.due_date.asc(), AccountPayable.created_at.asc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )
        return {
            "items": [self.serialize(a, today) for a in accounts],
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": math.ceil(total / page_size) if total else 0,
        }

    def get_summary(self, tenant_id: UUID, today: Optional[date] = None) -> dict:
        """Totales de cuentas abiertas (saldo > 0)."""
        today = today or date.today()
        open_query = self._query(tenant_id).filter(
            AccountPayable.balance > 0,
            AccountPayable.status.in_(OPEN_STATUSES)
        )

        def total_of(query) -> Decimal:
            return money(query.with_entities(func.coalesce(func.sum(AccountPayable.balance), 0)).scalar())

        overdue_query = open_query.filter(AccountPayable.due_date < today)
        next_due = open_query.filter(AccountPayable.due_date >= today) \
            .order_by(AccountPayable.due_date.asc()).first()

        next_due_amount = Decimal("0.00")
        next_due_date = None
        if next_due is not None:
            next_due_date = next_due.due_date
            next_due_amount = total_of(open_query.filter(AccountPayable.due_date == next_due_date))

        return {
            "total_pending": total_of(open_query.filter(AccountPayable.status == PayableStatus.PENDING.value)),
            "total_partial": total_of(open_query.filter(AccountPayable.status == PayableStatus.PARTIAL.value)),
            "total_overdue": total_of(overdue_query),
            "overdue_count": overdue_query.count(),
            "total_amount": total_of(open_query),
            "suppliers_count": open_query.with_entities(
                func.count(func.distinct(AccountPayable.supplier_id))
            ).scalar() or 0,
            "next_due_amount": next_due_amount,
            "next_due_date": next_due_date,
        }

    def get_aging_report(self, tenant_id: UUID, as_of: Optional[date] = None) -> dict:
        as_of = as_of or date.today()
        buckets = {key: {"total": Decimal("0.00"), "count": 0}
                   for key in ("current", "1_30", "31_60", "61_90", "over_90")}
        accounts = self._query(tenant_id).filter(
            AccountPayable.balance > 0,
            AccountPayable.status.in_(OPEN_STATUSES),
            AccountPayable.issue_date <= as_of
        ).all()

        grand_total = Decimal("0.00")
        for account in accounts:
            bucket = buckets[aging_bucket(days_overdue(account.due_date, as_of))]
            bucket["total"] += account.balance
            bucket["count"] += 1
            grand_total += account.balance

        return {"as_of": as_of, "buckets": buckets, "total": grand_total}

    def list_suppliers_with_balance(self, tenant_id: UUID) -> List[dict]:
        rows = (
            self.db.query(
                Supplier.id,
                Supplier.name,
                Supplier.nit,
                func.count(AccountPayable.id),
                func.sum(AccountPayable.balance)
            )
            .join(AccountPayable, AccountPayable.supplier_id == Supplier.id)
            .filter(
                AccountPayable.tenant_id == tenant_id,
                AccountPayable.balance > 0,
                AccountPayable.status.in_(OPEN_STATUSES)
            )
            .group_by(Supplier.id, Supplier.name, Supplier.nit)
            .order_by(Supplier.name)
            .all()
        )
        return [
            {
                "supplier_id": supplier_id,
                "supplier_name": name,
                "supplier_nit": nit,
                "accounts_count": count,
                "total_balance": money(total),
            }
            for supplier_id, name, nit, count, total in rows
        ]

    # ===== DETALLE =====

    def get_account_detail(self, account_id: UUID, tenant_id: UUID) -> dict:
        account = self.get_account(account_id, tenant_id)
        data = self.serialize(account)
        is_open = account.status in OPEN_STATUSES and account.balance > 0
        data.update({
            "aging": aging_info(days_overdue(account.due_date)),
            "actions": {
                "can_register_payment": is_open,
                "can_schedule_payment": is_open,
                "can_mark_as_paid": is_open,
                "can_edit": account.status not in (PayableStatus.PAID.value, PayableStatus.CANCELLED.value),
                "can_create_installments": is_open,
            },
            "payments": self.get_payment_history(account.id, tenant_id),
            "installments": list(account.installments),
        })
        return data

    def get_payment_history(self, account_id: UUID, tenant_id: UUID) -> List[Payment]:
        return (
            self._payments_query(tenant_id)
            .filter(Payment.source_id == account_id)
            .order_by(Payment.created_at.desc())
            .all()
        )

    # ===== PAGOS =====

    def register_payment(
        self,
        account_id: UUID,
        data: PaymentCreate,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> dict:
        """Registra un pago completado y lo aplica al saldo en una sola transacción."""
        try:
            account = self.get_account(account_id, tenant_id, lock=True)
            self.ensure_payable(account)
            self.ensure_amount(account, data.amount)

            payment = self.new_payment(
                account, data.amount, data.method, data.reference, PaymentStatus.COMPLETED, user_id,
                payment_date=data.payment_date or date.today(),
                notes=data.notes
            )
            self.apply_payment(account, payment.amount)

            self.db.commit()
            self.db.refresh(payment)
            self.db.refresh(account)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error registrando pago: {str(e)}"
            )

        logger.info(f"Payment {payment.id} of {payment.amount} registered on account {account.id}; balance {account.balance} ({account.status})")
        self._emit_payment_events(account, payment, EVENT_PAYMENT_REGISTERED)
        return {"payment": payment, "account": self.serialize(account)}

    def mark_as_paid(self, account_id: UUID, data: MarkAsPaid, tenant_id: UUID, user_id: Optional[UUID] = None) -> dict:
        """Paga el saldo completo de la cuenta."""
        account = self.get_account(account_id, tenant_id)
        self.ensure_payable(account)
        payment_data = PaymentCreate(
            amount=account.balance,
            method=data.method,
            reference=data.reference or "Pago total",
        )
        return self.register_payment(account_id, payment_data, tenant_id, user_id)

    def schedule_payment(
        self,
        account_id: UUID,
        data: PaymentSchedule,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> Payment:
        """Crea un pago pendiente de aprobación; el saldo no cambia."""
        try:
            account = self.get_account(account_id, tenant_id)
            self.ensure_payable(account)
            self.ensure_amount(account, data.amount)

            payment = self.new_payment(
                account, data.amount, data.method,
                data.reference or f"Pago programado para {data.scheduled_date.isoformat()}",
                PaymentStatus.PENDING, user_id,
                scheduled_date=data.scheduled_date,
                notes=data.notes
            )
            self.db.commit()
            self.db.refresh(payment)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error programando pago: {str(e)}"
            )

        logger.info(f"Payment {payment.id} scheduled for {payment.scheduled_date} on account {account.id}")
        payload = self._event_payload(account, payment)
        payload["scheduled_date"] = payment.scheduled_date.isoformat()
        self._emit(tenant_id, EVENT_PAYMENT_SCHEDULED, payload)
        return payment

    def list_scheduled_payments(
        self,
        tenant_id: UUID,
        status_filter: str = PaymentStatus.PENDING.value,
        fecha_desde: Optional[date] = None,
        fecha_hasta: Optional[date] = None,
        limit: int = 10
    ) -> List[dict]:
        query = self._payments_query(tenant_id)
        if status_filter != "todos":
            query = query.filter(Payment.status == PaymentStatus(status_filter).value)
        if fecha_desde:
            query = query.filter(Payment.created_at >= datetime.combine(fecha_desde, time.min, tzinfo=timezone.utc))
        if fecha_hasta:
            query = query.filter(Payment.created_at <= datetime.combine(fecha_hasta, time.max, tzinfo=timezone.utc))

        payments = query.order_by(Payment.created_at.asc()).limit(limit).all()
        accounts = {}
        account_ids = {p.source_id for p in payments}
        if account_ids:
            for account in self._query(tenant_id).filter(AccountPayable.id.in_(account_ids)).all():
                accounts[account.id] = account

        result = []
        for payment in payments:
            account = accounts.get(payment.source_id)
            item = {column.name: getattr(payment, column.name) for column in Payment.__table__.columns}
            item.update({
                "supplier_name": account.supplier.name if account and account.supplier else None,
                "invoice_number": account.invoice.number_ext if account and account.invoice else None,
                "account_balance": account.balance if account else None,
            })
            result.append(item)
        return result

    def approve_payment(
        self,
        payment_id: UUID,
        comments: Optional[str],
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> dict:
        """Aprueba un pago programado: revalida contra el saldo actual y lo aplica."""
        try:
            payment = self.get_payment(payment_id, tenant_id, lock=True)
            if payment.status != PaymentStatus.PENDING.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Solo se pueden aprobar pagos pendientes"
                )
            account = self.get_account(payment.source_id, tenant_id, lock=True)
            self.ensure_payable(account)
            self.ensure_amount(account, payment.amount)

            payment.status = PaymentStatus.COMPLETED.value
            payment.review_comments = comments
            payment.reviewed_by = user_id
            payment.reviewed_at = datetime.now(timezone.utc)
            payment.payment_date = date.today()
            self.apply_payment(account, payment.amount)

            self.db.commit()
            self.db.refresh(payment)
            self.db.refresh(account)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error aprobando pago: {str(e)}"
            )

        logger.info(f"Scheduled payment {payment.id} approved; account {account.id} balance {account.balance}")
        self._emit_payment_events(account, payment, EVENT_PAYMENT_APPROVED)
        return {"payment": payment, "account": self.serialize(account)}

    def reject_payment(
        self,
        payment_id: UUID,
        comments: str,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> Payment:
        """Rechaza un pago programado. El saldo de la cuenta no cambia."""
        if not comments or not comments.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="El comentario de rechazo es obligatorio")
        try:
            payment = self.get_payment(payment_id, tenant_id, lock=True)
            if payment.status != PaymentStatus.PENDING.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Solo se pueden rechazar pagos pendientes"
                )
            payment.status = PaymentStatus.CANCELLED.value
            payment.review_comments = comments.strip()
            payment.reviewed_by = user_id
            payment.reviewed_at = datetime.now(timezone.utc)

            self.db.commit()
            self.db.refresh(payment)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error rechazando pago: {str(e)}"
            )

        logger.info(f"Scheduled payment {payment.id} rejected")
        account = self.get_account(payment.source_id, tenant_id)
        payload = self._event_payload(account, payment)
        payload["comments"] = payment.review_comments
        self._emit(tenant_id, EVENT_PAYMENT_REJECTED, payload)
        return payment

    def reconcile_account(self, account_id: UUID, tenant_id: UUID) -> dict:
        """Recalcula saldo y estado desde los pagos completados."""
        try:
            account = self.get_account(account_id, tenant_id, lock=True)
            if account.status == PayableStatus.CANCELLED.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No se puede conciliar una cuenta cancelada"
                )
            paid_total = money(
                self._payments_query(tenant_id)
                .filter(Payment.source_id == account.id, Payment.status == PaymentStatus.COMPLETED.value)
                .with_entities(func.coalesce(func.sum(Payment.amount), 0))
                .scalar()
            )
            previous_balance = account.balance
            previous_status = account.status

            new_balance = money(account.amount - paid_total)
            account.balance = new_balance if new_balance > 0 else Decimal("0.00")
            account.status = derive_status(account.amount, account.balance)
            self._sync_invoice(account)

            self.db.commit()
            self.db.refresh(account)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error conciliando cuenta: {str(e)}"
            )

        changed = previous_balance != account.balance or previous_status != account.status
        if changed:
            logger.warning(
                f"Account {account.id} reconciled: balance {previous_balance} -> {account.balance}, "
                f"status {previous_status} -> {account.status}"
            )
        return {
            "account_id": account.id,
            "previous_balance": previous_balance,
            "balance": account.balance,
            "previous_status": previous_status,
            "status": account.status,
            "paid_total": paid_total,
            "changed": changed,
        }

    # ===== ESTADO DE CUENTA =====

    def generate_statement(self, account_id: UUID, tenant_id: UUID) -> str:
        """Estado de cuenta en texto plano."""
        account = self.get_account(account_id, tenant_id)
        data = self.serialize(account)
        payments = self.get_payment_history(account.id, tenant_id)
        line = "=" * 60

        out = [
            line,
            "ESTADO DE CUENTA - CUENTA POR PAGAR",
            line,
            f"Proveedor: {data['supplier_name'] or ''}",
            f"NIT: {data['supplier_nit'] or 'N/A'}",
            f"Factura: {data['invoice_number'] or 'N/A'}",
            f"Fecha de emisión: {format_date_co(account.issue_date)}",
            f"Fecha de vencimiento: {format_date_co(account.due_date)}",
            f"Estado: {account.status}",
            "",
            "RESUMEN",
            "-" * 60,
            f"Monto total: {format_currency_co(account.amount)}",
            f"Total pagado: {format_currency_co(data['paid_amount'])}",
            f"Saldo pendiente: {format_currency_co(account.balance)}",
            f"Días de mora: {data['days_overdue']}",
            "",
            "HISTORIAL DE PAGOS",
            "-" * 60,
        ]
        if payments:
            for p in payments:
                when = p.payment_date or p.scheduled_date or (p.created_at.date() if p.created_at else None)
                out.append(
                    f"{format_date_co(when)}  {format_currency_co(p.amount):>20}  "
                    f"{p.method:<10} {p.status:<10} {p.reference or ''}".rstrip()
                )
        else:
            out.append("Sin pagos registrados")

        if account.installments:
            out.extend(["", "PLAN DE CUOTAS", "-" * 60])
            for inst in account.installments:
                out.append(
                    f"Cuota {inst.installment_number}: {format_date_co(inst.due_date)}  "
                    f"{format_currency_co(inst.amount)}  saldo {format_currency_co(inst.balance)}  {inst.status}"
                )

        out.extend(["", line, f"Generado: {format_date_co(date.today())}", line])
        return "\n".join(out)
