import calendar
import logging
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.common.validators import money, CENT
from app.modules.payables.models import (
    AccountPayable, APInstallment, InstallmentStatus, PaymentStatus,
)
from app.modules.payables.schemas import (
    InstallmentPlanCreate, InstallmentUpdate, InstallmentPayment,
)
from app.modules.payables.service import (
    AccountPayableService, EVENT_PAYMENT_REGISTERED,
)

logger = logging.getLogger(__name__)


def add_months(start: date, months: int) -> date:
    """Suma meses conservando el día, ajustado al último día del mes destino."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def split_principal(balance: Decimal, count: int) -> List[Decimal]:
    """Divide el saldo en cuotas; la última absorbe el residuo del redondeo."""
    base = (balance / count).quantize(CENT, rounding=ROUND_HALF_UP)
    parts = [base] * (count - 1)
    parts.append(money(balance - base * (count - 1)))
    return parts


class InstallmentService:
    """Planes de cuotas sobre cuentas por pagar"""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountPayableService(db)

    def _get_installment(self, installment_id: UUID, tenant_id: UUID) -> APInstallment:
        installment = self.db.query(APInstallment).filter(
            APInstallment.id == installment_id,
            APInstallment.tenant_id == tenant_id
        ).first()
        if not installment:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cuota no encontrada")
        return installment

    def list_installments(self, account_id: UUID, tenant_id: UUID) -> List[APInstallment]:
        account = self.accounts.get_account(account_id, tenant_id)
        return list(account.installments)

    def create_installments(
        self,
        account_id: UUID,
        data: InstallmentPlanCreate,
        tenant_id: UUID
    ) -> List[APInstallment]:
        """Crea (o reemplaza) el plan de cuotas sobre el saldo actual de la cuenta."""
        try:
            account = self.accounts.get_account(account_id, tenant_id, lock=True)
            self.accounts.ensure_payable(account)

            if any(i.paid_amount > 0 for i in account.installments):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="El plan actual tiene cuotas con abonos y no puede reemplazarse"
                )

            principals = split_principal(account.balance, data.number_of_installments)
            if any(p <= 0 for p in principals):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="El número de cuotas es demasiado alto para el saldo pendiente"
                )

            account.installments.clear()
            self.db.flush()

            for number, principal in enumerate(principals, start=1):
                interest = money(principal * data.interest_rate / Decimal("100"))
                amount = principal + interest
                account.installments.append(APInstallment(
                    tenant_id=tenant_id,
                    installment_number=number,
                    due_date=add_months(data.start_date, number - 1),
                    principal=principal,
                    interest=interest,
                    amount=amount,
                    paid_amount=Decimal("0.00"),
                    balance=amount,
                    status=InstallmentStatus.PENDING.value
                ))

            self.db.commit()
            self.db.refresh(account)
            logger.info(f"Installment plan of {len(principals)} created for account {account.id}")
            return list(account.installments)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error creando plan de cuotas: {str(e)}"
            )

    def update_installment(self, installment_id: UUID, data: InstallmentUpdate, tenant_id: UUID) -> APInstallment:
        try:
            installment = self._get_installment(installment_id, tenant_id)
            if installment.status == InstallmentStatus.PAID.value:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No se puede modificar una cuota pagada"
                )
            for field, value in data.model_dump(exclude_unset=True).items():
                if field == "due_date" and value is None:
                    continue
                setattr(installment, field, value)
            self.db.commit()
            self.db.refresh(installment)
            return installment
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error actualizando cuota: {str(e)}"
            )

    def delete_installments(self, account_id: UUID, tenant_id: UUID) -> dict:
        try:
            account = self.accounts.get_account(account_id, tenant_id)
            if any(i.paid_amount > 0 for i in account.installments):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No se puede eliminar un plan con cuotas pagadas"
                )
            deleted = len(account.installments)
            account.installments.clear()
            self.db.commit()
            return {"message": "Plan de cuotas eliminado", "deleted": deleted}
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error eliminando plan de cuotas: {str(e)}"
            )

    def pay_installment(
        self,
        installment_id: UUID,
        data: InstallmentPayment,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> dict:
        """
        Abona a una cuota. La cuota y la cuenta por pagar se actualizan en la misma
        transacción; el abono a la cuenta se limita al saldo de la cuenta.
        """
        try:
            installment = self._get_installment(installment_id, tenant_id)
            account: AccountPayable = self.accounts.get_account(installment.account_payable_id, tenant_id, lock=True)
            self.accounts.ensure_payable(account)

            amount = money(data.amount)
            if installment.status == InstallmentStatus.PAID.value:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="La cuota ya está pagada")
            if amount > installment.balance:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"El monto ({amount}) excede el saldo de la cuota ({installment.balance})"
                )

            installment.paid_amount = money(installment.paid_amount + amount)
            installment.balance = money(installment.amount - installment.paid_amount)
            if installment.balance <= 0:
                installment.balance = Decimal("0.00")
                installment.status = InstallmentStatus.PAID.value
                installment.paid_at = datetime.now(timezone.utc)
            else:
                installment.status = InstallmentStatus.PARTIAL.value

            # Los intereses pueden llevar la cuota por encima del saldo de la cuenta
            applied = min(amount, account.balance)
            payment = self.accounts.new_payment(
                account, applied, data.method,
                data.reference or f"Cuota {installment.installment_number}",
                PaymentStatus.COMPLETED, user_id,
                installment_id=installment.id,
                payment_date=date.today()
            )
            self.accounts.apply_payment(account, applied)

            self.db.commit()
            self.db.refresh(payment)
            self.db.refresh(account)
            self.db.refresh(installment)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error pagando cuota: {str(e)}"
            )

        logger.info(f"Installment {installment.installment_number} of account {account.id} paid {amount}")
        self.accounts._emit_payment_events(account, payment, EVENT_PAYMENT_REGISTERED)
        return {
            "installment": installment,
            "payment": payment,
            "account": self.accounts.serialize(account),
        }
