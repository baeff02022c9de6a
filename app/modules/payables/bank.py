"""
Archivos de pago masivo para banca en línea.

Se genera el archivo en el formato del banco a partir de las cuentas
seleccionadas y luego se concilia con el archivo de confirmación que devuelve
el banco: cada registro confirmado se aplica como pago a su cuenta.
"""
import logging
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.common.dates import format_date_co
from app.common.validators import money
from app.modules.payables.models import (
    AccountPayable, BankFile, BankFileItem, BankFileFormat, BankFileStatus, BankFileItemStatus,
    PaymentMethod, PaymentStatus,
)
from app.modules.payables.service import AccountPayableService, OPEN_STATUSES, EVENT_PAYMENT_REGISTERED

logger = logging.getLogger(__name__)

FILE_EXTENSIONS = {
    BankFileFormat.BANCOLOMBIA_TXT: ".txt",
    BankFileFormat.DAVIVIENDA_CSV: ".csv",
    BankFileFormat.BBVA_CSV: ".csv",
    BankFileFormat.GENERIC_CSV: ".csv",
}

_SEPARATORS = re.compile(r"[;,\t]")
_NOT_AMOUNT = re.compile(r"[^\d.-]")


def _row(account: AccountPayable) -> dict:
    supplier = account.supplier
    invoice = account.invoice
    return {
        "nit": (supplier.nit or "") if supplier else "",
        "name": supplier.name if supplier else "",
        "balance": account.balance,
        "reference": invoice.number_ext if invoice else "",
        "due_date": format_date_co(account.due_date) if account.due_date else "",
    }


def format_bancolombia(accounts: List[AccountPayable]) -> str:
    lines = []
    for account in accounts:
        row = _row(account)
        amount = ("%.2f" % row["balance"]).zfill(12)
        lines.append(f"{row['nit'][:15]:<15}{row['name'][:30]:<30}{amount}")
    return "\n".join(lines)


def format_davivienda(accounts: List[AccountPayable]) -> str:
    return "\n".join(
        f"{r['nit']};{r['name']};{r['balance']}" for r in map(_row, accounts)
    )


def format_bbva(accounts: List[AccountPayable]) -> str:
    lines = ["NIT;NOMBRE;MONTO;REFERENCIA"]
    lines.extend(
        f"{r['nit']};{r['name']};{r['balance']};{r['reference']}" for r in map(_row, accounts)
    )
    return "\n".join(lines)


def format_generic(accounts: List[AccountPayable]) -> str:
    lines = ["NIT,Nombre,Monto,Referencia,Vencimiento"]
    lines.extend(
        f'{r["nit"]},"{r["name"]}",{r["balance"]},"{r["reference"]}","{r["due_date"]}"'
        for r in map(_row, accounts)
    )
    return "\n".join(lines)


FORMATTERS = {
    BankFileFormat.BANCOLOMBIA_TXT: format_bancolombia,
    BankFileFormat.DAVIVIENDA_CSV: format_davivienda,
    BankFileFormat.BBVA_CSV: format_bbva,
    BankFileFormat.GENERIC_CSV: format_generic,
}


def parse_bank_confirmation(text: str) -> List[dict]:
    """
    Lee el archivo de confirmación del banco.

    Formato esperado por línea: referencia (NIT), descripción, monto; separados
    por ';', ',' o tabulador. La primera línea se omite si es encabezado.
    """
    records = []
    lines = [line for line in text.splitlines() if line.strip()]
    for index, line in enumerate(lines):
        if index == 0 and ("REFERENCIA" in line or "NIT" in line):
            continue
        parts = _SEPARATORS.split(line)
        if len(parts) < 3:
            continue
        try:
            amount = Decimal(_NOT_AMOUNT.sub("", parts[2]))
        except InvalidOperation:
            amount = Decimal("0")
        records.append({
            "reference": parts[0].strip().strip('"'),
            "description": parts[1].strip().strip('"'),
            "amount": money(amount),
        })
    return records


class BankFileService:
    """Exportación y conciliación de archivos bancarios"""

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountPayableService(db)

    def get_file(self, file_id: UUID, tenant_id: UUID) -> BankFile:
        bank_file = self.db.query(BankFile).filter(
            BankFile.id == file_id,
            BankFile.tenant_id == tenant_id
        ).first()
        if not bank_file:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Archivo bancario no encontrado")
        return bank_file

    def list_files(self, tenant_id: UUID, limit: int = 50, offset: int = 0) -> List[BankFile]:
        return (
            self.db.query(BankFile)
            .filter(BankFile.tenant_id == tenant_id)
            .order_by(BankFile.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def export_bank_file(
        self,
        account_ids: List[UUID],
        file_format: BankFileFormat,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> BankFile:
        """Genera el archivo para las cuentas seleccionadas con saldo pendiente."""
        try:
            accounts = (
                self.db.query(AccountPayable)
                .filter(
                    AccountPayable.tenant_id == tenant_id,
                    AccountPayable.id.in_(account_ids),
                    AccountPayable.balance > 0,
                    AccountPayable.status.in_(OPEN_STATUSES)
                )
                .order_by(AccountPayable.due_date.asc())
                .all()
            )
            if not accounts:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No hay cuentas con saldo pendiente para exportar"
                )

            file_format = BankFileFormat(file_format)
            content = FORMATTERS[file_format](accounts)
            bank_file = BankFile(
                tenant_id=tenant_id,
                file_name=f"pagos_{date.today().isoformat()}{FILE_EXTENSIONS[file_format]}",
                file_format=file_format.value,
                content=content,
                records_count=len(accounts),
                processed_count=0,
                total_amount=sum((a.balance for a in accounts), Decimal("0.00")),
                status=BankFileStatus.PENDING.value,
                created_by=user_id
            )
            for account in accounts:
                row = _row(account)
                bank_file.items.append(BankFileItem(
                    account_payable_id=account.id,
                    supplier_nit=row["nit"] or None,
                    supplier_name=row["name"],
                    amount=account.balance,
                    reference=row["reference"] or None,
                    status=BankFileItemStatus.PENDING.value
                ))
            self.db.add(bank_file)
            self.db.commit()
            self.db.refresh(bank_file)
            logger.info(f"Bank file {bank_file.file_name} exported with {bank_file.records_count} records")
            return bank_file
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error exportando archivo bancario: {str(e)}"
            )

    def reconcile_bank_file(
        self,
        file_id: UUID,
        text: str,
        tenant_id: UUID,
        user_id: Optional[UUID] = None
    ) -> dict:
        """
        Concilia la confirmación del banco contra los ítems pendientes del archivo.
        Un registro coincide por NIT (referencia) y monto; cada coincidencia se
        registra como pago completado en la misma transacción.
        """
        records = parse_bank_confirmation(text)
        emitted = []
        try:
            bank_file = self.get_file(file_id, tenant_id)
            pending = [i for i in bank_file.items if i.status == BankFileItemStatus.PENDING.value]
            matched, unmatched = [], []

            for record in records:
                item = next(
                    (i for i in pending
                     if (i.supplier_nit or "") == record["reference"] and i.amount == record["amount"]),
                    None
                )
                account = None
                if item is not None:
                    account = self.accounts.get_account(item.account_payable_id, tenant_id, lock=True)
                if account is None or account.status not in OPEN_STATUSES or account.balance <= 0:
                    unmatched.append(record)
                    continue

                amount = min(record["amount"], account.balance)
                payment = self.accounts.new_payment(
                    account, amount, PaymentMethod.TRANSFER,
                    f"Banca en línea {bank_file.file_name}",
                    PaymentStatus.COMPLETED, user_id,
                    payment_date=date.today()
                )
                self.accounts.apply_payment(account, amount)
                self.db.flush()

                item.status = BankFileItemStatus.MATCHED.value
                item.payment_id = payment.id
                item.processed_at = datetime.now(timezone.utc)
                pending.remove(item)
                matched.append(item)
                emitted.append((account, payment))

            bank_file.processed_count = sum(
                1 for i in bank_file.items if i.status == BankFileItemStatus.MATCHED.value
            )
            if bank_file.processed_count == bank_file.records_count:
                bank_file.status = BankFileStatus.PROCESSED.value
            else:
                bank_file.status = BankFileStatus.PARTIAL.value

            self.db.commit()
            self.db.refresh(bank_file)
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Error conciliando archivo bancario: {str(e)}"
            )

        logger.info(
            f"Bank file {bank_file.id} reconciled: {len(matched)} matched, {len(unmatched)} unmatched "
            f"({bank_file.status})"
        )
        for account, payment in emitted:
            self.accounts._emit_payment_events(account, payment, EVENT_PAYMENT_REGISTERED)

        return {
            "file_id": bank_file.id,
            "status": bank_file.status,
            "processed_count": bank_file.processed_count,
            "records_count": bank_file.records_count,
            "matched": matched,
            "unmatched": unmatched,
        }
