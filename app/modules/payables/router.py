from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.database import get_db
from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.payables.bank import BankFileService
from app.modules.payables.installments import InstallmentService
from app.modules.payables.service import AccountPayableService
from app.modules.payables.schemas import (
    EstadoFiltro, VencimientoFiltro,
    AccountPayableList, AccountPayableDetail, PayablesSummary, AgingReport, SupplierBalance,
    PaymentCreate, MarkAsPaid, PaymentSchedule, PaymentApprove, PaymentReject,
    PaymentOut, ScheduledPaymentOut, PaymentResult, ReconcileResult,
    InstallmentOut, InstallmentPlanCreate, InstallmentUpdate, InstallmentPayment, InstallmentPaymentResult,
    BankFileExportRequest, BankFileOut, BankFileExportOut, BankReconciliationResult,
)

payables_router = APIRouter(prefix="/accounts-payable", tags=["Accounts Payable"])

PAY_ROLES = ["owner", "admin", "accountant"]
APPROVE_ROLES = ["owner", "admin"]
READ_ROLES = ["owner", "admin", "accountant", "viewer"]


# ===== LISTADOS Y REPORTES =====

@payables_router.get("/", response_model=AccountPayableList)
def list_accounts_payable(
    estado: EstadoFiltro = Query(EstadoFiltro.TODOS),
    proveedor: Optional[UUID] = Query(None, description="ID del proveedor"),
    busqueda: Optional[str] = Query(None, description="Proveedor o número de factura"),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    monto_minimo: Optional[Decimal] = Query(None, ge=0),
    monto_maximo: Optional[Decimal] = Query(None, ge=0),
    vencimiento: Optional[VencimientoFiltro] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    """
    Listar cuentas por pagar con filtros.

    - **estado**: todos, pending, partial, paid, overdue, cancelled
    - **vencimiento**: vencidas, proximas (próximos días configurables), futuras
    """
    return AccountPayableService(db).list_accounts(
        auth_context.tenant_id, estado, proveedor, busqueda, fecha_desde, fecha_hasta,
        monto_minimo, monto_maximo, vencimiento, page, page_size
    )


@payables_router.get("/summary", response_model=PayablesSummary)
def get_payables_summary(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return AccountPayableService(db).get_summary(auth_context.tenant_id)


@payables_router.get("/aging", response_model=AgingReport)
def get_aging_report(
    as_of: Optional[date] = Query(None, description="Fecha de corte (por defecto hoy)"),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return AccountPayableService(db).get_aging_report(auth_context.tenant_id, as_of)


@payables_router.get("/suppliers", response_model=List[SupplierBalance])
def list_suppliers_with_balance(
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    """Proveedores con saldo pendiente."""
    return AccountPayableService(db).list_suppliers_with_balance(auth_context.tenant_id)


# ===== PAGOS PROGRAMADOS =====

@payables_router.get("/payments/scheduled", response_model=List[ScheduledPaymentOut])
def list_scheduled_payments(
    status_filter: str = Query("pending", alias="status", pattern="^(pending|completed|cancelled|todos)$"),
    fecha_desde: Optional[date] = Query(None),
    fecha_hasta: Optional[date] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return AccountPayableService(db).list_scheduled_payments(
        auth_context.tenant_id, status_filter, fecha_desde, fecha_hasta, limit
    )


@payables_router.post("/payments/{payment_id}/approve", response_model=PaymentResult)
def approve_payment(
    payment_id: UUID,
    payload: PaymentApprove,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(APPROVE_ROLES))
):
    """Aprobar pago programado: se aplica al saldo de la cuenta."""
    return AccountPayableService(db).approve_payment(
        payment_id, payload.comments, auth_context.tenant_id, auth_context.user_id
    )


@payables_router.post("/payments/{payment_id}/reject", response_model=PaymentOut)
def reject_payment(
    payment_id: UUID,
    payload: PaymentReject,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(APPROVE_ROLES))
):
    """Rechazar pago programado (comentario obligatorio)."""
    return AccountPayableService(db).reject_payment(
        payment_id, payload.comments, auth_context.tenant_id, auth_context.user_id
    )


# ===== BANCA EN LÍNEA =====

@payables_router.post("/bank-files", response_model=BankFileExportOut, status_code=status.HTTP_201_CREATED)
def export_bank_file(
    payload: BankFileExportRequest,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    """Generar archivo de pagos para banca en línea."""
    return BankFileService(db).export_bank_file(
        payload.account_ids, payload.file_format, auth_context.tenant_id, auth_context.user_id
    )


@payables_router.get("/bank-files", response_model=List[BankFileOut])
def list_bank_files(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return BankFileService(db).list_files(auth_context.tenant_id, limit, offset)


@payables_router.get("/bank-files/{file_id}/download")
def download_bank_file(
    file_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    bank_file = BankFileService(db).get_file(file_id, auth_context.tenant_id)
    media_type = "text/plain" if bank_file.file_name.endswith(".txt") else "text/csv"
    return Response(
        content=bank_file.content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={bank_file.file_name}"}
    )


@payables_router.post("/bank-files/{file_id}/reconcile", response_model=BankReconciliationResult)
async def reconcile_bank_file(
    file_id: UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    """Conciliar el archivo de confirmación del banco."""
    raw = await file.read()
    text = raw.decode("utf-8-sig", errors="replace")
    return BankFileService(db).reconcile_bank_file(file_id, text, auth_context.tenant_id, auth_context.user_id)


# ===== CUOTAS =====

@payables_router.patch("/installments/{installment_id}", response_model=InstallmentOut)
def update_installment(
    installment_id: UUID,
    payload: InstallmentUpdate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    return InstallmentService(db).update_installment(installment_id, payload, auth_context.tenant_id)


@payables_router.post("/installments/{installment_id}/pay", response_model=InstallmentPaymentResult)
def pay_installment(
    installment_id: UUID,
    payload: InstallmentPayment,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    return InstallmentService(db).pay_installment(
        installment_id, payload, auth_context.tenant_id, auth_context.user_id
    )


# ===== CUENTA =====

@payables_router.get("/{account_id}", response_model=AccountPayableDetail)
def get_account_payable(
    account_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    """Detalle con antigüedad, acciones disponibles, pagos y cuotas."""
    return AccountPayableService(db).get_account_detail(account_id, auth_context.tenant_id)


@payables_router.get("/{account_id}/payments", response_model=List[PaymentOut])
def get_payment_history(
    account_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    service = AccountPayableService(db)
    service.get_account(account_id, auth_context.tenant_id)
    return service.get_payment_history(account_id, auth_context.tenant_id)


@payables_router.post("/{account_id}/payments", response_model=PaymentResult, status_code=status.HTTP_201_CREATED)
def register_payment(
    account_id: UUID,
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    """Registrar pago (abono o total). No puede superar el saldo pendiente."""
    return AccountPayableService(db).register_payment(
        account_id, payload, auth_context.tenant_id, auth_context.user_id
    )


@payables_router.post("/{account_id}/mark-as-paid", response_model=PaymentResult)
def mark_as_paid(
    account_id: UUID,
    payload: MarkAsPaid,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    return AccountPayableService(db).mark_as_paid(
        account_id, payload, auth_context.tenant_id, auth_context.user_id
    )


@payables_router.post("/{account_id}/schedule", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def schedule_payment(
    account_id: UUID,
    payload: PaymentSchedule,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    """Programar pago; queda pendiente de aprobación y no afecta el saldo."""
    return AccountPayableService(db).schedule_payment(
        account_id, payload, auth_context.tenant_id, auth_context.user_id
    )


@payables_router.post("/{account_id}/reconcile", response_model=ReconcileResult)
def reconcile_account(
    account_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(APPROVE_ROLES))
):
    """Recalcular saldo y estado desde los pagos completados."""
    return AccountPayableService(db).reconcile_account(account_id, auth_context.tenant_id)


@payables_router.get("/{account_id}/statement")
def get_account_statement(
    account_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    """Estado de cuenta en texto plano."""
    content = AccountPayableService(db).generate_statement(account_id, auth_context.tenant_id)
    return Response(
        content=content,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename=estado_cuenta_{account_id}.txt"}
    )


@payables_router.get("/{account_id}/installments", response_model=List[InstallmentOut])
def list_installments(
    account_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(READ_ROLES))
):
    return InstallmentService(db).list_installments(account_id, auth_context.tenant_id)


@payables_router.post("/{account_id}/installments", response_model=List[InstallmentOut], status_code=status.HTTP_201_CREATED)
def create_installments(
    account_id: UUID,
    payload: InstallmentPlanCreate,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    """Crear plan de cuotas sobre el saldo pendiente (reemplaza el plan anterior)."""
    return InstallmentService(db).create_installments(account_id, payload, auth_context.tenant_id)


@payables_router.delete("/{account_id}/installments")
def delete_installments(
    account_id: UUID,
    db: Session = Depends(get_db),
    auth_context: AuthContext = Depends(AuthDependencies.require_role(PAY_ROLES))
):
    return InstallmentService(db).delete_installments(account_id, auth_context.tenant_id)
