# Overview: Service-layer operations for invoices issued on payment.

from __future__ import annotations

from flask import current_app

from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Invoice, Order
from ..time_utils import utcnow
from .concurrency import run_in_transaction


def invoice_number_for(order: Order, issued_at) -> str:
    return f"INV-{issued_at:%Y%m%d}-{order.id:06d}"


def issue_invoice(order: Order, *, commit: bool = True) -> Invoice:
    """
    Issue the invoice for a paid order. One invoice per order: a second call
    returns the invoice already issued.
    """
    def _op():
        existing = db.session.query(Invoice).filter_by(order_id=order.id).first()
        if existing is not None:
            return existing

        issued_at = utcnow()
        invoice = Invoice(
            order_id=order.id,
            invoice_number=invoice_number_for(order, issued_at),
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            shipping_fee=order.shipping_fee,
            total_amount=order.total_amount,
            issued_at=issued_at,
        )
        db.session.add(invoice)
        db.session.flush()
        current_app.logger.info(f"Issued invoice {invoice.invoice_number} for order {order.id}")
        return invoice

    return run_in_transaction(_op, commit=commit)


def get_invoice_for_order(order_id: int) -> Invoice:
    invoice = db.session.query(Invoice).filter_by(order_id=order_id).first()
    if invoice is None:
        raise AppError(ErrorCode.INVOICE_NOT_FOUND, details={"order_id": order_id})
    return invoice
