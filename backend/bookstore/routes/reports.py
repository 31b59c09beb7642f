from flask import Blueprint, request

from ..decorators import require_auth, require_staff
from ..errors import success_response
from ..services import reporting_service


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/revenue")
@require_auth
@require_staff
def revenue_report():
    report = reporting_service.revenue_report(
        start=request.args.get("start"),
        end=request.args.get("end"),
        group_by=request.args.get("group_by", "day"),
    )
    return success_response(report)


@reports_bp.get("/orders")
@require_auth
@require_staff
def order_statistics_report():
    report = reporting_service.order_statistics(
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return success_response(report)


@reports_bp.get("/vouchers")
@require_auth
@require_staff
def voucher_report():
    return success_response(reporting_service.voucher_report())


@reports_bp.get("/top-products")
@require_auth
@require_staff
def top_products_report():
    limit = request.args.get("limit", 10, type=int)
    report = reporting_service.top_products(
        limit=max(1, min(limit, 100)),
        start=request.args.get("start"),
        end=request.args.get("end"),
    )
    return success_response(report)
