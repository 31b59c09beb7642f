# Overview: Flask API routes for vouchers; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..decorators import require_auth, require_staff
from ..errors import success_response
from ..models import Voucher
from ..money import ZERO
from ..services import voucher_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_voucher,
    parse_decimal,
    ValidationError,
)

VOUCHER_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "description", "discount_type", "discount_amount", "apply_to", "min_order_amount",
        "max_discount", "valid_from", "valid_to", "usage_limit", "per_user_limit", "is_active",
    },
    required_on_create={"code", "discount_type", "discount_amount", "valid_from", "valid_to"},
)

vouchers_bp = Blueprint("vouchers", __name__, url_prefix="/api/vouchers")


def _with_usage(vouchers):
    counts = voucher_service.usage_counts([v.id for v in vouchers])
    return [v.to_dict(used_count=counts[v.id]) for v in vouchers]


@vouchers_bp.get("")
@require_auth
@require_staff
def list_vouchers_route():
    active = request.args.get("active")
    if active is not None:
        active = active.lower() == "true"
    vouchers = voucher_service.list_vouchers(active=active, apply_to=request.args.get("apply_to"))
    return success_response(_with_usage(vouchers))


@vouchers_bp.get("/available")
@require_auth
def available_vouchers_route():
    vouchers = voucher_service.list_available_vouchers(user_id=g.current_user.id)
    return success_response(_with_usage(vouchers))


@vouchers_bp.post("/validate")
@require_auth
def validate_voucher_route():
    """
    Preview a voucher against an order amount. Always 200: the result's
    "valid" flag and "error" name say whether it applies.
    """
    data = request.get_json(silent=True) or {}
    if not data.get("code"):
        raise ValidationError("code is required")
    if data.get("order_total") is None:
        raise ValidationError("order_total is required")

    result = voucher_service.validate(
        data["code"],
        parse_decimal(data["order_total"], "order_total"),
        shipping_fee=parse_decimal(data.get("shipping_fee", ZERO), "shipping_fee"),
        user_id=g.current_user.id,
    )
    return success_response(result.to_dict(), message=result.message)


@vouchers_bp.get("/<int:voucher_id>")
@require_auth
@require_staff
def get_voucher_route(voucher_id: int):
    voucher = voucher_service.get_voucher(voucher_id)
    return success_response(voucher.to_dict(used_count=voucher_service.used_count(voucher_id)))


@vouchers_bp.post("")
@require_auth
@require_staff
def create_voucher_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Voucher, payload=payload, policy=VOUCHER_POLICY, partial=False)
    enforce_rules_voucher(patch)

    voucher = voucher_service.create_voucher(patch)
    return success_response(voucher.to_dict(used_count=0), message="Voucher created", status=201)


@vouchers_bp.put("/<int:voucher_id>")
@require_auth
@require_staff
def update_voucher_route(voucher_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Voucher, payload=payload, policy=VOUCHER_POLICY, partial=True)
    enforce_rules_voucher(patch)

    voucher = voucher_service.update_voucher(voucher_id, patch)
    return success_response(voucher.to_dict(used_count=voucher_service.used_count(voucher_id)))


@vouchers_bp.delete("/<int:voucher_id>")
@require_auth
@require_staff
def delete_voucher_route(voucher_id: int):
    """Unused vouchers are deleted; used ones are deactivated and kept."""
    deleted = voucher_service.delete_voucher(voucher_id)
    return success_response(
        {"voucher_id": voucher_id, "deleted": deleted, "deactivated": not deleted},
        message="Voucher deleted" if deleted else "Voucher has usage history; deactivated instead",
    )
