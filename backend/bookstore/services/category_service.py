# Overview: Category tree maintenance: slugs, re-parenting without cycles, guarded (bulk) deletion.

"""
Category Service

Categories form a forest: parent_id NULL marks a root. A category may never
be placed under itself or one of its descendants. Deleting a category with
children needs force=True, and nothing is deleted while the category (or,
with force, any descendant) still has products assigned.
"""

from __future__ import annotations

import re
import unicodedata

from flask import current_app

from ..errors import AppError, ErrorCode
from ..extensions import db
from ..models import Category, Product
from .concurrency import run_in_transaction


CATEGORY_MUTABLE_FIELDS = {"name", "slug", "description", "parent_id", "is_active"}

# Letters NFD does not decompose into base + combining mark
_SLUG_TRANSLATE = str.maketrans({"đ": "d", "Đ": "d", "ø": "o", "ß": "ss", "æ": "ae", "ł": "l"})


def slugify(text: str) -> str:
    """'Sách Thiếu Nhi & Đồ chơi' -> 'sach-thieu-nhi-do-choi'"""
    decomposed = unicodedata.normalize("NFD", (text or "").translate(_SLUG_TRANSLATE))
    ascii_text = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()
    ascii_text = re.sub(r"[^a-z0-9\s-]", "", ascii_text)
    ascii_text = re.sub(r"[\s-]+", "-", ascii_text.strip())
    return ascii_text.strip("-")


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise AppError(ErrorCode.CATEGORY_NOT_FOUND, details={"category_id": category_id})
    return category


def get_category_by_slug(slug: str) -> Category:
    category = db.session.query(Category).filter_by(slug=slug).first()
    if category is None:
        raise AppError(ErrorCode.CATEGORY_NOT_FOUND, details={"slug": slug})
    return category


def list_categories(*, active_only: bool = False) -> list[Category]:
    q = db.session.query(Category)
    if active_only:
        q = q.filter(Category.is_active.is_(True))
    return q.order_by(Category.name.asc()).all()


def list_children(parent_id: int | None, *, active_only: bool = True) -> list[Category]:
    """Direct children of parent_id; None lists the roots."""
    if parent_id is not None:
        get_category(parent_id)
    q = db.session.query(Category)
    if parent_id is None:
        q = q.filter(Category.parent_id.is_(None))
    else:
        q = q.filter(Category.parent_id == parent_id)
    if active_only:
        q = q.filter(Category.is_active.is_(True))
    return q.order_by(Category.id.asc()).all()


def category_tree(*, active_only: bool = True) -> list[dict]:
    """
    Nested [{...category, "children": [...]}] built from one query.

    With active_only, an inactive category hides its whole subtree.
    """
    q = db.session.query(Category)
    if active_only:
        q = q.filter(Category.is_active.is_(True))
    rows = q.order_by(Category.id.asc()).all()

    nodes = {c.id: dict(c.to_dict(), children=[]) for c in rows}
    roots = []
    for c in rows:
        if c.parent_id is None:
            roots.append(nodes[c.id])
        elif c.parent_id in nodes:
            nodes[c.parent_id]["children"].append(nodes[c.id])
    return roots


def _child_map() -> dict[int | None, list[int]]:
    children: dict[int | None, list[int]] = {}
    for category_id, parent_id in db.session.query(Category.id, Category.parent_id).all():
        children.setdefault(parent_id, []).append(category_id)
    return children


def descendant_ids(category_id: int) -> list[int]:
    """All ids below category_id, breadth first (excludes category_id itself)."""
    children = _child_map()
    result: list[int] = []
    frontier = list(children.get(category_id, []))
    while frontier:
        current = frontier.pop(0)
        result.append(current)
        frontier.extend(children.get(current, []))
    return result


def _ensure_name_available(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Category).filter(Category.name == name)
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise AppError(ErrorCode.CATEGORY_NAME_EXISTS, details={"name": name})


def _ensure_slug_available(slug: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Category).filter(Category.slug == slug)
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    if q.first() is not None:
        raise AppError(ErrorCode.CATEGORY_SLUG_EXISTS, details={"slug": slug})


def _check_parent(category_id: int | None, parent_id: int | None) -> None:
    if parent_id is None:
        return
    get_category(parent_id)
    if category_id is None:
        return
    if parent_id == category_id or parent_id in descendant_ids(category_id):
        raise AppError(
            ErrorCode.INVALID_CATEGORY_PARENT,
            details={"category_id": category_id, "parent_id": parent_id},
        )


def _resolve_slug(name: str, slug: str | None) -> str:
    resolved = slugify(slug if slug else name)
    if not resolved:
        raise AppError(ErrorCode.VALIDATION_ERROR, message="slug cannot be derived from the name")
    return resolved


def create_category(
    *,
    name: str,
    description: str | None = None,
    slug: str | None = None,
    parent_id: int | None = None,
    is_active: bool = True,
) -> Category:
    def _op():
        _ensure_name_available(name)
        resolved_slug = _resolve_slug(name, slug)
        _ensure_slug_available(resolved_slug)
        _check_parent(None, parent_id)

        category = Category(
            name=name,
            slug=resolved_slug,
            description=description,
            parent_id=parent_id,
            is_active=is_active,
        )
        db.session.add(category)
        db.session.flush()
        current_app.logger.info(f"Created category {category.slug} (id={category.id}, parent={parent_id})")
        return category

    return run_in_transaction(_op)


def update_category(category_id: int, patch: dict) -> Category:
    """
    Partial update. A new name without an explicit slug regenerates the slug;
    a parent_id change goes through the same cycle check as move_category().
    """
    def _op():
        category = get_category(category_id)
        values = {k: v for k, v in patch.items() if k in CATEGORY_MUTABLE_FIELDS}

        if "name" in values and values["name"] != category.name:
            _ensure_name_available(values["name"], exclude_id=category.id)
            values.setdefault("slug", None)
        if "slug" in values:
            values["slug"] = _resolve_slug(values.get("name", category.name), values["slug"])
            _ensure_slug_available(values["slug"], exclude_id=category.id)
        if "parent_id" in values:
            _check_parent(category.id, values["parent_id"])

        for key, value in values.items():
            setattr(category, key, value)
        return category

    return run_in_transaction(_op)


def move_category(category_id: int, new_parent_id: int | None) -> Category:
    """Re-parent a category; None makes it a root."""
    def _op():
        category = get_category(category_id)
        _check_parent(category.id, new_parent_id)
        category.parent_id = new_parent_id
        current_app.logger.info(f"Moved category {category_id} under {new_parent_id}")
        return category

    return run_in_transaction(_op)


def toggle_status(category_id: int) -> Category:
    def _op():
        category = get_category(category_id)
        category.is_active = not category.is_active
        return category

    return run_in_transaction(_op)


def _product_count(category_ids: list[int]) -> int:
    if not category_ids:
        return 0
    return db.session.query(Product).filter(Product.category_id.in_(category_ids)).count()


def _delete_inner(category_id: int, force: bool) -> list[int]:
    category = get_category(category_id)
    below = descendant_ids(category.id)

    if below and not force:
        raise AppError(
            ErrorCode.CATEGORY_HAS_CHILDREN,
            details={"category_id": category.id, "child_count": len(below)},
        )
    product_count = _product_count([category.id, *below])
    if product_count:
        raise AppError(
            ErrorCode.CATEGORY_HAS_PRODUCTS,
            details={"category_id": category.id, "product_count": product_count},
        )

    # Deepest first so no row is left pointing at a deleted parent
    doomed = [*below, category.id]
    for doomed_id in reversed(doomed):
        db.session.delete(db.session.get(Category, doomed_id))
        db.session.flush()
    return sorted(doomed)


def delete_category(category_id: int, *, force: bool = False) -> dict:
    """
    Delete a category, and with force=True its whole subtree.

    Raises CATEGORY_HAS_CHILDREN (children present, no force) or
    CATEGORY_HAS_PRODUCTS (products in the category or, with force, anywhere
    below it). Returns {"deleted_count", "deleted_ids"}.
    """
    def _op():
        deleted = _delete_inner(category_id, force)
        current_app.logger.info(f"Deleted categories {deleted}")
        return {"deleted_count": len(deleted), "deleted_ids": deleted}

    return run_in_transaction(_op)


def bulk_delete(category_ids: list[int], *, force: bool = False) -> dict:
    """
    Delete several categories in one transaction; each one succeeds or fails
    on its own (savepoint per id). Ids already removed as part of an earlier
    subtree count as deleted.

    Returns {"deleted_count", "deleted_ids", "failed": [{"id", "name", "reason"}]}.
    """
    def _op():
        deleted: list[int] = []
        failed: list[dict] = []
        for category_id in category_ids:
            if category_id in deleted:
                continue
            name = None
            try:
                with db.session.begin_nested():
                    name = get_category(category_id).name
                    deleted.extend(_delete_inner(category_id, force))
            except AppError as exc:
                failed.append({"id": category_id, "name": name, "reason": exc.error_code.name})
        current_app.logger.info(f"Bulk category delete: {len(deleted)} deleted, {len(failed)} failed")
        return {"deleted_count": len(deleted), "deleted_ids": sorted(deleted), "failed": failed}

    return run_in_transaction(_op)
