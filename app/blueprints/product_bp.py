"""
APQP Document Traceability Service
Product blueprint: Product and Characteristic CRUD endpoints.

Endpoints summary:
    PRODUCT         /api/v1/products                              GET, POST
                    /api/v1/products/<id>                         GET, PUT, DELETE

    CHARACTERISTIC  /api/v1/products/<id>/characteristics         GET, POST
                    /api/v1/characteristics/<id>                  GET, PUT, DELETE

Editing a characteristic does not touch documents already generated from it.
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import func

from app.blueprints import paginate_query
from app.core.exceptions import ConflictError
from app.models import db
from app.models.product import CHARACTERISTIC_CATEGORIES, CHARACTERISTIC_TYPES, Characteristic, Product
from app.utils.errors import E, api_error
from app.utils.helpers import db_commit_or_error, get_or_404, json_body, parse_number

logger = logging.getLogger(__name__)

product_bp = Blueprint("product", __name__, url_prefix="/api/v1")

PRODUCT_FIELDS = ("code", "name", "customer", "vehicle_model", "part_number", "description")
CHARACTERISTIC_TEXT_FIELDS = ("name", "type", "category", "specification", "unit",
                              "measurement_method", "process_name")


# ── Helpers ──────────────────────────────────────────────────────────────────

def _str(value):
    return str(value).strip() if value is not None else ""


def _ensure_unique_code(code, exclude_id=None):
    """Raise ConflictError when another product already uses *code*."""
    q = Product.query.filter(Product.code == code)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first():
        raise ConflictError("Product", "code", code)


def _validate_characteristic(data, current=None):
    """Return (values, error) for a characteristic payload."""
    values = {}
    for field in CHARACTERISTIC_TEXT_FIELDS:
        if field in data:
            values[field] = _str(data[field]) or None

    if current is None and not values.get("name"):
        return None, api_error(E.VALIDATION_REQUIRED, "name is required")
    if "name" in values and not values["name"]:
        return None, api_error(E.VALIDATION_REQUIRED, "name cannot be empty")

    if "type" in values:
        values["type"] = values["type"] or "product"
        if values["type"] not in CHARACTERISTIC_TYPES:
            return None, api_error(E.VALIDATION_INVALID,
                                   f"type must be one of: {', '.join(sorted(CHARACTERISTIC_TYPES))}")
    if "category" in values:
        values["category"] = values["category"] or "major"
        if values["category"] not in CHARACTERISTIC_CATEGORIES:
            return None, api_error(E.VALIDATION_INVALID,
                                   f"category must be one of: {', '.join(sorted(CHARACTERISTIC_CATEGORIES))}")

    try:
        for field in ("lsl", "usl"):
            if field in data:
                values[field] = parse_number(data[field], field)
    except ValueError as exc:
        return None, api_error(E.VALIDATION_INVALID, str(exc))

    lsl = values.get("lsl", current.lsl if current else None)
    usl = values.get("usl", current.usl if current else None)
    if lsl is not None and usl is not None and lsl > usl:
        return None, api_error(E.VALIDATION_INVALID, "lsl must not exceed usl")

    if "sort_order" in data:
        try:
            values["sort_order"] = int(data["sort_order"])
        except (TypeError, ValueError):
            return None, api_error(E.VALIDATION_INVALID, "sort_order must be an integer")
    return values, None


# ═══════════════════════════════════════════════════════════════════════════
#  PRODUCT CRUD
# ═══════════════════════════════════════════════════════════════════════════

@product_bp.route("/products", methods=["GET"])
def list_products():
    q = Product.query
    search = request.args.get("q")
    if search:
        like = f"%{search}%"
        q = q.filter(db.or_(Product.code.ilike(like), Product.name.ilike(like),
                            Product.part_number.ilike(like)))
    customer = request.args.get("customer")
    if customer:
        q = q.filter_by(customer=customer)

    products, total = paginate_query(q.order_by(Product.created_at.desc()))
    return jsonify({"items": [p.to_dict() for p in products], "total": total})


@product_bp.route("/products", methods=["POST"])
def create_product():
    data = json_body()
    code, name = _str(data.get("code")), _str(data.get("name"))
    if not code or not name:
        return api_error(E.VALIDATION_REQUIRED, "code and name are required")
    try:
        _ensure_unique_code(code)
    except ConflictError as exc:
        return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})

    product = Product(**{f: _str(data.get(f)) for f in PRODUCT_FIELDS})
    db.session.add(product)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Product created: %s (%s)", product.code, product.id, extra={"product_id": product.id})
    return jsonify(product.to_dict()), 201


@product_bp.route("/products/<product_id>", methods=["GET"])
def get_product(product_id):
    product, err = get_or_404(Product, product_id)
    if err:
        return err
    return jsonify(product.to_dict(include_children=True))


@product_bp.route("/products/<product_id>", methods=["PUT"])
def update_product(product_id):
    product, err = get_or_404(Product, product_id)
    if err:
        return err
    data = json_body()

    if "code" in data:
        code = _str(data["code"])
        if not code:
            return api_error(E.VALIDATION_REQUIRED, "code cannot be empty")
        try:
            _ensure_unique_code(code, exclude_id=product.id)
        except ConflictError as exc:
            return api_error(E.CONFLICT_DUPLICATE, str(exc), details={"field": exc.field})
    if "name" in data and not _str(data["name"]):
        return api_error(E.VALIDATION_REQUIRED, "name cannot be empty")

    for field in PRODUCT_FIELDS:
        if field in data:
            setattr(product, field, _str(data[field]))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(product.to_dict())


@product_bp.route("/products/<product_id>", methods=["DELETE"])
def delete_product(product_id):
    product, err = get_or_404(Product, product_id)
    if err:
        return err
    db.session.delete(product)
    err = db_commit_or_error()
    if err:
        return err
    logger.info("Product deleted with all documents: %s", product_id, extra={"product_id": product_id})
    return jsonify({"message": "Product deleted", "id": product_id}), 200


# ═══════════════════════════════════════════════════════════════════════════
#  CHARACTERISTIC CRUD
# ═══════════════════════════════════════════════════════════════════════════

@product_bp.route("/products/<product_id>/characteristics", methods=["GET"])
def list_characteristics(product_id):
    product, err = get_or_404(Product, product_id)
    if err:
        return err
    q = Characteristic.query.filter_by(product_id=product.id)
    category = request.args.get("category")
    if category:
        q = q.filter_by(category=category)
    items = q.order_by(Characteristic.sort_order, Characteristic.created_at).all()
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)})


@product_bp.route("/products/<product_id>/characteristics", methods=["POST"])
def create_characteristic(product_id):
    product, err = get_or_404(Product, product_id)
    if err:
        return err
    data = json_body()
    values, err = _validate_characteristic(data)
    if err:
        return err

    if "sort_order" not in values:
        current_max = (db.session.query(func.max(Characteristic.sort_order))
                       .filter_by(product_id=product.id).scalar())
        values["sort_order"] = (current_max or 0) + 1

    char = Characteristic(product_id=product.id, **values)
    db.session.add(char)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(char.to_dict()), 201


@product_bp.route("/characteristics/<char_id>", methods=["GET"])
def get_characteristic(char_id):
    char, err = get_or_404(Characteristic, char_id)
    if err:
        return err
    return jsonify(char.to_dict())


@product_bp.route("/characteristics/<char_id>", methods=["PUT"])
def update_characteristic(char_id):
    char, err = get_or_404(Characteristic, char_id)
    if err:
        return err
    data = json_body()
    values, err = _validate_characteristic(data, current=char)
    if err:
        return err
    for field, value in values.items():
        setattr(char, field, value)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(char.to_dict())


@product_bp.route("/characteristics/<char_id>", methods=["DELETE"])
def delete_characteristic(char_id):
    char, err = get_or_404(Characteristic, char_id)
    if err:
        return err
    db.session.delete(char)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Characteristic deleted", "id": char_id}), 200
