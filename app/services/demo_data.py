"""
Demo master data for local runs (``flask seed-demo``).

Flush only; the CLI command commits.
"""

import logging

from app.models import db
from app.models.product import Characteristic, Product

logger = logging.getLogger(__name__)

DEMO_PRODUCT = {
    "code": "DEMO-BRK-001",
    "name": "브레이크 캘리퍼 브라켓",
    "customer": "Demo Motors",
    "vehicle_model": "DM-1",
    "part_number": "58110-DM100",
    "description": "Demo product for the APQP document chain",
}

DEMO_CHARACTERISTICS = [
    {"name": "장착홀 직경", "type": "product", "category": "critical",
     "lsl": 12.0, "usl": 12.1, "unit": "mm", "measurement_method": "3차원 측정기(CMM)",
     "process_name": "CNC 가공"},
    {"name": "브라켓 두께", "type": "product", "category": "major",
     "lsl": 9.8, "usl": 10.2, "unit": "mm", "measurement_method": "마이크로미터 측정",
     "process_name": "CNC 가공"},
    {"name": "볼트 체결 토크", "type": "process", "category": "critical",
     "lsl": 90, "usl": 110, "unit": "N·m", "measurement_method": "토크 검사기 측정",
     "process_name": "조립"},
    {"name": "도장 외관", "type": "product", "category": "minor",
     "specification": "한도 샘플 기준", "measurement_method": "육안 검사",
     "process_name": "도장"},
    {"name": "방청 와셔 유무", "type": "product", "category": "major",
     "measurement_method": "Poka-Yoke 센서 감지", "process_name": "조립"},
]


def seed_demo_product():
    """Return (product, created)."""
    product = Product.query.filter_by(code=DEMO_PRODUCT["code"]).first()
    if product is not None:
        return product, False

    product = Product(**DEMO_PRODUCT)
    db.session.add(product)
    db.session.flush()
    for order, spec in enumerate(DEMO_CHARACTERISTICS, start=1):
        db.session.add(Characteristic(product_id=product.id, sort_order=order, **spec))
    db.session.flush()
    logger.info("Seeded demo product %s with %d characteristics",
                product.code, len(DEMO_CHARACTERISTICS), extra={"product_id": product.id})
    return product, True
