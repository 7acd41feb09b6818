"""
APQP Document Traceability Service
Traceability chain view.

Builds the downstream chain for one product:
    Characteristic → PFMEA line → Control Plan items → SOP steps
                                                     → Inspection items

plus a coverage summary (which characteristics reach every document).
Read-only; goes through the Entity Store like the rest of the services.
"""

import logging

from app.core.records import EntityKind

logger = logging.getLogger(__name__)


def _documents(store, product_id):
    """Headers of every document generated for the product (first of each kind)."""
    docs = {"pfmea": None, "control_plan": None, "sop": None, "inspection_standard": None}
    pfmeas = store.get_by_parent(EntityKind.PFMEA_HEADER, product_id)
    if not pfmeas:
        return docs
    docs["pfmea"] = pfmeas[0]
    cps = store.get_by_parent(EntityKind.CONTROL_PLAN, pfmeas[0].id)
    if not cps:
        return docs
    docs["control_plan"] = cps[0]
    sops = store.get_by_parent(EntityKind.SOP, cps[0].id)
    standards = store.get_by_parent(EntityKind.INSPECTION_STANDARD, cps[0].id)
    docs["sop"] = sops[0] if sops else None
    docs["inspection_standard"] = standards[0] if standards else None
    return docs


def get_product_chain(store, product_id: str) -> dict:
    """
    Build the traceability chain for a product.

    Returns a dict with:
        - product: the product
        - documents: header of each generated document (or None)
        - chain: one entry per characteristic with its line, items, steps
          and inspection items nested
        - coverage: counts of characteristics reaching each document
    """
    product = store.require(EntityKind.PRODUCT, product_id)
    characteristics = store.get_by_parent(EntityKind.CHARACTERISTIC, product_id)
    docs = _documents(store, product_id)

    lines = store.get_by_parent(EntityKind.PFMEA_LINE, docs["pfmea"].id) if docs["pfmea"] else []
    cp_items = store.get_by_parent(EntityKind.CONTROL_PLAN_ITEM, docs["control_plan"].id) if docs["control_plan"] else []
    steps = store.get_by_parent(EntityKind.SOP_STEP, docs["sop"].id) if docs["sop"] else []
    inspections = (
        store.get_by_parent(EntityKind.INSPECTION_ITEM, docs["inspection_standard"].id)
        if docs["inspection_standard"] else []
    )

    steps_by_item, inspections_by_item = {}, {}
    for step in steps:
        steps_by_item.setdefault(step.linked_cp_item_id, []).append(step)
    for insp in inspections:
        inspections_by_item.setdefault(insp.linked_cp_item_id, []).append(insp)

    chain = []
    coverage = {"characteristics": len(characteristics), "pfmea": 0, "control_plan": 0,
                "sop": 0, "inspection": 0, "complete": 0}
    for char in characteristics:
        char_lines = [ln for ln in lines if ln.characteristic_id == char.id]
        entry = {"characteristic": char.to_dict(), "pfmea_lines": []}
        reached = {"pfmea": bool(char_lines), "control_plan": False, "sop": False, "inspection": False}
        for line in char_lines:
            items = [i for i in cp_items if i.pfmea_line_id == line.id]
            line_entry = {**line.to_dict(), "control_plan_items": []}
            for item in items:
                item_steps = steps_by_item.get(item.id, [])
                item_insps = inspections_by_item.get(item.id, [])
                reached["control_plan"] = True
                reached["sop"] = reached["sop"] or bool(item_steps)
                reached["inspection"] = reached["inspection"] or bool(item_insps)
                line_entry["control_plan_items"].append({
                    **item.to_dict(),
                    "sop_steps": [s.to_dict() for s in item_steps],
                    "inspection_items": [i.to_dict() for i in item_insps],
                })
            entry["pfmea_lines"].append(line_entry)
        for key, hit in reached.items():
            coverage[key] += int(hit)
        if all(reached.values()):
            coverage["complete"] += 1
        chain.append(entry)

    return {
        "product": product.to_dict(),
        "documents": {k: (v.to_dict() if v else None) for k, v in docs.items()},
        "chain": chain,
        "coverage": coverage,
    }
