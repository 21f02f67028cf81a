"""
AddOnCalculator — statutory indirect-cost markups.

Two policies live here side by side. They answer different questions and give
different numbers for the same direct cost; neither is a special case of the
other, so they are kept as separate functions.

Policy A — line-item flat percentages (DUPA instantiation):
    OCM      = direct × OCM %
    CP       = direct × CP %          (off direct cost, not cascaded on OCM)
    subtotal = direct + OCM + CP
    VAT      = subtotal × VAT %
    total    = subtotal + VAT

Policy B — project-level EDC bracket schedule (indirect cost summary):
    OCM % / CP % picked from the Estimated Direct Cost bracket,
    total = EDC + OCM + CP            (no VAT; callers add it separately)
"""
from typing import Any, Dict, List, Tuple

from dupa_estimator.services.errors import ValidationError
from dupa_estimator.services.hauling_engine import round_half_up


# ---------------------------------------------------------------------------
# EDC bracket table (PHP): (upper bound inclusive, OCM %, CP %, description)
# ---------------------------------------------------------------------------
_EDC_BRACKETS: List[Tuple[float, float, float, str]] = [
    (5_000_000.0,   15.0, 10.0, "Up to ₱5 Million"),
    (50_000_000.0,  12.0,  8.0, "Above ₱5M up to ₱50M"),
    (150_000_000.0, 10.0,  8.0, "Above ₱50M up to ₱150M"),
]
_EDC_TOP_BRACKET: Tuple[float, float, str] = (8.0, 8.0, "Above ₱150M")


def _check_non_negative(**values: float) -> None:
    for name, value in values.items():
        if value < 0:
            raise ValidationError(f"{name} must be >= 0; got {value}", field=name)


# ---------------------------------------------------------------------------
# Policy A
# ---------------------------------------------------------------------------

def compute_line_item_add_ons(
    direct_cost: float,
    ocm_percent: float,
    cp_percent: float,
    vat_percent: float,
) -> Dict[str, float]:
    """
    Flat-percentage add-ons for a single DUPA line item.

    Example:
        compute_line_item_add_ons(100000, 15, 10, 12)
        → ocm 15000, cp 10000, subtotal 125000, vat 15000, total 140000
    """
    _check_non_negative(
        direct_cost=direct_cost,
        ocm_percent=ocm_percent,
        cp_percent=cp_percent,
        vat_percent=vat_percent,
    )
    ocm = direct_cost * (ocm_percent / 100)
    cp = direct_cost * (cp_percent / 100)
    subtotal = direct_cost + ocm + cp
    vat = subtotal * (vat_percent / 100)
    total = subtotal + vat
    return {
        "ocm": ocm,
        "cp": cp,
        "subtotal": subtotal,
        "vat": vat,
        "total": total,
    }


def add_on_breakdown_percentages(direct_cost: float, add_ons: Dict[str, float]) -> Dict[str, float]:
    """Share of the final total taken by direct cost, OCM, CP and VAT."""
    total = add_ons["total"]
    if total <= 0:
        return {"direct_cost_pct": 0.0, "ocm_pct": 0.0, "cp_pct": 0.0, "vat_pct": 0.0}
    return {
        "direct_cost_pct": (direct_cost / total) * 100,
        "ocm_pct": (add_ons["ocm"] / total) * 100,
        "cp_pct": (add_ons["cp"] / total) * 100,
        "vat_pct": (add_ons["vat"] / total) * 100,
    }


# ---------------------------------------------------------------------------
# Policy B
# ---------------------------------------------------------------------------

def indirect_cost_percentages(estimated_direct_cost: float) -> Dict[str, float]:
    """OCM / CP / combined percentages for the EDC bracket (upper bounds inclusive)."""
    _check_non_negative(estimated_direct_cost=estimated_direct_cost)
    for upper, ocm_pct, cp_pct, _ in _EDC_BRACKETS:
        if estimated_direct_cost <= upper:
            break
    else:
        ocm_pct, cp_pct, _ = _EDC_TOP_BRACKET
    return {
        "ocm_percentage": ocm_pct,
        "contractors_profit_percentage": cp_pct,
        "total_indirect_cost_percentage": ocm_pct + cp_pct,
    }


def edc_bracket_description(estimated_direct_cost: float) -> str:
    for upper, _, _, label in _EDC_BRACKETS:
        if estimated_direct_cost <= upper:
            return label
    return _EDC_TOP_BRACKET[2]


def compute_project_indirect_costs(estimated_direct_cost: float) -> Dict[str, Any]:
    """
    Project-level indirect costs from the EDC bracket schedule.

    Amounts are reported rounded to 2 decimals; percentages as whole numbers.
    """
    pct = indirect_cost_percentages(estimated_direct_cost)
    ocm_amount = estimated_direct_cost * (pct["ocm_percentage"] / 100)
    cp_amount = estimated_direct_cost * (pct["contractors_profit_percentage"] / 100)
    total_indirect = ocm_amount + cp_amount
    total_project = estimated_direct_cost + total_indirect

    return {
        "estimated_direct_cost": round_half_up(estimated_direct_cost),
        "ocm_percentage": pct["ocm_percentage"],
        "ocm_amount": round_half_up(ocm_amount),
        "contractors_profit_percentage": pct["contractors_profit_percentage"],
        "contractors_profit_amount": round_half_up(cp_amount),
        "total_indirect_cost_percentage": pct["total_indirect_cost_percentage"],
        "total_indirect_cost": round_half_up(total_indirect),
        "total_project_cost": round_half_up(total_project),
        "bracket": edc_bracket_description(estimated_direct_cost),
    }

