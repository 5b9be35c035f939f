"""Canonical line item ids for free-text labels.

Labels found in board decks and spreadsheets vary widely ("Total Actual MRR",
"Monthly Recurring Revenue", "MRR"). The canonicalizer resolves them to a
shared vocabulary so facts from different documents land on the same key.
"""

from typing import Dict, Optional, Tuple

from rapidfuzz import fuzz

from financials.models.guide import CompanyGuide
from financials.utils.canonical_key import slugify_line_item
from financials.utils.logging import get_logger

LOGGER = get_logger(__name__)

STATIC_MAPPINGS: Dict[str, str] = {
    # MRR
    "total_actual_mrr": "mrr",
    "actual_mrr": "mrr",
    "monthly_recurring_revenue": "mrr",
    "monthly_revenue": "mrr",
    "total_mrr": "mrr",
    "mrr_total": "mrr",
    # ARR
    "annual_recurring_revenue": "arr",
    "total_arr": "arr",
    "actual_arr": "arr",
    "arr_total": "arr",
    "annualized_revenue": "arr",
    "annualized_recurring_revenue": "arr",
    # Customers
    "customer_count": "customers",
    "total_customers": "customers",
    "active_customers": "customers",
    "paying_customers": "customers",
    "active_users": "users",
    "total_users": "users",
    "registered_users": "users",
    # Cash and runway
    "cash": "cash_balance",
    "cash_position": "cash_balance",
    "bank_balance": "cash_balance",
    "available_cash": "cash_balance",
    "runway": "runway_months",
    "cash_runway": "runway_months",
    "months_runway": "runway_months",
    # Burn
    "burn": "burn_rate",
    "monthly_burn": "burn_rate",
    "net_burn": "burn_rate",
    "cash_burn": "burn_rate",
    # Growth
    "mrr_growth": "mrr_growth_mom",
    "arr_growth": "arr_growth_yoy",
    "revenue_growth": "revenue_growth_mom",
    # Retention
    "net_revenue_retention": "nrr",
    "net_retention": "nrr",
    "gross_revenue_retention": "grr",
    "gross_retention": "grr",
    "churn": "churn_rate",
    "customer_churn": "churn_rate",
    "logo_churn": "churn_rate",
    "monthly_churn": "churn_rate",
    # Revenue
    "total_revenue": "revenue",
    "net_revenue": "revenue",
    "gross_revenue": "revenue",
    # Costs
    "cost_of_goods_sold": "cogs",
    "cost_of_sales": "cogs",
    "cos": "cogs",
    "cost_of_revenue": "cogs",
    "operating_expenses": "opex",
    "operational_expenses": "opex",
    "total_opex": "opex",
    # Profitability
    "adjusted_ebitda": "ebitda",
    "ebitda_adjusted": "ebitda",
    "gross_profit_margin": "gross_margin",
    "gm": "gross_margin",
    "gpm": "gross_margin",
    "gross_income": "gross_profit",
    "net_profit": "net_income",
    "profit": "net_income",
    "bottom_line": "net_income",
    # ARPU
    "average_revenue_per_user": "arpu",
    "revenue_per_user": "arpu",
    "avg_revenue_per_customer": "arpu",
    # LTV / CAC
    "lifetime_value": "ltv",
    "customer_lifetime_value": "ltv",
    "clv": "ltv",
    "customer_acquisition_cost": "cac",
    "acquisition_cost": "cac",
}

CANONICAL_NAMES = frozenset([
    # Revenue
    "arr", "mrr", "revenue", "arpu", "nrr", "grr", "acv", "tcv", "bookings", "gmv", "tpv",
    # Customers
    "customers", "users", "accounts", "merchants", "churn_rate", "ltv", "cac", "payback_months",
    # Cash
    "cash_balance", "runway_months", "burn_rate", "working_capital",
    # Costs
    "cogs", "opex", "capex", "personnel_costs", "marketing_spend", "sales_costs",
    # Profitability
    "ebitda", "ebit", "gross_profit", "gross_margin", "net_income", "contribution_margin",
    # Growth
    "mrr_growth_mom", "arr_growth_yoy", "revenue_growth_mom", "customer_growth_mom",
])


class LineItemCanonicalizer:
    """Resolves labels to canonical line item ids.

    Lookup order:
    1. Guide synonym, exact match on the slugified label
    2. Guide synonym contained in the label (longest synonym wins)
    3. Known canonical name or static synonym table
    4. Fuzzy match against guide synonyms above the threshold
    5. The slugified label itself
    """

    def __init__(self, fuzzy_threshold: float = 0.9):
        self.fuzzy_threshold = fuzzy_threshold

    def canonicalize(self, label: str, guide: Optional[CompanyGuide] = None) -> str:
        """Return the canonical id for a label.

        Args:
            label: Raw label from a document
            guide: Optional company guide providing synonyms

        Returns:
            str: Canonical line item id (empty only for an empty label)
        """
        normalized = slugify_line_item(label)
        if not normalized:
            return ""

        synonyms = self._synonym_index(guide)

        if normalized in synonyms:
            return synonyms[normalized]

        contained = self._longest_contained(normalized, synonyms)
        if contained:
            return contained

        static = self.static_canonical(normalized)
        if static:
            return static

        fuzzy = self._fuzzy_match(normalized, synonyms)
        if fuzzy:
            LOGGER.debug(f"Fuzzy-matched line item '{label}' to '{fuzzy}'")
            return fuzzy

        return normalized

    @staticmethod
    def static_canonical(normalized: str) -> Optional[str]:
        if normalized in CANONICAL_NAMES:
            return normalized
        return STATIC_MAPPINGS.get(normalized)

    @staticmethod
    def _synonym_index(guide: Optional[CompanyGuide]) -> Dict[str, str]:
        """Map slugified synonym to canonical id, including each id itself."""
        index: Dict[str, str] = {}
        if guide is None:
            return index
        for canonical_id, labels in guide.metric_synonyms.items():
            index[slugify_line_item(canonical_id)] = canonical_id
            for label in labels:
                slug = slugify_line_item(label)
                if slug:
                    index.setdefault(slug, canonical_id)
        return index

    @staticmethod
    def _longest_contained(normalized: str, synonyms: Dict[str, str]) -> Optional[str]:
        padded = f"_{normalized}_"
        best: Optional[Tuple[int, str]] = None
        for slug, canonical_id in synonyms.items():
            if f"_{slug}_" in padded and (best is None or len(slug) > best[0]):
                best = (len(slug), canonical_id)
        return best[1] if best else None

    def _fuzzy_match(self, normalized: str, synonyms: Dict[str, str]) -> Optional[str]:
        best_score = 0.0
        best_id: Optional[str] = None
        for slug, canonical_id in synonyms.items():
            score = fuzz.ratio(normalized, slug) / 100.0
            if score > best_score:
                best_score = score
                best_id = canonical_id
        if best_id is not None and best_score >= self.fuzzy_threshold:
            return best_id
        return None

