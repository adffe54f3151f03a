"""Document requirement matrix: (loan type, employment type) → documents."""
from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping, Optional, Sequence

from loanbot.models import CatalogOption

logger = logging.getLogger(__name__)

SALARIED = "salaried"
SELF_EMPLOYED = "self_employed"

_SUBCATEGORIES: tuple[CatalogOption, ...] = (
    CatalogOption(
        key=SALARIED,
        display_name="Salaried",
        description="Working as an employee with regular salary",
    ),
    CatalogOption(
        key=SELF_EMPLOYED,
        display_name="Self-employed",
        description="Running own business or freelancing",
    ),
)

# Free-text rules, evaluated top to bottom; the first rule whose keyword
# appears in the lower-cased text wins.
CATEGORY_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("home", "housing"), "home"),
    (("business",), "business"),
    (("education", "study"), "education"),
    (("personal",), "personal"),
    (("vehicle", "car", "bike"), "vehicle"),
)

SUBCATEGORY_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("salaried", "employee", "job"), SALARIED),
    (("self", "business", "freelance"), SELF_EMPLOYED),
)

# ── Built-in matrix ────────────────────────────────────────────────────

DEFAULT_CATEGORIES: tuple[CatalogOption, ...] = (
    CatalogOption(key="home", display_name="Home",
                  description="Home/Housing Loan for purchasing or constructing property"),
    CatalogOption(key="business", display_name="Business",
                  description="Business Loan for starting or expanding business"),
    CatalogOption(key="education", display_name="Education",
                  description="Education Loan for higher studies"),
    CatalogOption(key="personal", display_name="Personal",
                  description="Personal Loan for personal expenses"),
    CatalogOption(key="vehicle", display_name="Vehicle",
                  description="Vehicle Loan for purchasing car/bike"),
)

DEFAULT_REQUIREMENTS: dict[str, dict[str, tuple[str, ...]]] = {
    "home": {
        SALARIED: (
            "Salary Slip (Last 3 months)",
            "Bank Statement (Last 6 months)",
            "Form 16 / IT Returns",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Property Documents",
            "NOC from Builder",
        ),
        SELF_EMPLOYED: (
            "ITR (Last 2 years)",
            "Bank Statement (Last 12 months)",
            "GST Returns (Last 12 months)",
            "Business License",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Property Documents",
            "NOC from Builder",
            "Business Financial Statements",
        ),
    },
    "business": {
        SALARIED: (
            "Salary Slip (Last 3 months)",
            "Bank Statement (Last 6 months)",
            "Form 16 / IT Returns",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Business Plan",
            "Project Report",
        ),
        SELF_EMPLOYED: (
            "ITR (Last 3 years)",
            "Bank Statement (Last 12 months)",
            "GST Returns (Last 12 months)",
            "Business License",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Business Plan",
            "Financial Projections",
            "Existing Business Financial Statements",
            "Partnership Deed (if applicable)",
        ),
    },
    "education": {
        SALARIED: (
            "Salary Slip (Last 3 months)",
            "Bank Statement (Last 6 months)",
            "Form 16 / IT Returns",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Admission Letter",
            "Fee Structure",
            "Academic Records",
        ),
        SELF_EMPLOYED: (
            "ITR (Last 2 years)",
            "Bank Statement (Last 12 months)",
            "Business License",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Admission Letter",
            "Fee Structure",
            "Academic Records",
            "Business Financial Statements",
        ),
    },
    "personal": {
        SALARIED: (
            "Salary Slip (Last 3 months)",
            "Bank Statement (Last 6 months)",
            "Form 16 / IT Returns",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
        ),
        SELF_EMPLOYED: (
            "ITR (Last 2 years)",
            "Bank Statement (Last 12 months)",
            "GST Returns (if applicable)",
            "Business License",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Business Financial Statements",
        ),
    },
    "vehicle": {
        SALARIED: (
            "Salary Slip (Last 3 months)",
            "Bank Statement (Last 6 months)",
            "Form 16 / IT Returns",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Vehicle Quotation",
            "Driving License",
        ),
        SELF_EMPLOYED: (
            "ITR (Last 2 years)",
            "Bank Statement (Last 12 months)",
            "Business License",
            "Identity Proof (Aadhar/PAN)",
            "Address Proof",
            "Vehicle Quotation",
            "Driving License",
            "Business Financial Statements",
        ),
    },
}

DEFAULT_DESCRIPTIONS: dict[str, str] = {
    "Salary Slip (Last 3 months)": "Upload your salary slips for the last 3 months",
    "Bank Statement (Last 6 months)": "Upload bank statements for the last 6 months",
    "Bank Statement (Last 12 months)": "Upload bank statements for the last 12 months",
    "Form 16 / IT Returns": "Upload your Form 16 or Income Tax Returns",
    "ITR (Last 2 years)": "Upload Income Tax Returns for the last 2 years",
    "ITR (Last 3 years)": "Upload Income Tax Returns for the last 3 years",
    "Identity Proof (Aadhar/PAN)": "Upload Aadhar Card or PAN Card",
    "Address Proof": "Upload address proof (Utility bill, Rent agreement, etc.)",
    "GST Returns (Last 12 months)": "Upload GST returns for the last 12 months",
    "Business License": "Upload your business registration/license document",
    "Property Documents": "Upload property-related documents (Sale deed, Agreement, etc.)",
    "NOC from Builder": "Upload No Objection Certificate from the builder",
    "Business Plan": "Upload your detailed business plan",
    "Project Report": "Upload project report with financial details",
    "Financial Projections": "Upload financial projections for your business",
    "Business Financial Statements": "Upload profit & loss, balance sheet for your business",
    "Partnership Deed (if applicable)": "Upload partnership deed if business is a partnership",
    "Admission Letter": "Upload admission letter from educational institution",
    "Fee Structure": "Upload fee structure from the institution",
    "Academic Records": "Upload previous academic records/transcripts",
    "Vehicle Quotation": "Upload vehicle quotation from dealer",
    "Driving License": "Upload your valid driving license",
}


def _match(
    text: Optional[str],
    options: Sequence[CatalogOption],
    rules: Sequence[tuple[tuple[str, ...], str]],
) -> Optional[str]:
    if not text:
        return None
    lowered = text.strip().lower()
    if not lowered:
        return None
    for opt in options:
        if lowered in (opt.key.lower(), opt.display_name.lower()):
            return opt.key
    known = {opt.key for opt in options}
    for keywords, key in rules:
        if key in known and any(word in lowered for word in keywords):
            return key
    return None


class RequirementCatalog:
    """Immutable lookup of required documents per loan and employment type.

    Built once at start-up and handed to the conversation machine. Every
    category must define a list for both employment types, so any pair the
    normalizers return is guaranteed to resolve.
    """

    def __init__(
        self,
        categories: Sequence[CatalogOption] = DEFAULT_CATEGORIES,
        requirements: Mapping[str, Mapping[str, Sequence[str]]] = DEFAULT_REQUIREMENTS,
        descriptions: Mapping[str, str] = DEFAULT_DESCRIPTIONS,
    ) -> None:
        self._categories = tuple(categories)
        table: dict[str, MappingProxyType] = {}
        for opt in self._categories:
            per_sub = requirements.get(opt.key)
            if per_sub is None:
                raise ValueError(f"No requirements defined for category {opt.key!r}")
            entry: dict[str, tuple[str, ...]] = {}
            for sub in _SUBCATEGORIES:
                items = tuple(per_sub.get(sub.key, ()))
                if not items:
                    raise ValueError(
                        f"No documents defined for {opt.key!r} / {sub.key!r}"
                    )
                entry[sub.key] = items
            table[opt.key] = MappingProxyType(entry)
        self._requirements = MappingProxyType(table)
        self._descriptions = MappingProxyType(dict(descriptions))
        logger.info(
            "Requirement catalog ready: %d categories", len(self._categories)
        )

    # ── listings ────────────────────────────────────────────────────

    def list_categories(self) -> list[CatalogOption]:
        return list(self._categories)

    def list_subcategories(self) -> list[CatalogOption]:
        return list(_SUBCATEGORIES)

    def category_name(self, key: str) -> str:
        for opt in self._categories:
            if opt.key == key:
                return opt.display_name
        return key

    def subcategory_name(self, key: str) -> str:
        for opt in _SUBCATEGORIES:
            if opt.key == key:
                return opt.display_name
        return key

    # ── normalization ───────────────────────────────────────────────

    def normalize_category(self, text: Optional[str]) -> Optional[str]:
        return _match(text, self._categories, CATEGORY_RULES)

    def normalize_subcategory(self, text: Optional[str]) -> Optional[str]:
        return _match(text, _SUBCATEGORIES, SUBCATEGORY_RULES)

    def is_valid_category(self, text: Optional[str]) -> bool:
        return self.normalize_category(text) is not None

    def is_valid_subcategory(self, text: Optional[str]) -> bool:
        return self.normalize_subcategory(text) is not None

    # ── lookups ─────────────────────────────────────────────────────

    def required_items(
        self, category: Optional[str], sub_category: Optional[str]
    ) -> Optional[tuple[str, ...]]:
        cat = self.normalize_category(category)
        sub = self.normalize_subcategory(sub_category)
        if not cat or not sub:
            logger.warning(
                "Invalid loan type or employment type: %r, %r", category, sub_category
            )
            return None
        items = self._requirements.get(cat, {}).get(sub)
        if items is None:
            logger.warning("No documents found for %s - %s", cat, sub)
        return items

    def describe(self, item_name: str) -> str:
        return self._descriptions.get(item_name) or f"Upload your {item_name}"

    def statistics(self) -> dict:
        return {
            "total_categories": len(self._categories),
            "total_subcategories": len(_SUBCATEGORIES),
            "document_counts": {
                cat: {sub: len(items) for sub, items in per_sub.items()}
                for cat, per_sub in self._requirements.items()
            },
        }
