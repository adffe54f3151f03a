"""Tests for loading the requirement matrix from an Excel workbook."""
from __future__ import annotations

import pytest
from openpyxl import Workbook

from loanbot.catalog.parser import load_catalog, parse_catalog
from loanbot.catalog.requirements import SALARIED, SELF_EMPLOYED


def _write_workbook(path, rows):
    wb = Workbook()
    ws = wb.active
    ws.append(["Category", "Sub-category", "Document", "Description", "Category description"])
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


@pytest.fixture
def gold_workbook(tmp_path):
    return _write_workbook(
        tmp_path / "catalog.xlsx",
        [
            ("Gold", "Salaried", "Salary Slip (Last 3 months)", None, "Loan against gold"),
            ("Gold", "Salaried", "Gold Valuation", "Upload the jeweller's valuation", None),
            ("Gold", "Self-employed", "ITR (Last 2 years)", None, None),
            ("Gold", "Self employed", "Gold Valuation", None, None),
            (None, None, None, None, None),
            ("Home", "salaried", "Property Documents", None, None),
            ("Home", "self_employed", "Property Documents", None, None),
        ],
    )


def test_parse_catalog(gold_workbook) -> None:
    catalog = parse_catalog(gold_workbook)

    assert [c.key for c in catalog.list_categories()] == ["gold", "home"]
    assert catalog.list_categories()[0].description == "Loan against gold"
    assert catalog.required_items("gold", SALARIED) == (
        "Salary Slip (Last 3 months)",
        "Gold Valuation",
    )
    assert catalog.required_items("gold", SELF_EMPLOYED) == (
        "ITR (Last 2 years)",
        "Gold Valuation",
    )
    assert catalog.describe("Gold Valuation") == "Upload the jeweller's valuation"
    # Built-in descriptions still apply
    assert catalog.describe("ITR (Last 2 years)") == "Upload Income Tax Returns for the last 2 years"


def test_parse_catalog_home_keeps_default_description(gold_workbook) -> None:
    catalog = parse_catalog(gold_workbook)
    home = [c for c in catalog.list_categories() if c.key == "home"][0]
    assert home.description.startswith("Home/Housing Loan")


def test_parse_catalog_missing_pair_is_rejected(tmp_path) -> None:
    path = _write_workbook(
        tmp_path / "partial.xlsx",
        [("Gold", "Salaried", "Gold Valuation", None, None)],
    )
    with pytest.raises(ValueError):
        parse_catalog(path)


def test_parse_catalog_unknown_employment_type(tmp_path) -> None:
    path = _write_workbook(
        tmp_path / "bad.xlsx",
        [("Gold", "Retired", "Pension Slip", None, None)],
    )
    with pytest.raises(ValueError, match="Unknown employment type"):
        parse_catalog(path)


def test_load_catalog_falls_back_to_builtin(tmp_path) -> None:
    catalog = load_catalog(tmp_path / "missing.xlsx")
    assert len(catalog.list_categories()) == 5
    assert load_catalog(None).required_items("home", SALARIED)
