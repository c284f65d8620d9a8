from decimal import Decimal

from dental_ledger.catalog import Procedure, ProcedureCatalog, load_catalog
from dental_ledger.config import get_settings


def test_packaged_catalog_loads():
    catalog = load_catalog(get_settings().catalog_path)
    assert len(catalog) > 20
    assert catalog.lookup_default_fee("d1110") == Decimal("125.00")
    assert catalog.lookup_description("D0150") == "Comprehensive oral evaluation"
    assert catalog.lookup_default_fee("D9999") is None
    assert catalog.lookup_default_fee("D0000") is None


def test_missing_catalog_is_empty(tmp_path, caplog):
    catalog = load_catalog(tmp_path / "missing.json")
    assert len(catalog) == 0
    assert "missing" in caplog.text


def test_invalid_catalog_is_empty(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    assert len(load_catalog(path)) == 0


def test_search_ranks_exact_code_first():
    catalog = ProcedureCatalog(
        [
            Procedure(code="D1110", description="Prophylaxis - adult", default_fee=Decimal("125.00")),
            Procedure(code="D1120", description="Prophylaxis - child", default_fee=Decimal("95.00")),
            Procedure(code="D7240", description="Extraction - erupted tooth", default_fee=Decimal("195.00")),
        ]
    )
    results = catalog.search("D1120")
    assert results[0].code == "D1120"
    assert len({procedure.code for procedure in results}) == len(results)

    codes = [procedure.code for procedure in catalog.search("prophylaxis child")]
    assert codes[0] == "D1120"
    assert catalog.search("   ") == []
