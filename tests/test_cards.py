import pytest

from dental_ledger.billing import identify_brand, last_four


@pytest.mark.parametrize(
    "number, brand",
    [
        ("4111111111111111", "Visa"),
        ("4111", "Visa"),
        ("378282246310005", "American Express"),
        ("3411", "American Express"),
        ("5555555555554444", "Mastercard"),
        ("5105 1051 0510 5100", "Mastercard"),
        ("2221000000000009", "Mastercard"),
        ("272099", "Mastercard"),
        ("6011111111111117", "Discover"),
        ("6445644564456445", "Discover"),
        ("6221260000000000", "Discover"),
        ("6229250000000000", "Discover"),
        ("6240000000000000", "Discover"),
        ("6282000000000000", "Discover"),
        ("6500000000000002", "Discover"),
    ],
)
def test_identify_brand(number: str, brand: str) -> None:
    assert identify_brand(number) == brand


@pytest.mark.parametrize(
    "number",
    ["", "4", "411", "4-1", "272100", "622125", "6229260000000000", "5600000000000000", "3000000000000004"],
)
def test_unknown_or_short_input(number: str) -> None:
    assert identify_brand(number) is None


def test_brand_lookup_is_idempotent() -> None:
    number = "4111-1111-1111-1111"
    assert identify_brand(number) == identify_brand(number) == "Visa"


def test_last_four_ignores_separators() -> None:
    assert last_four("4111 1111 1111 1234") == "1234"
    assert last_four("12") == "12"
