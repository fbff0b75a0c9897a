from datetime import datetime

import pytest

from nubifica.services.formatting import amount_in_words, format_cop, format_es_co_timestamp


@pytest.mark.parametrize(
    "amount, text",
    [(1666000, "$ 1.666.000"), (0, "$ 0"), (59500.4, "$ 59.500"), (999.5, "$ 1.000"), (-2500, "-$ 2.500")],
)
def test_format_cop(amount, text):
    assert format_cop(amount) == text


@pytest.mark.parametrize(
    "amount, words",
    [
        (0, "CERO"),
        (1, "UN"),
        (100, "CIEN"),
        (115, "CIENTO QUINCE"),
        (1000, "MIL"),
        (59500, "CINCUENTA Y NUEVE MIL QUINIENTOS"),
        (1666000, "UN MILLON SEISCIENTOS SESENTA Y SEIS MIL"),
        (2000000, "DOS MILLONES"),
        (-21, "MENOS VEINTE Y UN"),
    ],
)
def test_amount_in_words(amount, words):
    assert amount_in_words(amount) == words


def test_es_co_timestamp():
    assert format_es_co_timestamp(datetime(2026, 10, 19, 15, 5, 9)) == "19/10/2026, 3:05:09 p. m."
    assert format_es_co_timestamp(datetime(2026, 1, 2, 0, 30, 0)) == "2/1/2026, 12:30:00 a. m."
