from datetime import date, datetime
from io import BytesIO
from zoneinfo import ZoneInfo

import pytest
from openpyxl import load_workbook

from controle_pt.services.export import build_report_workbook, sanitize_cell, truncation_warning


@pytest.mark.parametrize(
    "value,expected",
    [
        ("=1+1", "'=1+1"),
        ("+55 21 9999", "'+55 21 9999"),
        ("-10", "'-10"),
        ("@cmd", "'@cmd"),
        ("\tTAB", "'\tTAB"),
        ("Texto normal", "Texto normal"),
        ("", ""),
        (None, None),
        (42, 42),
        (1.5, 1.5),
    ],
)
def test_sanitize_cell(value, expected):
    assert sanitize_cell(value) == expected


def test_truncation_warning_mentions_limit_and_total():
    message = truncation_warning(12000, 10000)
    assert "10000" in message
    assert "12000" in message


def test_workbook_formats_times_in_zone():
    rows = [
        {
            "numero_pt": "PT-1",
            "tipo_pt": "ptt",
            "data_servico": date(2025, 1, 10),
            "frentes": ["Norte", "=Sul"],
            "disciplinas": [],
            "hora_solicitacao": datetime(2025, 1, 10, 10, 45),
            "efetivo_qtd": 3,
            "atraso_etm": 15,
            "hh_improdutivo": 45,
        }
    ]
    content, filename, truncated = build_report_workbook(rows, 10, zone=ZoneInfo("America/Sao_Paulo"))
    assert not truncated
    assert filename.endswith(".xlsx")

    ws = load_workbook(BytesIO(content))["Relatorio PTs"]
    header = [cell.value for cell in ws[1]]
    row = dict(zip(header, [cell.value for cell in ws[2]]))
    assert row["Tipo"] == "PTT"
    assert row["Data Servico"] == "10/01/2025"
    assert row["Frente(s)"] == "Norte, '=Sul"
    assert row["Disciplina(s)"] == "-"
    assert row["Hora Solicitacao"] == "07:45"
    assert row["HH Improdutivo (min)"] == 45
