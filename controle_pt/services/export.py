from datetime import date, datetime, timezone, tzinfo
from io import BytesIO
from typing import Any, Optional, Tuple

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

# Prefixos que o Excel interpreta como formula
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r", "\n")

REPORT_COLUMNS = [
    ("Numero PT", "numero_pt"),
    ("Tipo", "tipo_pt"),
    ("Data Servico", "data_servico"),
    ("Frente(s)", "frentes"),
    ("Disciplina(s)", "disciplinas"),
    ("Encarregado", "encarregado_nome"),
    ("Matricula", "encarregado_matricula"),
    ("Qtd. Efetivo", "efetivo_qtd"),
    ("Descricao Operacao", "descricao_operacao"),
    ("Hora Solicitacao", "hora_solicitacao"),
    ("Hora Chegada", "hora_chegada"),
    ("Hora Liberacao", "hora_liberacao"),
    ("Status", "status"),
    ("Responsavel Atraso", "responsavel_atraso"),
    ("Atraso ETM (min)", "atraso_etm"),
    ("Atraso Petrobras (min)", "atraso_petrobras"),
    ("HH Improdutivo (min)", "hh_improdutivo"),
    ("Causa Atraso", "causa_atraso"),
]


def sanitize_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (bool, int, float)):
        return value
    text = str(value)
    if text and text.startswith(FORMULA_PREFIXES):
        return f"'{text}"
    return text


def truncation_warning(original_count: int, max_rows: int) -> str:
    return (
        f"O relatorio foi limitado a {max_rows} linhas. "
        f"O total de registros ({original_count}) excede o limite. "
        "Aplique filtros para reduzir o periodo ou refinar a busca."
    )


def _format_value(key: str, value: Any, zone: Optional[tzinfo]) -> Any:
    if value is None:
        return "-" if key != "responsavel_atraso" else "Sem atraso"
    if isinstance(value, datetime):
        moment = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return moment.astimezone(zone).strftime("%H:%M") if zone else moment.strftime("%H:%M")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return value


def _cell(key: str, value: Any, zone: Optional[tzinfo]) -> Any:
    if isinstance(value, list):
        return ", ".join(sanitize_cell(item) for item in value) or "-"
    if isinstance(value, str):
        return sanitize_cell(value.upper() if key == "tipo_pt" else value)
    return _format_value(key, value, zone)


def build_report_workbook(
    rows: list[dict],
    max_rows: int,
    zone: Optional[tzinfo] = None,
) -> Tuple[bytes, str, bool]:
    original_count = len(rows)
    truncated = original_count > max_rows
    rows = rows[:max_rows]

    wb = Workbook()
    ws = wb.active
    ws.title = "Relatorio PTs"
    ws.append([label for label, _ in REPORT_COLUMNS])
    for row in rows:
        ws.append([_cell(key, row.get(key), zone) for _, key in REPORT_COLUMNS])

    ws.freeze_panes = "A2"
    for idx, (label, _) in enumerate(REPORT_COLUMNS, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = max(len(label), 15)

    info = wb.create_sheet("INFO")
    info["A1"] = "Gerado em"
    info["B1"] = datetime.utcnow().isoformat()
    info["A2"] = "Registros"
    info["B2"] = len(rows)
    if truncated:
        info["A3"] = "Aviso"
        info["B3"] = truncation_warning(original_count, max_rows)

    out = BytesIO()
    wb.save(out)
    filename = f"relatorio_pts_{datetime.utcnow().strftime('%Y-%m-%d')}.xlsx"
    return out.getvalue(), filename, truncated
