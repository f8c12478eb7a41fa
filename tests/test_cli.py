import json

from finance_tracker.cli import main

CARD_CSV = """Transaction Date,Description,Amount
01/03/2024,STARBUCKS #55,4.50
01/09/2024,CORNER DELI 7781,9.25
01/10/2024,CORNER DELI 7781,11.00
01/20/2024,PAYMENT THANK YOU,-24.75
02/02/2024,AMAZON MKTPLACE,19.99
"""


def test_cli_prints_report_with_groups(tmp_path, capsys):
    src = tmp_path / "card.csv"
    src.write_text(CARD_CSV, encoding="utf-8")
    out = tmp_path / "out" / "summary.json"

    code = main(["--input", str(src), "--mode", "credit_card", "--groups", "--to", "2024-01-31", "--json", str(out)])
    assert code == 0

    printed = capsys.readouterr().out
    assert "Personal Finance Summary" in printed
    assert "Uncategorized Merchants" in printed
    assert "CORNER DELI 7781" in printed

    summary = json.loads(out.read_text(encoding="utf-8"))
    assert summary["totals"]["expense"] == 24.75
    assert summary["totals"]["income"] == 0.0
    assert summary["uncategorized_groups"][0]["merchant"] == "CORNER DELI 7781"


def test_cli_missing_file_returns_error(tmp_path):
    assert main(["--input", str(tmp_path / "missing.csv")]) == 1
