import json

from finance_tracker.config import CREDIT_CARD, DEFAULT_RULES, PLANS, AppConfig, load_settings


def test_defaults_without_file():
    cfg = AppConfig.load(None)
    assert cfg.rules == DEFAULT_RULES
    assert cfg.plan("free")["features"]["max_transactions"] == 500
    assert cfg.plan("gold") is None


def test_load_rules_and_plan_overrides(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "rules": [{"category": "Pets", "keywords": ["Chewy", "PetSmart"]}],
                "default_import_mode": CREDIT_CARD,
                "plans": {"free": {"max_transactions": 3}},
            }
        ),
        encoding="utf-8",
    )
    cfg = AppConfig.load(path)
    assert cfg.rules == [("Pets", ["chewy", "petsmart"])]
    assert cfg.default_import_mode == CREDIT_CARD
    assert cfg.plan("free")["features"]["max_transactions"] == 3
    # The module-level catalogue is never mutated.
    assert PLANS["free"]["features"]["max_transactions"] == 500


def test_missing_file_falls_back_to_defaults(tmp_path):
    cfg = AppConfig.load(tmp_path / "nope.json")
    assert cfg.default_import_mode == "bank_statement"


def test_load_settings_database_override(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/finance")
    settings = load_settings({"DATABASE": str(tmp_path / "x.sqlite"), "SECRET_KEY": "s"})
    assert settings["SQLALCHEMY_DATABASE_URI"] == f"sqlite:///{tmp_path / 'x.sqlite'}"
    assert settings["SECRET_KEY"] == "s"


def test_load_settings_rewrites_postgres_scheme(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgres://u:p@db/finance")
    settings = load_settings()
    assert settings["SQLALCHEMY_DATABASE_URI"] == "postgresql://u:p@db/finance"
    assert "SQLALCHEMY_ENGINE_OPTIONS" not in settings
