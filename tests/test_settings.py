import pytest
from pydantic import ValidationError

from catalog_pricing.config.settings import Settings, get_settings


def test_paths_derive_from_project_root(tmp_path):
    settings = Settings(project_root=tmp_path)
    assert settings.data_dir == tmp_path / 'data'
    assert settings.workbook_path == tmp_path / 'data' / 'pricing.xlsx'


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv('CATALOG_PRICING_DATA_DIR', str(tmp_path))
    monkeypatch.setenv('CATALOG_PRICING_GUARDRAIL_MIN_MARGIN_PCT', '40')
    monkeypatch.setenv('CATALOG_PRICING_STORE_BACKEND', 'xlsx')

    settings = Settings()

    assert settings.data_dir == tmp_path
    assert settings.workbook_path == tmp_path / 'pricing.xlsx'
    assert settings.guardrail_min_margin_pct == 40.0
    assert settings.store_backend == 'xlsx'


def test_invalid_env_value_names_the_field(monkeypatch):
    monkeypatch.setenv('CATALOG_PRICING_ROWS_PER_PAUSE', 'ten')
    with pytest.raises(ValidationError) as exc_info:
        Settings()
    assert exc_info.value.errors()[0]['loc'] == ('rows_per_pause',)


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
