"""
Tenant configuration and per-tenant engine routing.
"""

from decimal import Decimal
from uuid import UUID

import pytest
import yaml
from sqlalchemy import text

from backoffice_kernel.config import TenantDirectory, TenantSettings
from backoffice_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_tenants_from_directory,
    is_postgres,
    registered_tenants,
    reset_engines,
    tenant_session_scope,
)
from backoffice_kernel.exceptions import TenantNotConfiguredError
from backoffice_kernel.services.settings_service import SettingsService


@pytest.fixture
def directory_file(tmp_path):
    path = tmp_path / "tenants.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "tenants": {
                    "acme": {
                        "database_url": f"sqlite:///{tmp_path / 'acme.db'}",
                        "settings": {
                            "vat_rate_percentage": "7.5",
                            "default_payment_terms_days": 30,
                        },
                    },
                    "globex": {
                        "database_url": f"sqlite:///{tmp_path / 'globex.db'}",
                    },
                }
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def tenants(directory_file):
    directory = TenantDirectory.from_yaml(directory_file)
    init_tenants_from_directory(directory)
    yield directory
    reset_engines()


class TestTenantSettings:
    def test_defaults(self):
        settings = TenantSettings.with_defaults()
        assert settings.vat_rate_percentage == Decimal("5")
        assert settings.default_payment_terms_days == 0
        assert settings.order_number_prefix == "PO"

    def test_rejects_out_of_range_vat(self):
        with pytest.raises(ValueError):
            TenantSettings(vat_rate_percentage=Decimal("101"))

    def test_rejects_negative_terms(self):
        with pytest.raises(ValueError):
            TenantSettings(default_payment_terms_days=-1)

    def test_from_dict_ignores_unknown_keys(self, captured_logs):
        settings = TenantSettings.from_dict({"vat_rate_percentage": "10", "colour": "blue"})
        assert settings.vat_rate_percentage == Decimal("10")
        warnings = [r for r in captured_logs() if r["message"] == "tenant_settings_unknown_keys"]
        assert warnings and warnings[0]["keys"] == ["colour"]


class TestTenantDirectory:
    def test_loads_yaml(self, directory_file):
        directory = TenantDirectory.from_yaml(directory_file)
        assert directory.company_ids() == ("acme", "globex")
        assert directory.settings("acme").vat_rate_percentage == Decimal("7.5")
        assert directory.settings("acme").default_payment_terms_days == 30
        assert directory.settings("globex").vat_rate_percentage == Decimal("5")
        assert "acme" in directory
        assert len(directory) == 2

    def test_unknown_company(self, directory_file):
        directory = TenantDirectory.from_yaml(directory_file)
        with pytest.raises(TenantNotConfiguredError) as exc_info:
            directory.database_url("initech")
        assert exc_info.value.code == "TENANT_NOT_CONFIGURED"

    def test_missing_database_url(self):
        with pytest.raises(ValueError, match="database_url"):
            TenantDirectory.from_dict({"tenants": {"acme": {"settings": {}}}})

    def test_missing_file_propagates(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TenantDirectory.from_yaml(tmp_path / "nope.yaml")


class TestTenantEngines:
    def test_every_tenant_is_registered(self, tenants):
        assert registered_tenants() == ("acme", "globex")
        assert not is_postgres("acme")

    def test_unknown_tenant_has_no_engine(self, tenants):
        with pytest.raises(TenantNotConfiguredError):
            get_engine("initech")
        with pytest.raises(TenantNotConfiguredError):
            get_session("initech")

    def test_tenants_are_isolated(self, tenants):
        actor_id = UUID("00000000-0000-4000-b000-0000000000ff")
        for company_id in tenants.company_ids():
            create_tables(company_id)

        with tenant_session_scope("acme") as session:
            SettingsService(session).set("vat_rate_percentage", "9", actor_id)

        with tenant_session_scope("acme") as session:
            assert SettingsService(session).vat_rate() == Decimal("9")
        with tenant_session_scope("globex") as session:
            assert SettingsService(session).get("vat_rate_percentage") is None
            assert SettingsService(session, tenants.settings("globex")).vat_rate() == Decimal("5")

    def test_session_scope_rolls_back_on_error(self, tenants):
        create_tables("acme")
        with pytest.raises(RuntimeError):
            with tenant_session_scope("acme") as session:
                session.execute(
                    text(
                        "INSERT INTO sequence_counters (id, name, current_value) "
                        "VALUES ('00000000-0000-4000-c000-000000000001', 'X-2025', 1)"
                    )
                )
                raise RuntimeError("boom")

        with tenant_session_scope("acme") as session:
            count = session.execute(text("SELECT count(*) FROM sequence_counters")).scalar_one()
            assert count == 0
