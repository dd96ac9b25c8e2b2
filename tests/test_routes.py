"""
API tests for the Benefit Rules Engine routes

The global services are pointed at an in-memory rule store; the client is
used without a context manager so the MongoDB lifespan never runs.
"""
import json

import pytest
from fastapi.testclient import TestClient

from benefits_engine.config import settings
from benefits_engine.main import app
from benefits_engine.services.eligibility_service import eligibility_service
from benefits_engine.services.import_export_service import import_export_service
from benefits_engine.services.import_manager import import_manager
from benefits_engine.services.performance_monitor import performance_monitor
from benefits_engine.services.rule_store import InMemoryRuleStore
from benefits_engine.services.versioning_service import versioning_service

from tests.conftest import make_citizenship_rule, make_package, make_rule, make_snap_income_rule

API = settings.api_prefix

OVER_LIMIT = {"householdIncome": 3000, "householdSize": 2, "citizenship": "us_citizen"}


@pytest.fixture
def client(monkeypatch):
    store = InMemoryRuleStore()
    monkeypatch.setattr(import_export_service, "store", store)
    monkeypatch.setattr(versioning_service, "store", store)
    monkeypatch.setattr(eligibility_service, "store", store)
    import_manager.clear_import_state()
    performance_monitor.clear()
    return TestClient(app)


def import_rules(client, rules, **options):
    response = client.post(f"{API}/rules/import", json={"rules": rules, "options": options})
    assert response.status_code == 200, response.text
    return response.json()


class TestService:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["version"] == settings.app_version

    def test_health_without_database(self, client):
        response = client.get("/health")
        assert response.json() == {"status": "healthy", "service": "benefit-rules-engine", "database": "disconnected"}


class TestRuleRoutes:

    def test_import_and_export(self, client):
        body = import_rules(client, [make_snap_income_rule()])
        assert body["success"] is True
        assert body["imported"] == 1

        response = client.get(f"{API}/rules/snap-federal-gross-income/export")
        assert response.status_code == 200
        assert response.json()["ruleLogic"] == make_snap_income_rule()["ruleLogic"]

    def test_import_result_uses_camel_case(self, client):
        body = import_rules(client, [make_rule("a")], dryRun=True)
        assert body["dryRun"] is True
        assert body["warnings"][0]["ruleId"] == "a"

    def test_create_mode_duplicate(self, client):
        body = import_rules(client, [make_rule("a"), make_rule("a")], mode="create")
        assert body["success"] is False
        assert body["failed"] == 1
        assert body["errors"][0]["code"] == "DUPLICATE_ID"

    def test_validate_option_alias(self, client):
        broken = make_rule("a", logic={"==": [1, 1], "!=": [1, 2]})
        assert import_rules(client, [broken])["failed"] == 1
        assert import_rules(client, [broken], validate=False)["imported"] == 1

    def test_import_with_key_is_coalesced(self, client):
        payload = {"rules": [make_rule("a")], "importKey": "batch-1"}
        first = client.post(f"{API}/rules/import", json=payload).json()
        second = client.post(f"{API}/rules/import", json=payload).json()

        assert first["imported"] == 1
        assert second["skipped"] == 1
        assert import_manager.was_recently_imported("batch-1")

    def test_export_missing_rule(self, client):
        assert client.get(f"{API}/rules/ghost/export").status_code == 404

    def test_export_without_tests(self, client):
        rule = make_snap_income_rule(testCases=[
            {"id": "t1", "description": "Under", "input": {"householdIncome": 1, "householdSize": 1}, "expected": True}
        ])
        import_rules(client, [rule])
        response = client.get(
            f"{API}/rules/snap-federal-gross-income/export", params={"include_tests": False}
        )
        assert "testCases" not in response.json()

    def test_program_export(self, client):
        import_rules(client, [make_snap_income_rule(), make_citizenship_rule()])
        response = client.get(f"{API}/rules/program/snap-federal/export")
        assert [r["id"] for r in response.json()] == ["snap-federal-citizenship", "snap-federal-gross-income"]

    def test_package_export_and_import(self, client):
        import_rules(client, [make_snap_income_rule(), make_citizenship_rule()])
        response = client.post(f"{API}/rules/export/package", json={
            "metadata": {"name": "SNAP Federal Rules", "jurisdiction": "US-FEDERAL"},
            "programId": "snap-federal",
        })
        assert response.status_code == 200
        package = response.json()
        assert len(package["rules"]) == 2

        reimport = client.post(f"{API}/rules/import/package", json={"package": package}).json()
        assert reimport["imported"] == 2

        package["rules"][0]["active"] = False
        tampered = client.post(f"{API}/rules/import/package", json={"package": package}).json()
        assert tampered["errors"][0]["code"] == "CHECKSUM_MISMATCH"

    def test_package_export_requires_name(self, client):
        response = client.post(f"{API}/rules/export/package", json={"metadata": {}, "programId": "snap-federal"})
        assert response.status_code == 400

    def test_package_export_requires_selection(self, client):
        response = client.post(f"{API}/rules/export/package", json={"metadata": {"name": "Empty"}})
        assert response.status_code == 400

    def test_import_json(self, client):
        content = json.dumps(make_package([make_rule("a")]))
        body = client.post(f"{API}/rules/import/json", json={"content": content}).json()
        assert body["imported"] == 1

        bad = client.post(f"{API}/rules/import/json", json={"content": "{oops"}).json()
        assert bad["errors"][0]["code"] == "INVALID_FORMAT"


class TestVersionRoutes:

    def test_version_lifecycle(self, client):
        import_rules(client, [make_snap_income_rule()])

        created = client.post(
            f"{API}/versions/snap-federal-gross-income", json={"level": "minor", "changes": "Raised limit", "author": "ana"}
        )
        assert created.status_code == 200
        assert created.json()["id"] == "snap-federal-gross-income-v1.1.0"

        versions = client.get(f"{API}/versions/snap-federal-gross-income").json()
        assert [v["version"] for v in versions] == ["1.1.0", "1.0.0"]

        changelog = client.get(f"{API}/versions/snap-federal-gross-income/changelog").json()
        assert changelog["ruleId"] == "snap-federal-gross-income-v1.1.0"
        assert "## Version 1.1.0" in changelog["changelog"]

        archived = client.post(f"{API}/versions/snap-federal-gross-income/archive", params={"keep": 1}).json()
        assert archived == {"ruleId": "snap-federal-gross-income", "archived": 1}

        deleted = client.delete(f"{API}/versions/snap-federal-gross-income/old", params={"keep": 1}).json()
        assert deleted == {"ruleId": "snap-federal-gross-income", "deleted": 1}

    def test_create_version_of_missing_rule(self, client):
        response = client.post(f"{API}/versions/ghost", json={"changes": "Nothing"})
        assert response.status_code == 404

    def test_create_version_requires_changes(self, client):
        response = client.post(f"{API}/versions/ghost", json={"level": "patch"})
        assert response.status_code == 422

    def test_migrate_program_without_migrations(self, client):
        import_rules(client, [make_snap_income_rule()])
        response = client.post(f"{API}/versions/program/snap-federal/migrate", json={})
        assert response.status_code == 200
        report = response.json()
        assert report["total"] == 1
        assert report["errors"][0]["ruleId"] == "snap-federal-gross-income"


class TestEligibilityRoutes:

    def test_evaluate_from_store(self, client):
        import_rules(client, [make_snap_income_rule(), make_citizenship_rule()])

        response = client.post(f"{API}/eligibility/evaluate", json={"profile": OVER_LIMIT})
        assert response.status_code == 200
        body = response.json()
        assert body["totalPrograms"] == 1
        assert body["notQualified"][0]["programId"] == "snap-federal"
        assert body["incomeHardStops"][0]["confidenceScore"] == 95
        assert body["incomeHardStops"][0]["explanation"]["calculations"][0]["value"] == "$2,292"

    def test_evaluate_inline_package(self, client):
        package = make_package([make_snap_income_rule(), make_citizenship_rule()])
        profile = {**OVER_LIMIT, "householdIncome": 1500}
        body = client.post(f"{API}/eligibility/evaluate", json={"profile": profile, "packages": [package]}).json()
        assert body["qualified"][0]["programName"] == "SNAP Federal Rules"

    def test_tampered_package_rejected(self, client):
        package = make_package([make_snap_income_rule()])
        package["rules"][0]["ruleLogic"] = {"==": [1, 1]}
        response = client.post(f"{API}/eligibility/evaluate", json={"profile": OVER_LIMIT, "packages": [package]})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "CHECKSUM_MISMATCH"

    def test_empty_profile(self, client):
        response = client.post(f"{API}/eligibility/evaluate", json={"profile": {}})
        assert response.status_code == 400


class TestPerformanceRoutes:

    def test_rule_profile_after_evaluation(self, client):
        import_rules(client, [make_snap_income_rule()])
        client.post(f"{API}/eligibility/evaluate", json={"profile": OVER_LIMIT})

        response = client.get(f"{API}/performance/rules/snap-federal-gross-income")
        assert response.status_code == 200
        assert response.json()["evaluationCount"] == 1

        report = client.get(f"{API}/performance/report").json()["report"]
        assert "Total Evaluations: 1" in report

    def test_unknown_rule_profile(self, client):
        assert client.get(f"{API}/performance/rules/ghost").status_code == 404

    def test_warnings(self, client):
        performance_monitor.record(500, rule_id="slow-rule")
        warnings = client.get(f"{API}/performance/warnings").json()
        assert any(w.get("ruleId") == "slow-rule" for w in warnings)
