"""
Legal Plan Limits Tests
=======================
"""

from datetime import datetime
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from insights_backend import legal_cases
from insights_backend.db.models import GeneratedLegalDocument, Subscription
from insights_backend.errors import LimitExceededError
from insights_backend.legal_limits import (
    UserLegalLimits, check_legal_limits, ensure_can_create_case, ensure_can_export_docx,
    get_legal_plan_limits, get_plan_display_name, limits_display,
)
from insights_backend.tests.helpers import auth_headers_for, set_legal_plan


class TestPlanTables:

    def test_paid_plans_are_unlimited(self):
        assert get_legal_plan_limits("pro_legal") == {"cases_limit": None, "documents_limit": None}
        assert get_legal_plan_limits("business_legal") == {"cases_limit": None, "documents_limit": None}

    def test_anything_else_is_free(self):
        assert get_legal_plan_limits("free") == {"cases_limit": 2, "documents_limit": 3}
        assert get_legal_plan_limits(None) == {"cases_limit": 2, "documents_limit": 3}

    def test_display_names(self):
        assert get_plan_display_name("pro_legal") == "Legal Pro"
        assert get_plan_display_name("business_legal") == "Legal Business"
        assert get_plan_display_name("free") == "Darmowy"


class TestLimitsDisplay:

    def test_partial_usage(self):
        display = limits_display(UserLegalLimits(cases_count=1, cases_limit=2, documents_this_month=3, documents_limit=3))
        assert display["cases_remaining"] == 1
        assert display["cases_percent_used"] == 50.0
        assert display["documents_remaining"] == 0
        assert display["documents_percent_used"] == 100.0
        assert display["is_unlimited"] is False
        assert display["plan_display_name"] == "Darmowy"

    def test_usage_over_limit_is_capped(self):
        display = limits_display(UserLegalLimits(cases_count=5, cases_limit=2))
        assert display["cases_remaining"] == 0
        assert display["cases_percent_used"] == 100.0

    def test_unlimited(self):
        display = limits_display(UserLegalLimits(plan_id="pro_legal", cases_count=40, cases_limit=None,
                                                 documents_limit=None))
        assert display["cases_remaining"] is None
        assert display["documents_remaining"] is None
        assert display["cases_percent_used"] == 0.0
        assert display["is_unlimited"] is True


class TestCheckLegalLimits:

    def test_free_user_defaults(self, db, user):
        limits = check_legal_limits(db, user.id)
        assert limits.plan_id == "free"
        assert limits.cases_limit == 2
        assert limits.documents_limit == 3
        assert limits.can_create_case is True
        assert limits.can_export_docx is False
        assert limits.features == {"basic_search": True, "view_regulations": True}

    def test_user_without_subscription_row(self, db, user):
        db.query(Subscription).filter(Subscription.user_id == user.id).delete()
        db.commit()
        limits = check_legal_limits(db, user.id)
        assert limits.plan_id == "free"
        assert limits.cases_limit == 2

    def test_case_limit_blocks_third_case(self, db, user):
        legal_cases.create_case(db, user.id, {"title": "Sprawa 1", "category": "cywilne"})
        legal_cases.create_case(db, user.id, {"title": "Sprawa 2", "category": "cywilne"})

        limits = check_legal_limits(db, user.id)
        assert limits.cases_count == 2
        assert limits.can_create_case is False
        with pytest.raises(LimitExceededError) as exc:
            ensure_can_create_case(db, user.id)
        assert "(2)" in exc.value.message

    def test_documents_counted_from_month_start(self, db, user):
        db.add_all([
            GeneratedLegalDocument(
                user_id=user.id, title="Stary", document_type="pismo", content="x",
                created_at=datetime(2025, 4, 30, 23, 0),
            ),
            GeneratedLegalDocument(
                user_id=user.id, title="Nowy", document_type="pismo", content="x",
                created_at=datetime(2025, 5, 2, 9, 0),
            ),
        ])
        db.commit()

        limits = check_legal_limits(db, user.id, now=datetime(2025, 5, 15, 12, 0))
        assert limits.documents_this_month == 1
        assert limits.can_generate_document is True

    def test_pro_plan_unlocks_features(self, db, user):
        set_legal_plan(db, user.id, "pro_legal")
        for i in range(3):
            legal_cases.create_case(db, user.id, {"title": f"Sprawa {i}", "category": "umowy"})

        limits = check_legal_limits(db, user.id)
        assert limits.plan_id == "pro_legal"
        assert limits.can_create_case is True
        assert limits.can_export_docx is True
        assert limits.features["docx_export"] is True
        assert ensure_can_export_docx(db, user.id) is not None


class TestLimitsEndpoint:

    def test_returns_usage_and_display(self, client):
        headers = auth_headers_for(client)
        client.post("/api/v1/legal/cases", json={"title": "Najem", "category": "nieruchomosci"}, headers=headers)

        response = client.get("/api/v1/legal/limits", headers=headers)
        assert response.status_code == 200
        data = response.json()
        assert data["plan_id"] == "free"
        assert data["cases_count"] == 1
        assert data["cases_remaining"] == 1
        assert data["plan_display_name"] == "Darmowy"

    def test_third_case_is_rejected_with_403(self, client):
        headers = auth_headers_for(client)
        for title in ("A", "B"):
            response = client.post("/api/v1/legal/cases", json={"title": title, "category": "cywilne"}, headers=headers)
            assert response.status_code == 201

        response = client.post("/api/v1/legal/cases", json={"title": "C", "category": "cywilne"}, headers=headers)
        assert response.status_code == 403
        assert "limit spraw" in response.json()["error"]
