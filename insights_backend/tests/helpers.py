"""Helpers shared by the API and service tests."""

from insights_backend.legal_limits import get_legal_plan_limits

TEST_WORKFLOW_AUTH = "test-workflow-secret"


def register(client, email="anna@example.pl", password="tajne-haslo", full_name="Anna Nowak"):
    response = client.post("/auth/register", json={
        "email": email, "password": password, "full_name": full_name,
    })
    assert response.status_code == 200, response.text
    return response.json()


def auth_headers_for(client, email="anna@example.pl"):
    tokens = register(client, email=email)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def user_id_for(client, headers):
    return client.get("/auth/me", headers=headers).json()["id"]


def set_legal_plan(db, user_id, plan_id):
    """Move a user to a legal plan the way the Stripe webhook does"""
    from insights_backend.db.models import Subscription

    row = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    limits = get_legal_plan_limits(plan_id)
    row.legal_plan_id = plan_id
    row.legal_cases_limit = limits["cases_limit"]
    row.legal_documents_limit = limits["documents_limit"]
    db.commit()
    return row
