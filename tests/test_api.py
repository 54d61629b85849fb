from app.models.user import AdminPermission
from app.models.vehicle import ListingStatus, Vehicle
from app.services import features
from app.utils.security import create_jwt


def test_public_catalog_shows_only_approved(client, make_user, make_listing):
    owner = make_user()
    approved = make_listing(owner, status=ListingStatus.APPROVED)
    make_listing(owner)

    r = client.get("/api/vehicles")
    assert r.status_code == 200
    body = r.json()
    assert [it["id"] for it in body["items"]] == [approved.id]
    assert body["items"][0]["user"]["email"] is None
    assert body["pagination"] == {"page": 1, "limit": 12, "total": 1, "total_pages": 1}


def test_my_posts_requires_auth(client, make_user, make_listing, auth):
    owner = make_user()
    make_listing(owner)
    assert client.get("/api/vehicles", params={"my_posts": True}).status_code == 401

    r = client.get("/api/vehicles", params={"my_posts": True}, headers=auth(owner))
    assert r.json()["pagination"]["total"] == 1
    assert r.json()["items"][0]["user"]["email"] == owner.email


def test_create_validation_and_auth(client, make_user, listing_payload, auth):
    assert client.post("/api/vehicles", json=listing_payload()).status_code == 401

    user = make_user()
    r = client.post("/api/vehicles", json=listing_payload(price=0), headers=auth(user))
    assert r.status_code == 400
    assert r.json()["field"] == "price"

    r = client.post("/api/vehicles", json=listing_payload(), headers=auth(user))
    assert r.status_code == 201
    assert r.json()["item"]["status"] == "pending"


def test_owner_cannot_edit_after_approval(client, make_user, make_listing, auth):
    owner = make_user()
    v = make_listing(owner, status=ListingStatus.APPROVED)
    r = client.put(f"/api/vehicles/{v.id}", json={"title": "Changed"}, headers=auth(owner))
    assert r.status_code == 409
    assert client.delete(f"/api/vehicles/{v.id}", headers=auth(make_user())).status_code == 404


def test_blocked_or_bad_token(client, make_user, auth):
    assert client.get("/api/favorites", headers=auth(make_user(blocked=True))).status_code == 403
    assert client.get("/api/favorites", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_moderation_requires_permission(client, db, make_user, make_listing, auth):
    v = make_listing(make_user())
    admin, root = make_user(role="admin"), make_user(role="superadmin")

    assert client.post(f"/api/admin/vehicles/{v.id}/approve", headers=auth(make_user())).status_code == 403
    assert client.post(f"/api/admin/vehicles/{v.id}/approve", headers=auth(admin)).status_code == 403

    db.add(AdminPermission(admin_id=admin.id, feature="vehicle_management", can_access=True, can_edit=True))
    db.commit()
    r = client.post(f"/api/admin/vehicles/{v.id}/approve", headers=auth(admin))
    assert r.status_code == 200
    assert r.json()["status"] == "approved"

    r = client.post(f"/api/admin/vehicles/{v.id}/status", json={"status": "bogus"}, headers=auth(root))
    assert r.status_code == 400

    r = client.get("/api/admin/vehicles", params={"status": "approved"}, headers=auth(root))
    assert r.json()["items"][0]["user"]["email"] is not None


def test_admin_bulk_endpoints(client, db, make_user, make_listing, auth):
    root = make_user(role="superadmin")
    owner = make_user()
    a, b = make_listing(owner), make_listing(owner)

    r = client.post("/api/admin/vehicles/bulk-status", json={"ids": [a.id, b.id], "status": "approved"}, headers=auth(root))
    assert r.json()["updated"] == sorted([a.id, b.id])

    r = client.post("/api/admin/vehicles/bulk-delete", json={"ids": [a.id]}, headers=auth(root))
    assert r.json()["deleted"] == [a.id]
    assert client.post("/api/admin/vehicles/bulk-delete", json={"ids": []}, headers=auth(root)).status_code == 400

    db.expire_all()
    assert db.query(Vehicle).count() == 1


def test_favorites_flow(client, make_user, make_listing, auth):
    user = make_user()
    v = make_listing(make_user(), status=ListingStatus.APPROVED)
    headers = auth(user)

    assert client.post("/api/favorites", json={"vehicle_id": v.id}, headers=headers).status_code == 201
    assert client.post("/api/favorites", json={"vehicle_id": v.id}, headers=headers).status_code == 409
    assert client.get(f"/api/favorites/{v.id}/check", headers=headers).json()["is_favorite"] is True
    assert [it["id"] for it in client.get("/api/favorites", headers=headers).json()["items"]] == [v.id]
    assert client.delete(f"/api/favorites/{v.id}", headers=headers).status_code == 200
    assert client.delete(f"/api/favorites/{v.id}", headers=headers).status_code == 404


def test_subscription_flow(client, make_user, make_plan, listing_payload, auth):
    user = make_user()
    plan = make_plan(post_count=1)
    headers = auth(user)

    assert client.get("/api/subscriptions/plans").json()["items"][0]["id"] == plan.id
    assert client.post("/api/subscriptions", json={"plan_id": plan.id}, headers=headers).status_code == 201
    assert client.post("/api/subscriptions", json={"plan_id": plan.id}, headers=headers).status_code == 409
    assert client.get("/api/subscriptions/status", headers=headers).json()["active"] is True

    r = client.post("/api/vehicles", json=listing_payload(), headers=headers)
    assert r.json()["item"]["is_premium"] is True
    status = client.get("/api/subscriptions/status", headers=headers).json()
    assert status["active"] is False
    assert status["subscription"]["effective_status"] == "cancelled"
    assert client.delete("/api/subscriptions", headers=headers).status_code == 404


def test_purchase_rejects_malformed_plan_id(client, make_user, auth):
    r = client.post("/api/subscriptions", json={"plan_id": "abc"}, headers=auth(make_user()))
    assert r.status_code == 400
    assert r.json()["field"] == "plan_id"


def test_maintenance_mode_blocks_user_mutations_only(client, db, make_user, make_listing, listing_payload, auth):
    v = make_listing(make_user(), status=ListingStatus.APPROVED)
    features.update_features(db, {"maintenance_mode": True, "maintenance_message": "Back soon"})

    r = client.post("/api/vehicles", json=listing_payload(), headers=auth(make_user()))
    assert r.status_code == 503
    assert r.json()["error"] == "Back soon"

    user = make_user()
    assert client.post("/api/favorites", json={"vehicle_id": v.id}, headers=auth(user)).status_code == 503
    assert client.delete(f"/api/favorites/{v.id}", headers=auth(user)).status_code == 503
    assert client.get("/api/favorites", headers=auth(user)).status_code == 200

    r = client.post("/api/vehicles", json=listing_payload(), headers=auth(make_user(role="admin")))
    assert r.status_code == 201

    assert client.get("/api/settings/features").json()["features"]["maintenance_mode"] is True


def test_superadmin_manages_admins_and_permissions(client, make_user, auth):
    root, admin = make_user(role="superadmin"), make_user(role="admin")

    r = client.post("/api/admin/admins", json={"name": "Ops", "email": "ops@example.com"}, headers=auth(admin))
    assert r.status_code == 403
    r = client.post("/api/admin/admins", json={"name": "Ops", "email": "ops@example.com"}, headers=auth(root))
    assert r.status_code == 201
    new_admin_id = r.json()["user"]["id"]

    r = client.post(
        "/api/admin/permissions",
        json={"admin_id": new_admin_id, "feature": "settings_management", "can_access": True, "can_edit": True},
        headers=auth(root),
    )
    assert r.status_code == 200
    assert r.json()["permission"]["can_edit"] is True

    assert client.delete(f"/api/admin/admins/{root.id}", headers=auth(root)).status_code == 403
    assert client.get("/api/admin/permissions", headers=auth(admin)).status_code == 403


def test_admin_user_management_endpoints(client, make_user, auth):
    root = make_user(role="superadmin")
    headers = auth(root)

    r = client.post("/api/admin/users", json={"name": "Sunil", "email": "SUNIL@example.com"}, headers=headers)
    assert r.status_code == 201
    user_id = r.json()["user"]["id"]
    assert r.json()["user"]["email"] == "sunil@example.com"
    assert client.post("/api/admin/users", json={"name": "Dup", "email": "sunil@example.com"}, headers=headers).status_code == 409

    assert client.post(f"/api/admin/users/{user_id}/block", headers=headers).json()["is_blocked"] is True
    assert client.delete(f"/api/admin/users/{user_id}", headers=headers).status_code == 200
    assert client.get(f"/api/admin/users/{user_id}", headers=headers).status_code == 404


def test_expired_token_is_rejected(client, make_user):
    token = create_jwt({"sub": make_user().id}, ttl_sec=-10)
    assert client.get("/api/favorites", headers={"Authorization": f"Bearer {token}"}).status_code == 401
