"""
User administration and permission enforcement tests.
"""
import pytest

from bodega.permissions import ALL_PERMISSIONS, DEFAULT_ROLE_PERMISSIONS, get_effective_permissions

from conftest import PASSWORD, login


class TestEffectivePermissions:

    def test_admin_has_everything(self, admin_user):
        assert get_effective_permissions(admin_user) == set(ALL_PERMISSIONS)

    @pytest.mark.parametrize("role", sorted(DEFAULT_ROLE_PERMISSIONS))
    def test_role_defaults(self, make_user, role):
        user = make_user(f"u-{role}", role=role)
        assert get_effective_permissions(user) == set(DEFAULT_ROLE_PERMISSIONS[role])

    def test_grants_extend_role(self, make_user):
        user = make_user("extra", role="user", permissions=["create_products", "bogus"])
        perms = get_effective_permissions(user)
        assert "create_products" in perms
        assert "bogus" not in perms

    def test_inactive_user_has_none(self, make_user):
        assert get_effective_permissions(make_user("off", role="admin", is_active=False)) == set()

    def test_only_project_manager_approves_by_default(self):
        approvers = {role for role, perms in DEFAULT_ROLE_PERMISSIONS.items() if "approve_transfer_orders" in perms}
        assert approvers == {"project_manager"}


class TestUserRoutes:

    def test_create_and_login(self, app, admin_client):
        resp = admin_client.post("/api/users", json={
            "username": "op2",
            "password": PASSWORD,
            "role": "warehouse_operator",
            "cost_center": "CC001",
        })
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body["role"] == "warehouse_operator"
        assert "create_inventory" in body["effective_permissions"]
        assert "password" not in body and "password_hash" not in body

        assert login(app.test_client(), "op2").status_code == 200

    @pytest.mark.parametrize("payload,status", [
        ({"username": "x", "role": "user"}, 400),
        ({"username": "x", "role": "user", "password": "weak"}, 400),
        ({"username": "x", "role": "wizard", "password": PASSWORD}, 400),
        ({"role": "user", "password": PASSWORD}, 400),
        ({"username": "x", "role": "user", "password": PASSWORD, "permissions": ["fly"]}, 400),
        ({"username": "admin", "role": "user", "password": PASSWORD}, 409),
    ])
    def test_create_validation(self, admin_client, payload, status):
        assert admin_client.post("/api/users", json=payload).status_code == status

    def test_list_requires_view_users(self, admin_client, operator_client):
        resp = admin_client.get("/api/users")
        assert resp.status_code == 200
        assert {u["username"] for u in resp.get_json()} == {"admin", "operator"}

        resp = operator_client.get("/api/users")
        assert resp.status_code == 403
        assert resp.get_json() == {"error": "Permission denied", "required_permission": "view_users"}

    def test_read_own_record(self, operator_client, operator_user, admin_user):
        assert operator_client.get(f"/api/users/{operator_user.id}").status_code == 200
        assert operator_client.get(f"/api/users/{admin_user.id}").status_code == 403

    def test_permission_catalog(self, admin_client):
        resp = admin_client.get("/api/users/permissions")
        assert resp.status_code == 200
        codes = {p["code"] for p in resp.get_json()}
        assert codes == set(ALL_PERMISSIONS)

    def test_update_role_and_password(self, app, admin_client, plain_user):
        resp = admin_client.put(f"/api/users/{plain_user.id}", json={
            "role": "project_manager",
            "password": "NewPassw0rd!",
        })
        assert resp.status_code == 200
        assert "approve_transfer_orders" in resp.get_json()["effective_permissions"]

        c = app.test_client()
        assert login(c, "viewer").status_code == 401
        assert login(c, "viewer", "NewPassw0rd!").status_code == 200

    def test_update_unknown_user(self, admin_client):
        assert admin_client.put("/api/users/9999", json={"role": "user"}).status_code == 404

    def test_cannot_deactivate_self(self, admin_client, admin_user):
        assert admin_client.delete(f"/api/users/{admin_user.id}").status_code == 400

    def test_grant_permission_unlocks_route(self, app, admin_client, plain_user, db_session):
        viewer = app.test_client()
        login(viewer, "viewer")
        payload = {"name": "Granted", "sku": "G-1"}
        assert viewer.post("/api/products", json=payload).status_code == 403

        resp = admin_client.put(f"/api/users/{plain_user.id}/permissions", json={
            "permissions": ["create_products", "create_products"],
        })
        assert resp.status_code == 200
        assert resp.get_json()["permissions"] == ["create_products"]

        assert viewer.post("/api/products", json=payload).status_code == 201

    @pytest.mark.parametrize("payload", [
        {},
        {"permissions": "create_products"},
        {"permissions": ["not_a_permission"]},
        {"permissions": [], "managed_warehouses": "1"},
        {"permissions": [], "managed_warehouses": ["abc"]},
    ])
    def test_set_permissions_validation(self, admin_client, plain_user, payload):
        assert admin_client.put(f"/api/users/{plain_user.id}/permissions", json=payload).status_code == 400

    def test_set_managed_warehouses(self, admin_client, manager_user, cost_center):
        resp = admin_client.put(f"/api/users/{manager_user.id}/permissions", json={
            "permissions": [],
            "managed_warehouses": [cost_center["main"].id, str(cost_center["um2"].id)],
        })
        assert resp.status_code == 200
        assert resp.get_json()["managed_warehouses"] == [cost_center["main"].id, cost_center["um2"].id]

    def test_non_admin_cannot_manage(self, manager_client, plain_user):
        assert manager_client.put(f"/api/users/{plain_user.id}", json={"role": "admin"}).status_code == 403
        assert manager_client.delete(f"/api/users/{plain_user.id}").status_code == 403
