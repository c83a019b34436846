from orderflow.models import AuditLog, User, Vendor


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------
def test_admin_creates_user(client, login, admin):
    login(admin)
    resp = client.post(
        "/users",
        json={"username": "pat", "password": "printer1", "role": "Production", "production_stage": "Printing"},
    )
    assert resp.status_code == 201, resp.get_json()
    user = resp.get_json()["user"]
    assert (user["role"], user["production_stage"]) == ("production", "printing")

    stored = User.query.filter_by(username="pat").one()
    assert stored.check_password("printer1")
    assert stored.password_hash != "printer1"
    assert AuditLog.query.filter_by(entity_type="User", action="CREATE").count() == 1


def test_user_validation(client, login, admin):
    login(admin)
    resp = client.post("/users", json={"username": "admin", "password": "123"})
    errors = resp.get_json()["errors"]
    assert "Username already exists" in errors
    assert "Password must be at least 6 characters" in errors
    assert "Role is required" in errors


def test_production_stage_cleared_for_other_roles(client, login, admin):
    login(admin)
    user_id = client.post(
        "/users", json={"username": "pat", "password": "printer1", "role": "production", "production_stage": "cutting"}
    ).get_json()["user"]["id"]
    resp = client.patch(f"/users/{user_id}", json={"role": "design"})
    assert resp.get_json()["user"]["production_stage"] is None


def test_admin_cannot_lock_themselves_out(client, login, admin):
    login(admin)
    resp = client.patch(f"/users/{admin.id}", json={"is_active": False})
    assert resp.status_code == 400
    resp = client.patch(f"/users/{admin.id}", json={"role": "sales"})
    assert resp.status_code == 400
    assert User.query.filter_by(username="admin").one().role == "admin"


def test_department_members(client, login, sales, make_user):
    make_user("dina", "design")
    make_user("dev", "viewer", department="design")
    make_user("old", "design", is_active=False)
    login(sales)
    body = client.get("/users/department/design").get_json()
    assert sorted(u["username"] for u in body["users"]) == ["dev", "dina"]
    assert client.get("/users/department/nowhere").status_code == 400


# ----------------------------------------------------------------------
# Vendors / substages
# ----------------------------------------------------------------------
def test_vendor_crud(client, login, sales):
    login(sales)
    resp = client.post("/settings/vendors", json={"vendor_name": "Shree Binders", "phone": "9000000001"})
    assert resp.status_code == 201
    vendor_id = resp.get_json()["vendor"]["id"]

    resp = client.post("/settings/vendors", json={"vendor_name": "Shree Binders", "phone": "9000000001"})
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "A vendor with this name and phone already exists"

    resp = client.patch(f"/settings/vendors/{vendor_id}", json={"city": "Pune"})
    assert resp.get_json()["vendor"]["city"] == "Pune"
    assert client.patch(f"/settings/vendors/{vendor_id}", json={"phone": ""}).status_code == 400

    assert client.delete(f"/settings/vendors/{vendor_id}").status_code == 200
    assert client.get("/settings/vendors").get_json()["vendors"] == []
    assert len(client.get("/settings/vendors?include_inactive=1").get_json()["vendors"]) == 1
    assert Vendor.query.one().is_active is False
    assert [a.action for a in AuditLog.query.filter_by(entity_type="Vendor").order_by(AuditLog.id)] == [
        "CREATE",
        "UPDATE",
        "DELETE",
    ]


def test_production_substages_setting(client, login, admin, make_user):
    login(admin)
    assert client.put("/settings/production-substages", json={"substages": []}).status_code == 400
    resp = client.put("/settings/production-substages", json={"substages": ["Printing", "UV Coating", "printing"]})
    assert resp.get_json()["substages"] == ["printing", "uv_coating"]

    login(make_user("pat", "production"))
    assert client.get("/settings/production-substages").get_json()["substages"] == ["printing", "uv_coating"]
    assert client.put("/settings/production-substages", json={"substages": ["x"]}).status_code == 403
