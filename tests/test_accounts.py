"""
Account administration tests: CRUD, stats, details and feature sets.
"""
import pytest

from tests.conftest import (
    SUPERUSER_PASSWORD,
    SUPERUSER_USERNAME,
    TEST_USER_PASSWORD,
    TEST_USER_USERNAME,
    login,
    make_settings,
)

USERS_URL = "/api/admin/users"
ALL_FEATURES = ["mobile", "email", "aadhar", "pan", "vehicle-info", "vehicle-challan", "ip"]


def _assert_no_password(payload):
    assert "password" not in str(payload).lower()


# ============================================================================
# ACCESS CONTROL
# ============================================================================

@pytest.mark.accounts
class TestAccountAccess:
    """Only the privileged role reaches the admin routes."""

    def test_anonymous_is_unauthorized(self, client):
        response = client.get(USERS_URL)

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Unauthorized"}

    def test_managed_account_is_forbidden(self, user_client):
        for path in (USERS_URL, "/api/admin/stats"):
            response = user_client.get(path)
            assert response.status_code == 403
            assert response.json() == {"success": False, "error": "Forbidden", "code": "FORBIDDEN"}

    def test_managed_account_cannot_create(self, user_client):
        response = user_client.post(USERS_URL, json={
            "username": "mallory", "password": "mallory-pass", "name": "Mallory", "email": "m@example.com",
        })

        assert response.status_code == 403


# ============================================================================
# CREATE
# ============================================================================

@pytest.mark.accounts
class TestCreateAccount:

    def test_create_returns_account_without_password(self, admin_client):
        response = admin_client.post(USERS_URL, json={
            "username": "bob_smith",
            "password": "bob-password",
            "name": "Bob Smith",
            "email": "bob@example.com",
        })

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        user = data["user"]
        assert user["username"] == "bob_smith"
        assert user["status"] == "active"
        assert user["features"] == ALL_FEATURES
        assert user["createdAt"]
        _assert_no_password(data)

    def test_inputs_are_trimmed(self, admin_client):
        response = admin_client.post(USERS_URL, json={
            "username": "  carol  ",
            "password": "carol-pass",
            "name": "  Carol  ",
            "email": " carol@example.com ",
        })

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["username"] == "carol"
        assert user["name"] == "Carol"
        assert user["email"] == "carol@example.com"

    def test_inactive_status_is_kept(self, create_account):
        account = create_account(username="dormant", status="inactive")

        assert account["status"] == "inactive"

    def test_unknown_status_defaults_to_active(self, create_account):
        account = create_account(username="eager", status="superuser")

        assert account["status"] == "active"

    def test_duplicate_username(self, admin_client, create_account):
        create_account()

        response = admin_client.post(USERS_URL, json={
            "username": TEST_USER_USERNAME,
            "password": "another-pass",
            "name": "Another Alice",
            "email": "another@example.com",
        })

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Username or email already exists"}

    def test_duplicate_email(self, admin_client, create_account):
        create_account(email="shared@example.com")

        response = admin_client.post(USERS_URL, json={
            "username": "someone_else",
            "password": "another-pass",
            "name": "Someone",
            "email": "shared@example.com",
        })

        assert response.status_code == 400
        assert response.json()["error"] == "Username or email already exists"

    @pytest.mark.parametrize("overrides,message", [
        ({"username": ""}, "All fields are required"),
        ({"email": None}, "All fields are required"),
        ({"name": {"$ne": ""}}, "All fields are required"),
        ({"username": "ab"}, "Username must be 3-50 alphanumeric characters or underscores"),
        ({"username": "bad name!"}, "Username must be 3-50 alphanumeric characters or underscores"),
        ({"password": "12345"}, "Password must be 6-100 characters"),
        ({"password": "x" * 101}, "Password must be 6-100 characters"),
        ({"email": "not-an-email"}, "Invalid email format"),
        ({"name": "A"}, "Name must be 2-100 characters"),
    ])
    def test_validation_messages(self, admin_client, overrides, message):
        payload = {
            "username": "valid_user",
            "password": "valid-pass",
            "name": "Valid Name",
            "email": "valid@example.com",
        }
        payload.update(overrides)

        response = admin_client.post(USERS_URL, json=payload)

        assert response.status_code == 400
        assert response.json()["error"] == message


# ============================================================================
# LIST / UPDATE / DELETE
# ============================================================================

@pytest.mark.accounts
class TestManageAccounts:

    def test_list_newest_first_without_passwords(self, admin_client, create_account):
        create_account(username="first_user")
        create_account(username="second_user")

        response = admin_client.get(USERS_URL)

        assert response.status_code == 200
        usernames = [account["username"] for account in response.json()]
        assert usernames == ["second_user", "first_user"]
        _assert_no_password(response.json())

    def test_update_fields(self, admin_client, user_account):
        response = admin_client.put(f"{USERS_URL}/{user_account['id']}", json={
            "name": "Alice Renamed",
            "email": "alice.new@example.com",
            "status": "inactive",
        })

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["name"] == "Alice Renamed"
        assert user["email"] == "alice.new@example.com"
        assert user["status"] == "inactive"
        _assert_no_password(response.json())

    def test_update_password_allows_new_login(self, admin_client, make_client, user_account):
        response = admin_client.put(f"{USERS_URL}/{user_account['id']}", json={"password": "brand-new-pass"})
        assert response.status_code == 200

        assert login(make_client(), TEST_USER_USERNAME, TEST_USER_PASSWORD, "user").status_code == 401
        assert login(make_client(), TEST_USER_USERNAME, "brand-new-pass", "user").status_code == 200

    def test_update_to_taken_username(self, admin_client, create_account, user_account):
        create_account(username="bob_taken", email="bob@example.com")

        response = admin_client.put(f"{USERS_URL}/{user_account['id']}", json={"username": "bob_taken"})

        assert response.status_code == 400
        assert response.json()["error"] == "Username already exists"

    def test_update_to_taken_email(self, admin_client, create_account, user_account):
        create_account(username="bob_other", email="bob@example.com")

        response = admin_client.put(f"{USERS_URL}/{user_account['id']}", json={"email": "bob@example.com"})

        assert response.status_code == 400
        assert response.json()["error"] == "Email already exists"

    def test_update_keeping_own_username_is_allowed(self, admin_client, user_account):
        response = admin_client.put(f"{USERS_URL}/{user_account['id']}", json={"username": TEST_USER_USERNAME})

        assert response.status_code == 200

    def test_update_rejects_unknown_status(self, admin_client, user_account):
        response = admin_client.put(f"{USERS_URL}/{user_account['id']}", json={"status": "banned"})

        assert response.status_code == 400

    def test_update_rejects_non_string_fields(self, admin_client, user_account):
        response = admin_client.put(f"{USERS_URL}/{user_account['id']}", json={"name": {"$set": "x"}})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid input format"

    def test_update_unknown_account(self, admin_client):
        response = admin_client.put(f"{USERS_URL}/65f000000000000000000000", json={"name": "Nobody"})

        assert response.status_code == 404
        assert response.json()["error"] == "User not found"

    def test_delete_account(self, admin_client, user_account):
        response = admin_client.delete(f"{USERS_URL}/{user_account['id']}")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert admin_client.get(USERS_URL).json() == []

        again = admin_client.delete(f"{USERS_URL}/{user_account['id']}")
        assert again.status_code == 404
        assert again.json()["error"] == "User not found"

    def test_malformed_id_is_not_found(self, admin_client):
        response = admin_client.delete(f"{USERS_URL}/not-an-object-id")

        assert response.status_code == 404


# ============================================================================
# STATS / DETAILS / FEATURES
# ============================================================================

@pytest.mark.accounts
class TestStatsAndFeatures:

    def test_stats(self, admin_client, create_account):
        create_account(username="active_one")
        create_account(username="inactive_one", status="inactive")

        response = admin_client.get("/api/admin/stats")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "totalUsers": 2,
            "activeUsers": 1,
            "recentSearches": 0,
        }

    def test_features_update_keeps_only_known_names(self, admin_client, user_client, user_account):
        response = admin_client.put(
            f"{USERS_URL}/{user_account['id']}/features",
            json={"features": ["mobile", "teleport", "ip", "mobile", 42]},
        )

        assert response.status_code == 200
        assert response.json()["user"]["features"] == ["mobile", "ip"]

        features = user_client.get("/api/user/features")
        assert features.json() == {"success": True, "features": ["mobile", "ip"]}

    def test_features_must_be_a_list(self, admin_client, user_account):
        response = admin_client.put(
            f"{USERS_URL}/{user_account['id']}/features", json={"features": "mobile"}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Features must be an array"

    def test_empty_feature_set_means_all_features(self, admin_client, user_client, user_account):
        admin_client.put(f"{USERS_URL}/{user_account['id']}/features", json={"features": []})

        assert user_client.get("/api/user/features").json()["features"] == ALL_FEATURES

    def test_superuser_has_all_features(self, admin_client):
        response = admin_client.get("/api/user/features")

        assert response.json() == {"success": True, "features": ALL_FEATURES}

    def test_details_include_history_and_counts(self, admin_client, user_client, user_account, upstream):
        upstream.get("https://lookup.test/search", params={"email": "a@b.com"}).respond(json=[{"n": 1}])
        upstream.get("https://lookup.test/search", params={"id": "ABCDE1234F"}).respond(json={"n": 2})

        assert user_client.get("/api/search/email", params={"query": "a@b.com"}).status_code == 200
        assert user_client.get("/api/search/pan", params={"query": "ABCDE1234F"}).status_code == 200

        response = admin_client.get(f"{USERS_URL}/{user_account['id']}/details")

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["username"] == TEST_USER_USERNAME
        assert [entry["searchType"] for entry in data["searchHistory"]] == ["pan", "email"]
        assert data["searchHistory"][0]["searchQuery"] == "ABCDE1234F"
        assert data["searchHistory"][0]["userType"] == "user"
        assert data["searchStats"]["total"] == 2
        assert data["searchStats"]["email"] == 1
        assert data["searchStats"]["pan"] == 1
        assert data["searchStats"]["mobile"] == 0
        assert data["allFeatures"] == ALL_FEATURES
        _assert_no_password(data)

        stats = admin_client.get("/api/admin/stats").json()
        assert stats["recentSearches"] == 2

    def test_details_unknown_account(self, admin_client):
        response = admin_client.get(f"{USERS_URL}/65f000000000000000000000/details")

        assert response.status_code == 404


# ============================================================================
# OWNER / ADMIN ROLE MODEL
# ============================================================================

@pytest.mark.accounts
class TestOwnerAdminRoutes:

    @pytest.fixture
    def settings(self):
        return make_settings(role_model="owner_admin")

    def test_owner_manages_admins(self, admin_client, make_client):
        response = admin_client.post("/api/owner/admins", json={
            "username": "deputy",
            "password": "deputy-pass",
            "name": "Deputy Admin",
            "email": "deputy@example.com",
        })

        assert response.status_code == 201
        admin = response.json()["admin"]
        assert "features" not in admin

        stats = admin_client.get("/api/owner/stats").json()
        assert stats["totalAdmins"] == 1
        assert stats["activeAdmins"] == 1

        deputy = make_client()
        assert login(deputy, "deputy", "deputy-pass", "admin").status_code == 200
        forbidden = deputy.get("/api/owner/admins")
        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "FORBIDDEN"

    def test_no_feature_routes(self, admin_client):
        created = admin_client.post("/api/owner/admins", json={
            "username": "deputy",
            "password": "deputy-pass",
            "name": "Deputy Admin",
            "email": "deputy@example.com",
        }).json()["admin"]

        response = admin_client.get(f"/api/owner/admins/{created['id']}/details")

        assert response.status_code == 404

    def test_missing_admin_message(self, admin_client):
        response = admin_client.delete("/api/owner/admins/65f000000000000000000000")

        assert response.status_code == 404
        assert response.json()["error"] == "Admin not found"


@pytest.mark.accounts
def test_superuser_credentials_never_echo_password(client):
    response = login(client, SUPERUSER_USERNAME, SUPERUSER_PASSWORD, "admin")

    assert SUPERUSER_PASSWORD not in response.text
