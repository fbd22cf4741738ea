"""
认证接口测试
"""


class TestLogin:
    """登录测试"""

    def test_login_success(self, client, admin_user):
        response = client.post("/auth/login", json={"username": "admin", "password": "123456"})
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["access_token"]
        assert body["employee"]["role"] == "admin"

    def test_login_wrong_password(self, client, admin_user):
        response = client.post("/auth/login", json={"username": "admin", "password": "wrong"})
        assert response.status_code == 401
        assert response.json()["detail"] == "用户名或密码错误"

    def test_login_unknown_user(self, client):
        response = client.post("/auth/login", json={"username": "ghost", "password": "123456"})
        assert response.status_code == 401

    def test_login_inactive_user(self, client, counter_user, db_session):
        counter_user.is_active = False
        db_session.commit()
        response = client.post("/auth/login", json={"username": "counter1", "password": "123456"})
        assert response.status_code == 401


class TestCurrentUser:

    def test_me(self, client, counter_headers):
        response = client.get("/auth/me", headers=counter_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "前台小王"
        assert response.json()["role"] == "counter"

    def test_missing_token(self, client):
        response = client.get("/auth/me")
        assert response.status_code in (401, 403)

    def test_invalid_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401


class TestHealth:

    def test_root_and_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
        assert client.get("/").json()["version"] == "1.0.0"
