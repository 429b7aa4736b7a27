import pytest
from flask_jwt_extended import create_access_token

from roster_api import create_app
from roster_api.extensions import db
from roster_api.models.user import User


@pytest.fixture(scope="function")
def app(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    app = create_app(overrides={"TESTING": True, "MAIL_ENABLED": False})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _mk_user(email, name, *roles):
    u = User(email=email, full_name=name, status="active")
    u.set_password("secret")
    u.set_roles(*roles)
    db.session.add(u)
    db.session.commit()
    return u


@pytest.fixture
def users(app):
    return {
        "admin": _mk_user("admin@test.local", "Ada Admin", "admin"),
        "staff": _mk_user("staff@test.local", "Sam Staff", "staff"),
        "client": _mk_user("client@test.local", "Cleo Client", "client"),
        "employee": _mk_user("emp@test.local", "Eli Employee", "employee"),
        "employee2": _mk_user("emp2@test.local", "Eve Employee", "employee"),
    }


@pytest.fixture
def auth(users):
    """auth("client") -> headers carrying a bearer token for that user."""
    def _headers(who):
        u = users[who]
        token = create_access_token(identity=str(u.id), additional_claims={"roles": u.role_codes()})
        return {"Authorization": f"Bearer {token}"}
    return _headers
