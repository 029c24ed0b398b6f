"""
Pytest fixtures for Bodega backend tests.

Provides test database setup, users per role, logged-in test clients and a
provisioned cost center.
"""

import pytest

from bodega import create_app
from bodega.config import TestConfig
from bodega.extensions import db
from bodega.models import Inventory, User
from bodega.services import products_service, warehouse_service
from bodega.services.auth_service import hash_password

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is slow on purpose; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    """Factory: make_user("op1", role="warehouse_operator", permissions=[...])."""
    def _make(username, role="user", **fields):
        user = User(
            username=username,
            password_hash=password_hash,
            role=role,
            permissions=fields.pop("permissions", []),
            managed_warehouses=fields.pop("managed_warehouses", []),
            **fields,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture(scope='function')
def admin_user(make_user):
    return make_user("admin", role="admin")


@pytest.fixture(scope='function')
def operator_user(make_user):
    return make_user("operator", role="warehouse_operator", cost_center="CC001")


@pytest.fixture(scope='function')
def manager_user(make_user):
    return make_user("manager", role="project_manager", cost_center="CC001")


@pytest.fixture(scope='function')
def plain_user(make_user):
    return make_user("viewer", role="user")


def login(client, username: str, password: str = PASSWORD):
    """Log the client in; the session cookie is kept by the test client."""
    return client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })


def _logged_in_client(app, user):
    c = app.test_client()
    resp = login(c, user.username)
    assert resp.status_code == 200, resp.get_json()
    return c


@pytest.fixture(scope='function')
def admin_client(app, admin_user):
    return _logged_in_client(app, admin_user)


@pytest.fixture(scope='function')
def operator_client(app, operator_user):
    return _logged_in_client(app, operator_user)


@pytest.fixture(scope='function')
def manager_client(app, manager_user):
    return _logged_in_client(app, manager_user)


@pytest.fixture(scope='function')
def viewer_client(app, plain_user):
    return _logged_in_client(app, plain_user)


@pytest.fixture(scope='function')
def cost_center(db_session):
    """CC001 provisioned: returns {"main": Warehouse, "um2": Warehouse, ...}."""
    main, _ = warehouse_service.ensure_principal_warehouse("CC001", location="Santiago")
    warehouses = {"main": main}
    for sub in main.sub_warehouses:
        warehouses[sub.sub_warehouse_type] = sub
    return warehouses


@pytest.fixture(scope='function')
def widget(db_session):
    return products_service.create_product(patch={"name": "Widget", "sku": "W-1", "min_stock": 2})


@pytest.fixture(scope='function')
def serial_product(db_session):
    return products_service.create_product(
        patch={"name": "Router", "sku": "RT-1", "requires_serial": True}
    )


def on_hand(product_id: int, warehouse_id: int) -> int:
    """Fresh read of the materialized balance, bypassing this session's cache."""
    db.session.expire_all()
    row = db.session.query(Inventory).filter_by(product_id=product_id, warehouse_id=warehouse_id).first()
    return row.quantity if row else 0
