import pytest
from datetime import date
from decimal import Decimal
import uuid

from quotevoice import create_app
from quotevoice.database import db_session, get_session, create_all, drop_all
from quotevoice.models import Tenant, AppUser, UserTenant, Subscription, Company
from quotevoice.services.quote_service import create_quote


TODAY = date(2026, 3, 15)


@pytest.fixture(scope='function')
def app():
    """Create application instance on a fresh in-memory database."""
    app = create_app('config.TestConfig')
    create_all()
    yield app
    db_session.remove()
    drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session shared with the request handlers."""
    session = get_session()
    yield session
    session.rollback()


def _make_tenant(session, label):
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        slug=f'test-{label}-{suffix}',
        name=f'Test {label} {suffix}',
        active=True
    )
    session.add(tenant)
    session.commit()
    return tenant


def _make_user(session, tenant, label, role='OWNER'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'{label}-{suffix}@test.be',
        full_name=label.title(),
        active=True
    )
    session.add(user)
    session.flush()

    session.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=role, active=True))
    session.commit()
    return user


@pytest.fixture(scope='function')
def tenant1(session):
    return _make_tenant(session, 'tenant-1')


@pytest.fixture(scope='function')
def tenant2(session):
    """Second tenant for isolation tests."""
    return _make_tenant(session, 'tenant-2')


@pytest.fixture(scope='function')
def user1(session, tenant1):
    """Owner of tenant1."""
    return _make_user(session, tenant1, 'owner')


@pytest.fixture(scope='function')
def staff_user(session, tenant1):
    return _make_user(session, tenant1, 'staff', role='STAFF')


@pytest.fixture(scope='function')
def user2(session, tenant2):
    return _make_user(session, tenant2, 'other-owner')


@pytest.fixture(scope='function')
def subscription(session, tenant1):
    """tenant1 on the pro plan."""
    subscription = Subscription(tenant_id=tenant1.id, plan_code='pro', status='active')
    session.add(subscription)
    session.commit()
    return subscription


@pytest.fixture(scope='function')
def company(session, tenant1):
    company = Company(
        tenant_id=tenant1.id,
        name='Menuiserie Dupont SRL',
        vat_number='BE0123456749',
        address='Rue des Artisans 12, 1000 Bruxelles',
        email='info@dupont.be',
        iban='BE68 5390 0754 7034',
        bic='GKCCBEBB'
    )
    session.add(company)
    session.commit()
    return company


@pytest.fixture(scope='function')
def quote(session, tenant1, user1):
    """Draft quote: 1 x 100.00 at 21% VAT -> 100.00 / 21.00 / 121.00."""
    return create_quote(session, tenant1.id, user1.id, {
        'client_name': 'Client Martin',
        'client_email': 'martin@example.be',
        'client_vat_number': 'BE0987654321',
        'tax_rate': 21,
        'items': [
            {'description': 'Pose de parquet', 'quantity': 1, 'unit': 'forfait', 'unit_price': '100.00'},
        ],
    }, today=TODAY)


@pytest.fixture(scope='function')
def big_quote(session, tenant1, user1):
    """Quote whose total is 1000.00 (826.45 + 173.55 VAT)."""
    return create_quote(session, tenant1.id, user1.id, {
        'client_name': 'Client Lambert',
        'tax_rate': 21,
        'items': [
            {'description': 'Cuisine sur mesure', 'quantity': 1, 'unit_price': '826.45'},
        ],
    }, today=TODAY)


@pytest.fixture(scope='function')
def login(client):
    """Put a user and tenant in the client's session cookie."""
    def _login(user_id, tenant_id):
        with client.session_transaction() as sess:
            sess['user_id'] = user_id
            sess['tenant_id'] = tenant_id
        return client
    return _login


@pytest.fixture(scope='function')
def authenticated_client(login, user1, tenant1, subscription, company):
    """Client logged in as tenant1's owner, pro plan, company configured."""
    return login(user1.id, tenant1.id)
