import os, sys, pytest
# Ensure the backend directory is on path so 'freightdesk' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from freightdesk import create_app, get_db
from freightdesk.models.base import Base
from freightdesk.services.auth import login_limiter
# Import all model modules to ensure tables are registered before create_all
import freightdesk.models.user  # noqa: F401
import freightdesk.models.company  # noqa: F401
import freightdesk.models.client  # noqa: F401
import freightdesk.models.supplier  # noqa: F401
import freightdesk.models.service  # noqa: F401
import freightdesk.models.loading_order  # noqa: F401
import freightdesk.models.invoice  # noqa: F401
import freightdesk.models.document  # noqa: F401
import freightdesk.models.audit  # noqa: F401
import freightdesk.models.setting  # noqa: F401
import freightdesk.models.notification  # noqa: F401

@pytest.fixture(scope='session', autouse=True)
def app_instance():
    app = create_app({'DATABASE_URL': 'sqlite+pysqlite:///:memory:', 'JWT_SECRET_KEY': 'test-secret-key-with-enough-bytes'})
    # After app and blueprints are registered, ensure all tables exist
    with app.app_context():
        engine = get_db().get_bind()
        Base.metadata.create_all(engine)
    yield app

@pytest.fixture(autouse=True)
def app_ctx(app_instance):
    with app_instance.app_context():
        yield

@pytest.fixture(autouse=True)
def reset_login_limiter():
    login_limiter.reset()
    yield
    login_limiter.reset()

@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
