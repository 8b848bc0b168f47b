"""
测试配置文件
提供测试所需的fixtures：内存数据库、服务、商品、桌台、各角色调用方、测试客户端
"""

import pytest
from fastapi.testclient import TestClient

from ..app import create_app
from ..core.database import Collections, DatabaseManager
from ..core.security import security_manager
from ..models.catalog import Category, OptionGroup, Product
from ..models.user import Caller, Role
from ..services.container import ServiceContainer


TEST_CATEGORIES = ["Pasteis", "Bebidas", "Salgados", "Sobremesas"]

TEST_PRODUCTS = [
    Product(id="p_empada", name="Empada", category="Salgados", price_cents=1250),
    Product(id="p_caldo", name="Caldo de Cana", category="Bebidas", price_cents=800),
    Product(id="p_coca", name="Coca-Cola Lata", category="Bebidas", price_cents=650),
    Product(id="p_frango", name="Pastel de Frango", category="Pasteis", price_cents=1100,
            requires_preparation=True),
    Product(id="p_carne", name="Pastel de Carne", category="Pasteis", price_cents=1250,
            requires_preparation=True,
            option_groups=[OptionGroup(name="Molho", required=False, choices=["Vinagrete", "Pimenta"])]),
    Product(id="p_acai", name="Acai", category="Sobremesas", price_cents=1500,
            option_groups=[OptionGroup(name="Tamanho", required=True, choices=["300ml", "500ml"])]),
    Product(id="p_old", name="Pastel Antigo", category="Pasteis", price_cents=900, active=False),
]


@pytest.fixture
def test_db():
    """测试数据库（内存）"""
    db = DatabaseManager(":memory:")
    db.init_database()
    yield db
    db.close()


@pytest.fixture
def services(test_db):
    return ServiceContainer(test_db)


@pytest.fixture
def products(test_db):
    """固定ID的测试商品和分类"""
    for order, name in enumerate(TEST_CATEGORIES, start=1):
        category = Category(id=f"c{order}", name=name, display_order=order)
        test_db.create(Collections.CATEGORIES, category.to_document(), doc_id=category.id)
    for product in TEST_PRODUCTS:
        test_db.create(Collections.PRODUCTS, product.to_document(), doc_id=product.id)
    return {p.id: p for p in TEST_PRODUCTS}


@pytest.fixture
def tables(services):
    """1-12 号桌"""
    services.tables.seed_if_empty(12)
    return services.tables.list_tables()


@pytest.fixture
def admin():
    return Caller(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def cashier():
    return Caller(user_id="cashier-1", role=Role.CASHIER)


@pytest.fixture
def kitchen():
    return Caller(user_id="kitchen-1", role=Role.KITCHEN)


@pytest.fixture
def customer():
    return Caller(user_id="cust-1", role=Role.CUSTOMER)


@pytest.fixture
def other_customer():
    return Caller(user_id="cust-2", role=Role.CUSTOMER)


@pytest.fixture
def app_instance(test_db):
    """测试应用"""
    return create_app(test_db)


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    return TestClient(app_instance)


def auth_headers(caller: Caller) -> dict:
    token = security_manager.create_token(caller.user_id, caller.role)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def cashier_headers(cashier):
    return auth_headers(cashier)


@pytest.fixture
def kitchen_headers(kitchen):
    return auth_headers(kitchen)


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)
