"""
Pytest 配置和共享 fixtures
"""
import os

# 测试环境：关闭外发通知，应用自身的引擎指向内存库
os.environ["NOTIFICATIONS_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from frontdesk.config import settings
from frontdesk.database import Base, get_db
from frontdesk.models import ontology  # noqa: F401
from frontdesk.models.ontology import Employee, EmployeeRole, Floor, Guest, Product, Room
from frontdesk.models.schemas import ReservationCreate
from frontdesk.notification.document_validator import DocumentValidationResult
from frontdesk.security.auth import get_password_hash, create_access_token
from frontdesk.main import app
from frontdesk.routers.reservations import get_document_validator
from frontdesk.services.reservation_service import ReservationService


class FakeDocumentValidator:
    """证件 OCR 替身：默认识别出期望的证件号"""

    def __init__(self, success: bool = True, extracted: str = None):
        self.success = success
        self.extracted = extracted
        self.calls = []

    def validate(self, image, expected_document, filename="document.jpg"):
        self.calls.append((expected_document, filename))
        if self.success:
            return DocumentValidationResult(True, self.extracted or expected_document, "证件校验通过")
        return DocumentValidationResult(False, self.extracted, "证件号与预订登记不一致")


@pytest.fixture(scope="function")
def db_engine():
    """创建内存数据库引擎"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine):
    """创建数据库会话"""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """证件照片写入临时目录"""
    target = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(target))
    return target


@pytest.fixture
def document_validator():
    return FakeDocumentValidator()


@pytest.fixture
def failing_document_validator():
    """识别出与登记不一致的证件号"""
    return FakeDocumentValidator(success=False, extracted="99999999")


@pytest.fixture(scope="function")
def client(db_session, document_validator):
    """创建测试客户端"""
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_document_validator] = lambda: document_validator
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def published():
    """记录型事件发布器收集到的事件"""
    return []


@pytest.fixture
def publisher(published):
    return published.append


# ============== 认证相关 Fixtures ==============

@pytest.fixture
def admin_user(db_session):
    admin = Employee(
        username="admin",
        password_hash=get_password_hash("123456"),
        name="管理员",
        role=EmployeeRole.ADMIN,
        is_active=True
    )
    db_session.add(admin)
    db_session.commit()
    db_session.refresh(admin)
    return admin


@pytest.fixture
def counter_user(db_session):
    counter = Employee(
        username="counter1",
        password_hash=get_password_hash("123456"),
        name="前台小王",
        role=EmployeeRole.COUNTER,
        is_active=True
    )
    db_session.add(counter)
    db_session.commit()
    db_session.refresh(counter)
    return counter


@pytest.fixture
def admin_token(admin_user):
    return create_access_token(admin_user.id, admin_user.role)


@pytest.fixture
def counter_token(counter_user):
    return create_access_token(counter_user.id, counter_user.role)


@pytest.fixture
def admin_headers(admin_token):
    """返回管理员认证的请求头"""
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture
def counter_headers(counter_token):
    """返回前台认证的请求头"""
    return {"Authorization": f"Bearer {counter_token}"}


# ============== 实体相关 Fixtures ==============

@pytest.fixture
def sample_floor(db_session):
    floor = Floor(number=1)
    db_session.add(floor)
    db_session.commit()
    db_session.refresh(floor)
    return floor


@pytest.fixture
def sample_room(db_session, sample_floor):
    """创建测试房间（每晚 99）"""
    room = Room(number="101", floor=1, type="Double", price_per_night=Decimal("99.00"))
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_room_102(db_session, sample_floor):
    room = Room(number="102", floor=1, type="Single", price_per_night=Decimal("80.00"))
    db_session.add(room)
    db_session.commit()
    db_session.refresh(room)
    return room


@pytest.fixture
def sample_guest(db_session):
    guest = Guest(name="Ana Torres", doc_type="DNI", doc_number="45678912", visit_count=0)
    db_session.add(guest)
    db_session.commit()
    db_session.refresh(guest)
    return guest


@pytest.fixture
def sample_products(db_session):
    """两种商品：水（库存 10，单价 3）与啤酒（库存 5，单价 8）"""
    water = Product(name="Agua mineral", stock=10, price=Decimal("3.00"))
    beer = Product(name="Cerveza", stock=5, price=Decimal("8.00"))
    db_session.add_all([water, beer])
    db_session.commit()
    db_session.refresh(water)
    db_session.refresh(beer)
    return water, beer


@pytest.fixture
def stay_dates():
    """两晚的入住区间"""
    start = date.today()
    return start, start + timedelta(days=2)


@pytest.fixture
def make_reservation(db_session, publisher, stay_dates):
    """通过服务创建预订的工厂"""
    def _make(room, doc_number="45678912", name="Ana Torres", start=None, end=None, **kwargs):
        data = ReservationCreate(
            room_id=room.id,
            guest_name=name,
            guest_doc_number=doc_number,
            start_date=start or stay_dates[0],
            end_date=end or stay_dates[1],
            **kwargs
        )
        return ReservationService(db_session, event_publisher=publisher).create_reservation(data)
    return _make


@pytest.fixture
def checked_in_reservation(db_session, publisher, document_validator, sample_room, make_reservation):
    """已入住的两晚预订（房费 198）"""
    reservation = make_reservation(sample_room)
    service = ReservationService(db_session, event_publisher=publisher, document_validator=document_validator)
    return service.check_in(
        reservation.id,
        guest_phone="+51987654321",
        guest_email="ana@example.com",
        photo=b"fake-image",
        photo_filename="dni.jpg",
    )
