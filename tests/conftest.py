from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from forecourt.models import Base, Contact, Tenant, User, Vehicle
from forecourt.models.enums import VatScheme


@dataclass
class SeededTenant:
    tenant_id: int
    user_id: int
    customer_id: int
    finance_company_id: int
    vehicle_id: int


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'forecourt_test.db'}", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    engine.dispose()


@pytest.fixture
def session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def seed_tenant(db, name: str = "Northside Motors", vrm: str = "AB12CDE") -> SeededTenant:
    tenant = Tenant(
        name=name,
        company_name=f"{name} Ltd",
        address="1 High Street, Leeds",
        phone="0113 000 0000",
        email="sales@northside.test",
        vat_registered=True,
        vat_number="GB123456789",
        company_number="01234567",
        terms_consumer_in_person="Consumer in-person terms",
        terms_business_distance="Business distance terms",
    )
    db.add(tenant)
    db.flush()

    user = User(tenant_id=tenant.id, email=f"sam@{tenant.id}.test", full_name="Sam Seller")
    customer = Contact(
        tenant_id=tenant.id,
        display_name="Alex Buyer",
        email="alex@example.com",
        address_line1="22 Park Road",
        town="Leeds",
        postcode="LS1 1AA",
    )
    finance_company = Contact(tenant_id=tenant.id, display_name="Blackhorse", company_name="Blackhorse Finance")
    vehicle = Vehicle(
        tenant_id=tenant.id,
        vrm=vrm,
        make="Ford",
        model="Focus",
        year=2019,
        mileage=42000,
        vat_scheme=VatScheme.MARGIN,
        purchase_price_net=Decimal("7000.00"),
    )
    db.add_all([user, customer, finance_company, vehicle])
    db.commit()
    return SeededTenant(
        tenant_id=tenant.id,
        user_id=user.id,
        customer_id=customer.id,
        finance_company_id=finance_company.id,
        vehicle_id=vehicle.id,
    )


@pytest.fixture
def seeded(session) -> SeededTenant:
    return seed_tenant(session)


@pytest.fixture
def seed_factory(session):
    def _seed(**kwargs) -> SeededTenant:
        return seed_tenant(session, **kwargs)

    return _seed
