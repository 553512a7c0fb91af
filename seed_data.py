#!/usr/bin/env python3

from datetime import time
from decimal import Decimal

from src.database import Base, engine, SessionLocal
from src.models import (
    StaffUser, Location, TransportRoute, CancellationPolicy, ServiceConfig
)
from src.auth.utils import get_password_hash
from src.catalog.service import CatalogService

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("Creating seed data for the agency back office...")

        # Clear existing reference data (in reverse dependency order)
        print("Clearing existing reference data...")
        db.query(TransportRoute).delete()
        db.query(CancellationPolicy).delete()
        db.query(ServiceConfig).delete()

        # 1. Staff accounts
        print("Creating staff accounts...")
        staff = [
            ("admin", "admin@agency-ye.com", "System Admin", "ADMIN"),
            ("registration", "registration@agency-ye.com", "Registration Desk", "REGISTRATION_STAFF"),
            ("accountant", "accountant@agency-ye.com", "Accountant", "ACCOUNTANT"),
            ("followup", "followup@agency-ye.com", "Follow-up Desk", "FOLLOW_UP_STAFF"),
        ]
        created_staff = 0
        for username, email, full_name, role in staff:
            if db.query(StaffUser).filter(StaffUser.username == username).first():
                continue
            db.add(StaffUser(
                username=username,
                email=email,
                full_name=full_name,
                role=role,
                password_hash=get_password_hash("admin123"),
                is_active=True
            ))
            created_staff += 1
        db.flush()

        # 2. Locations
        print("Creating locations...")
        location_data = [
            ("Sanaa", "SAN", "Exam centre, Hadda street"),
            ("Aden", "ADE", "Exam centre, Khormaksar"),
            ("Taiz", "TAI", None),
            ("Hadramout", "HAD", None),
            ("Ibb", "IBB", None),
        ]
        locations = {}
        for name, code, address in location_data:
            location = db.query(Location).filter(Location.code == code).first()
            if not location:
                location = Location(name=name, code=code, address=address, is_active=True)
                db.add(location)
                db.flush()
            locations[code] = location

        # 3. Transport routes to the exam centres
        print("Creating transport routes...")
        route_data = [
            ("TAI", "ADE", Decimal("15000"), Decimal("28000"), time(6, 0), time(10, 30)),
            ("IBB", "ADE", Decimal("18000"), Decimal("34000"), time(5, 30), time(11, 0)),
            ("HAD", "ADE", Decimal("40000"), Decimal("75000"), time(4, 0), time(16, 0)),
            ("TAI", "SAN", Decimal("20000"), Decimal("38000"), time(6, 0), time(13, 0)),
            ("IBB", "SAN", Decimal("15000"), Decimal("28000"), time(7, 0), time(12, 0)),
            ("ADE", "SAN", Decimal("30000"), Decimal("55000"), time(5, 0), time(15, 0)),
        ]
        routes = []
        for from_code, to_code, one_way, round_trip, departs, arrives in route_data:
            routes.append(TransportRoute(
                from_location_id=locations[from_code].id,
                to_location_id=locations[to_code].id,
                one_way_price=one_way,
                round_trip_price=round_trip,
                departure_time=departs,
                arrival_time=arrives,
                is_active=True
            ))
        db.add_all(routes)

        # 4. Fee policies
        print("Creating fee policies...")
        policies = [
            CancellationPolicy(name="Cancellation 48h+ before departure", category="CANCELLATION",
                               hours_trigger=48, condition="GREATER_THAN", fee_amount=Decimal("2000")),
            CancellationPolicy(name="Cancellation 24h+ before departure", category="CANCELLATION",
                               hours_trigger=24, condition="GREATER_THAN", fee_amount=Decimal("5000")),
            CancellationPolicy(name="Late cancellation", category="CANCELLATION",
                               hours_trigger=24, condition="LESS_THAN", fee_amount=Decimal("10000")),
            CancellationPolicy(name="Modification 24h+ before departure", category="MODIFICATION",
                               hours_trigger=24, condition="GREATER_THAN", fee_amount=Decimal("3000")),
            CancellationPolicy(name="Late modification", category="MODIFICATION",
                               hours_trigger=24, condition="LESS_THAN", fee_amount=Decimal("7000")),
        ]
        for policy in policies:
            policy.is_active = True
        db.add_all(policies)

        # 5. Global service config
        print("Creating service config...")
        db.add(ServiceConfig(
            id="global",
            registration_price=Decimal("16000"),
            exam_change_fee=Decimal("16000"),
            max_free_changes=1
        ))

        db.commit()

        # 6. Default no-show fine
        CatalogService(db).ensure_default_policies()

        print("Successfully created seed data!")
        print("Created:")
        print(f"  - {created_staff} staff accounts")
        print(f"  - {len(locations)} locations")
        print(f"  - {len(routes)} transport routes")
        print(f"  - {len(policies)} fee policies (+ default no-show fine)")

    except Exception as e:
        print(f"Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
