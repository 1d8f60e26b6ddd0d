"""Database Management Script.

This script provides utilities for database operations:
- Initialize database
- Create tables
- Seed demo fleet data
- Reset database (development only)

Usage:
    python manage_db.py init          # Initialize database and create tables
    python manage_db.py seed          # Seed demo data (hubs, drivers, trucks, deliveries)
    python manage_db.py reset         # Reset database (WARNING: Destroys all data)
    python manage_db.py check         # Check database health
"""

import asyncio
import sys
from datetime import datetime, timedelta

from freightmesh.core.models.domain import (
    Delivery,
    Driver,
    Hub,
    RegistrationStatus,
    Truck,
)
from freightmesh.db import database
from freightmesh.db.database import (
    init_database,
    close_database,
    create_tables,
    reset_database,
    check_database_health,
)
from freightmesh.db.repositories import transaction

DEMO_COMPANY = "COMPANY_001"


def demo_fleet():
    """Hubs, drivers, trucks and deliveries around Mumbai."""
    now = datetime.now()

    hubs = [
        Hub(hub_id="HUB_BHIWANDI", name="Bhiwandi Logistics Park", latitude=19.2813, longitude=73.0483, radius_km=2.0),
        Hub(hub_id="HUB_VASHI", name="Vashi Truck Terminal", latitude=19.0771, longitude=72.9986, radius_km=1.5),
    ]

    drivers = [
        Driver(driver_id="DRV_001", name="Ramesh Patil", phone="+919800000001", home_base_city="Mumbai",
               total_distance_km=1250.0, total_hours_worked=310.0),
        Driver(driver_id="DRV_002", name="Suresh Yadav", phone="+919800000002", home_base_city="Pune",
               total_distance_km=820.0, total_hours_worked=190.0),
        Driver(driver_id="DRV_003", name="Anita Shinde", phone="+919800000003", home_base_city="Nashik",
               total_distance_km=400.0, total_hours_worked=95.0),
    ]

    trucks = [
        Truck(truck_id="TRK_001", license_plate="MH04AB1234", company_id=DEMO_COMPANY, owner_id="DRV_001",
              max_weight=10.0, max_volume=30.0, registration_status=RegistrationStatus.APPROVED,
              co2_per_km=0.6, home_base_hub_id="HUB_BHIWANDI", created_at=now - timedelta(days=30)),
        Truck(truck_id="TRK_002", license_plate="MH12CD5678", company_id=DEMO_COMPANY, owner_id="DRV_002",
              max_weight=5.0, max_volume=15.0, registration_status=RegistrationStatus.APPROVED,
              co2_per_km=0.45, home_base_hub_id="HUB_VASHI", created_at=now - timedelta(days=20)),
        Truck(truck_id="TRK_003", license_plate="MH15EF9012", company_id=DEMO_COMPANY, owner_id="DRV_003",
              max_weight=7.5, max_volume=20.0, registration_status=RegistrationStatus.PENDING,
              created_at=now - timedelta(days=2)),
    ]

    deliveries = [
        Delivery(delivery_id="DEL_001", company_id=DEMO_COMPANY, cargo_weight=2.0, cargo_volume=5.0,
                 cargo_type="FOOD", package_count=40, base_earnings=4200.0,
                 time_window_start=now + timedelta(hours=1),
                 pickup_location="Bhiwandi", pickup_lat=19.2813, pickup_lng=73.0483,
                 drop_location="Pune", drop_lat=18.5204, drop_lng=73.8567, distance_km=160.0),
        Delivery(delivery_id="DEL_002", company_id=DEMO_COMPANY, cargo_weight=3.0, cargo_volume=6.0,
                 cargo_type="PHARMA", package_count=25, base_earnings=5100.0,
                 time_window_start=now + timedelta(hours=2),
                 pickup_location="Vashi", pickup_lat=19.0771, pickup_lng=72.9986,
                 drop_location="Pune", drop_lat=18.5204, drop_lng=73.8567, distance_km=150.0),
        Delivery(delivery_id="DEL_003", company_id=DEMO_COMPANY, cargo_weight=4.0, cargo_volume=8.0,
                 cargo_type="ELECTRONICS", package_count=12, base_earnings=7800.0,
                 time_window_start=now + timedelta(hours=3),
                 pickup_location="Andheri", pickup_lat=19.1136, pickup_lng=72.8697,
                 drop_location="Nashik", drop_lat=19.9975, drop_lng=73.7898, distance_km=170.0),
        Delivery(delivery_id="DEL_MKT_001", company_id="COMPANY_002", cargo_weight=1.5, cargo_volume=3.0,
                 cargo_type="CLOTHING", package_count=60, base_earnings=2600.0,
                 time_window_start=now + timedelta(hours=5),
                 pickup_location="Thane", pickup_lat=19.2183, pickup_lng=72.9781,
                 drop_location="Mumbai Central", drop_lat=18.9690, drop_lng=72.8205, distance_km=35.0,
                 is_marketplace_load=True),
    ]

    return hubs, drivers, trucks, deliveries


async def init_db():
    """Initialize database and create all tables."""
    print("Initializing database...")
    await init_database()
    print("Creating tables...")
    await create_tables()
    print("[OK] Database initialized successfully!")
    await close_database()


async def seed_db():
    """Seed database with demo data. Existing records are left untouched."""
    print("Seeding database with demo data...")
    await init_database()

    hubs, drivers, trucks, deliveries = demo_fleet()

    async with transaction(database.async_session_factory) as store:
        for hub in hubs:
            if not await store.hubs.get(hub.hub_id):
                await store.hubs.add(hub)
                print(f"  [OK] Created hub {hub.hub_id}")

        for driver in drivers:
            if not await store.drivers.get(driver.driver_id):
                await store.drivers.add(driver)
                print(f"  [OK] Created driver {driver.driver_id} ({driver.name})")

        for truck in trucks:
            if not await store.trucks.get(truck.truck_id):
                await store.trucks.add(truck)
                print(f"  [OK] Created truck {truck.truck_id} ({truck.license_plate})")

        for delivery in deliveries:
            if not await store.deliveries.get(delivery.delivery_id):
                await store.deliveries.add(delivery)
                print(f"  [OK] Created delivery {delivery.delivery_id}")

    print("[OK] Database seeded successfully!")
    await close_database()


async def reset_db():
    """Reset database (WARNING: Destroys all data)."""
    print("[WARNING] This will destroy ALL data in the database!")
    confirm = input("Type 'yes' to confirm: ")

    if confirm.lower() != "yes":
        print("Reset cancelled.")
        return

    print("Resetting database...")
    await init_database()
    await reset_database()
    print("[OK] Database reset successfully!")
    await close_database()


async def check_db():
    """Check database health."""
    print("Checking database health...")
    await init_database()

    health = await check_database_health()

    if health["status"] == "healthy":
        print("[OK] Database is healthy")
        print(f"  Dialect: {health['dialect']}")
    else:
        print("[ERROR] Database is unhealthy")
        print(f"  Error: {health.get('error', 'Unknown error')}")

    await close_database()


async def main():
    """Main entry point."""
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    command = sys.argv[1].lower()

    try:
        if command == "init":
            await init_db()
        elif command == "seed":
            await seed_db()
        elif command == "reset":
            await reset_db()
        elif command == "check":
            await check_db()
        else:
            print(f"Unknown command: {command}")
            print(__doc__)
            sys.exit(1)
    except Exception as e:
        print(f"[ERROR] {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
