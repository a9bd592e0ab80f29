#!/usr/bin/env python3
"""
Seed script to create a demo business with hours and menu
"""

import asyncio
import uuid
from datetime import time


async def seed_demo_data():
    """Seed demo data for development"""
    from app.database import SessionLocal, engine, Base
    from app.models.business import Business, OpeningHours, StaffContact
    from app.models.menu import Item
    from app.core.timeutils import DAY_NAMES
    
    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    async with SessionLocal() as db:
        # Check if demo business already exists
        from sqlalchemy import select
        result = await db.execute(
            select(Business).where(Business.name == "Beirut Bites")
        )
        existing = result.scalar_one_or_none()
        
        if existing:
            print("Demo data already exists. Skipping...")
            return
        
        print("Creating demo business...")
        
        business = Business(
            id=uuid.uuid4(),
            name="Beirut Bites",
            timezone="Asia/Beirut",
            allow_scheduled_orders=True,
            delivery_price_cents=300,
            latitude=33.8938,
            longitude=35.5018,
            delivery_radius_km=5,
        )
        db.add(business)
        await db.flush()
        
        print(f"Created business: {business.name} (ID: {business.id})")
        
        # Opening hours, closed on Sunday
        for day in DAY_NAMES:
            db.add(
                OpeningHours(
                    owner_type="business",
                    owner_id=business.id,
                    day_of_week=day,
                    is_closed=day == "sunday",
                    open_time=None if day == "sunday" else time(9, 0),
                    close_time=None if day == "sunday" else time(22, 0),
                    last_order_before_closing_minutes=30,
                )
            )
        
        # Staff contact
        db.add(
            StaffContact(
                business_id=business.id,
                name="Kitchen",
                phone="+96170000000",  # Replace with a real number
                role="kitchen",
            )
        )
        
        menu = [
            {"name": "Chicken Shawarma", "price_cents": 650, "category": "Sandwiches"},
            {"name": "Falafel Wrap", "price_cents": 450, "category": "Sandwiches"},
            {"name": "Fattoush", "price_cents": 550, "category": "Salads"},
            {"name": "Hummus", "price_cents": 400, "category": "Mezza"},
            {"name": "Lemonade", "price_cents": 300, "category": "Drinks"},
            {
                "name": "Whole Lamb Ouzi",
                "price_cents": 12000,
                "category": "Catering",
                "is_schedulable": True,
                "min_schedule_hours": 24,
                "available_from": time(12, 0),
                "available_to": time(20, 0),
                "days_available": ["friday", "saturday"],
                "duration_minutes": 180,
                "quantity": 2,
            },
            {
                "name": "Private Chef Table",
                "price_cents": 25000,
                "category": "Experiences",
                "is_schedulable": True,
                "min_schedule_hours": 3,
                "duration_minutes": 120,
            },
        ]
        
        for sort_order, entry in enumerate(menu):
            db.add(Item(business_id=business.id, sort_order=sort_order, **entry))
        
        await db.commit()
        
        print(f"Created {len(menu)} menu items")
        print("Demo data created successfully!")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
