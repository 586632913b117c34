"""
Seeds the database with a small demo catalog for local development.

- 3 developers, each with a contact email
- 4 customers (one without a display name)
- 8 published services across the developers, INR prices

Purchases, refunds and reviews are not seeded; they come from the API.
"""
import sys
import os
import random

# Allow running from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import engine, SessionLocal
from app import models

random.seed(7)

DEVELOPERS = [
    ("dev_0001", "Pixel Forge", "team@pixelforge.example"),
    ("dev_0002", "Automata Labs", "hello@automata.example"),
    ("dev_0003", "Northwind Apps", "support@northwind.example"),
]

CUSTOMERS = [
    ("cust_0001", "Asha Verma"),
    ("cust_0002", "Rahul Nair"),
    ("cust_0003", "Meera Iyer"),
    ("cust_0004", None),
]

SERVICE_TITLES = [
    "Invoice Generator for Small Shops",
    "WhatsApp Order Bot with Dashboard",
    "Android Attendance Tracker",
    "Portfolio Website Starter Kit",
    "Email Campaign Automation Tool",
    "AI Resume Screening Service",
    "Inventory Sync for Marketplaces",
    "Windows Backup Scheduler",
]


def build_catalog():
    profiles = [
        models.Profile(id=dev_id, display_name=name, email=email, role="developer")
        for dev_id, name, email in DEVELOPERS
    ]
    profiles += [
        models.Profile(id=cust_id, display_name=name, role="customer")
        for cust_id, name in CUSTOMERS
    ]
    services = []
    for i, title in enumerate(SERVICE_TITLES):
        developer_id = DEVELOPERS[i % len(DEVELOPERS)][0]
        price = round(random.choice([499, 999, 1499, 2499, 4999]) - 0.01, 2)
        services.append(models.Service(
            id=f"svc_{i + 1:04d}",
            developer_id=developer_id,
            title=title,
            price=price,
            currency="INR",
            status="published",
        ))
    return profiles, services


def seed(db):
    profiles, services = build_catalog()
    db.add_all(profiles + services)
    db.commit()
    return len(profiles), len(services)


def main():
    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if db.query(models.Service).count() > 0:
            print("Catalog already seeded; nothing to do.")
            return
        n_profiles, n_services = seed(db)
        print(f"Seeded {n_profiles} profiles and {n_services} services.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
