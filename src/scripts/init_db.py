import asyncio
from sqlalchemy import insert, select

from src.config import settings
from src.database import Database
from src.employees.models import employee_table

DEFAULT_EMPLOYEES = [
    {"email": "admin@escritorio.com", "permission": "admin"},
    {"email": "mod@escritorio.com", "permission": "mod"},
]


async def seed_default_employees(db: Database) -> int:
    """Insert the default accounts that are missing. Returns how many were created."""
    result = await db.execute(select(employee_table.c.email))
    existing = {row["email"] for row in result.rows}
    missing = [employee for employee in DEFAULT_EMPLOYEES if employee["email"] not in existing]
    if missing:
        await db.run_transaction([insert(employee_table).values(**employee) for employee in missing])
    return len(missing)


async def init_models():
    db = Database.from_settings(settings)
    try:
        await db.init_models()
        created = await seed_default_employees(db)
        print(f"Database tables created. {created} default employees added.")
    finally:
        await db.dispose()

if __name__ == "__main__":
    asyncio.run(init_models())
