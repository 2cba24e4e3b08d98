"""MongoDB database connection manager."""

from typing import Optional

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from smartlab.config import settings
from smartlab.core.audit import log_database_connection
from smartlab.core.logging import logger


def document_models() -> list:
    """Every Beanie document the application stores, principal variants included."""
    from smartlab.features.appointments.models import Appointment
    from smartlab.features.auth.models import Patient, Receptionist, Staff, SuperAdmin, User
    from smartlab.features.complaints.models import Complaint
    from smartlab.features.payments.models import Counter, Payment
    from smartlab.features.reports.models import Report

    return [
        User,
        Staff,
        SuperAdmin,
        Receptionist,
        Patient,
        Appointment,
        Report,
        Complaint,
        Payment,
        Counter,
    ]


class Database:
    """MongoDB database connection manager."""

    client: Optional[AsyncIOMotorClient] = None

    @classmethod
    async def connect_db(cls):
        """Connect to MongoDB and initialize Beanie."""
        # Every store call inherits this deadline; timeouts surface as 503
        cls.client = AsyncIOMotorClient(
            settings.MONGODB_URL,
            timeoutMS=settings.DB_TIMEOUT_MS,
            serverSelectionTimeoutMS=settings.DB_TIMEOUT_MS,
        )

        await init_beanie(
            database=cls.client[settings.DATABASE_NAME],
            document_models=document_models(),
        )

        log_database_connection(settings.DATABASE_NAME, connected=True)

    @classmethod
    async def close_db(cls):
        """Close MongoDB connection."""
        if cls.client:
            cls.client.close()
            cls.client = None
            logger.info("Closed MongoDB connection")


async def get_database():
    """Dependency for database access."""
    return Database.client[settings.DATABASE_NAME]
