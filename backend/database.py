from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

class Database:
    client: AsyncIOMotorClient = None
    db = None

    async def connect(self):
        try:
            mongo_url = os.environ['MONGO_URL']
            self.client = AsyncIOMotorClient(mongo_url)
            self.db = self.client[os.environ['DB_NAME']]
            # Verify connection
            await self.db.command("ping")
            logger.info(f"Connected to MongoDB: {os.environ['DB_NAME']}")

            await self._create_indexes()
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def close(self):
        if self.client:
            self.client.close()
            logger.info("MongoDB connection closed")

    def get_db(self):
        return self.db

    async def _create_indexes(self):
        """Create MongoDB indexes for per-user listings and lookups."""
        try:
            try:
                await self.db.users.create_index("email", unique=True)
            except Exception:
                pass  # Index may already exist with different options
            await self.db.users.create_index("id", unique=True)

            # Clients - listed newest-updated first per adviser
            await self.db.clients.create_index("id", unique=True)
            await self.db.clients.create_index([("userId", 1), ("updatedAt", -1)])
            await self.db.clients.create_index([("userId", 1), ("lastName", 1)])

            # Recent access - one row per (user, client)
            try:
                await self.db.recent_client_access.create_index(
                    [("userId", 1), ("clientId", 1)],
                    unique=True
                )
            except Exception:
                pass
            await self.db.recent_client_access.create_index([("userId", 1), ("accessedAt", -1)])

            # Appointments - calendar order and reminder scan
            await self.db.appointments.create_index("id", unique=True)
            await self.db.appointments.create_index([("userId", 1), ("startDateTime", 1)])
            await self.db.appointments.create_index([("status", 1), ("startDateTime", 1)])

            # PDF exports
            await self.db.pdf_exports.create_index("id", unique=True)
            await self.db.pdf_exports.create_index([("userId", 1), ("createdAt", -1)])
            await self.db.pdf_exports.create_index([("userId", 1), ("clientId", 1)])

            try:
                await self.db.email_integrations.create_index("userId", unique=True)
            except Exception:
                pass

            # Workspace state and named saves
            await self.db.workspaces.create_index("userId", unique=True)
            await self.db.saved_workspaces.create_index([("userId", 1), ("name", 1)], unique=True)

            # Audit and message logs
            await self.db.audit_logs.create_index([("actor_id", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index([("action", 1), ("timestamp", -1)])
            await self.db.audit_logs.create_index("timestamp")
            await self.db.message_logs.create_index([("created_at", -1)])
            await self.db.message_logs.create_index([("user_id", 1), ("created_at", -1)])
            await self.db.message_logs.create_index([("status", 1), ("created_at", -1)])
            logger.info("MongoDB indexes created/verified")
        except Exception as e:
            # Indexes may already exist, log but don't fail
            logger.warning(f"Index creation note: {e}")

# Global database instance
database = Database()

@asynccontextmanager
async def get_db_context():
    """Context manager for standalone scripts to access the database.

    Usage in scripts:
        async with get_db_context() as db:
            await db.clients.find_one(...)
    """
    client = None
    try:
        mongo_url = os.environ['MONGO_URL']
        db_name = os.environ['DB_NAME']
        client = AsyncIOMotorClient(mongo_url)
        db = client[db_name]
        await db.command("ping")
        logger.info(f"Script connected to MongoDB: {db_name}")
        yield db
    finally:
        if client:
            client.close()
            logger.info("Script MongoDB connection closed")
