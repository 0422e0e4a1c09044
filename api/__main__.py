"""Command line interface for running the API server and provisioning users."""
import argparse
import asyncio
import getpass
import logging
import uvicorn

from auth import AuthManager
from common import MarketError, UserRole
from config import settings_conf
from database import init_db, close as db_close, get_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

class UvicornServer:
    """Wrapper for running uvicorn inside an existing event loop."""

    def __init__(self, app_path: str = "api:app", host: str = "0.0.0.0", port: int = 8000):
        self.config = uvicorn.Config(
            app_path,
            host=host,
            port=port,
            log_level="info"
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Run the server until it is stopped."""
        await self.server.serve()

    async def stop(self):
        """Stop the server."""
        self.server.should_exit = True

async def startup(init_schema: bool):
    """Prepare the configured store."""
    if settings_conf['store_backend'] == 'postgres' and init_schema:
        logger.info("Initializing database...")
        await init_db()
    store = await get_store()
    logger.info(f"Using {type(store).__name__}")
    return store

async def serve(args):
    """Run the API server."""
    server = UvicornServer(host=args.host, port=args.port)
    try:
        await startup(args.init_db)
        await server.run()
    finally:
        logger.info("Closing database connections...")
        await db_close()

async def create_user(args):
    """Provision an account with any role, e.g. an escrow agent."""
    password = args.password or getpass.getpass("Password: ")
    try:
        store = await startup(True)
        user = await AuthManager(store).create_user(
            args.name, args.email, password, UserRole(args.role.upper())
        )
        print(f"Created {user['role']} user {user['email']} ({user['id']})")
    except MarketError as e:
        logger.error(f"Could not create user: {e}")
        for issue in getattr(e, 'issues', []):
            logger.error(f"  {issue['field']}: {issue['message']}")
        raise SystemExit(1)
    finally:
        await db_close()

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="python -m api", description=__doc__)
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create the database and apply schema migrations before serving"
    )

    commands = parser.add_subparsers(dest="command")
    user_parser = commands.add_parser("create-user", help="Create a user with any role")
    user_parser.add_argument("--email", required=True)
    user_parser.add_argument("--name", required=True)
    user_parser.add_argument("--password", help="Prompted for when omitted")
    user_parser.add_argument(
        "--role",
        default=UserRole.ESCROW.value.lower(),
        choices=[role.value.lower() for role in UserRole]
    )
    return parser

def main(argv=None):
    args = build_parser().parse_args(argv)
    if args.command == "create-user":
        asyncio.run(create_user(args))
    else:
        asyncio.run(serve(args))

if __name__ == "__main__":
    main()
