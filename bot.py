"""
bot.py — Scrim Bot Entry Point
------------------------------
Hardened startup sequence with pre-flight checks,
lockfile handling, and clean shutdown.

One guild, one queue, one match setup at a time:
1. Queue (/queue join, /queue leave, /queue list)
2. Match setup (/start: ready check, map vote, draft, side pick)
3. Server launch on DatHost
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv

load_dotenv()

import aiosqlite
import discord
from discord.ext import commands

from config.settings import get_scrim_config
from database import (
    create_tables,
    init_db_once,
    validate_db_connectivity,
    validate_schema,
)

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

CONFIG = get_scrim_config()

logging.basicConfig(
    level=getattr(logging, CONFIG.log_level, logging.INFO),
    format="%(asctime)s | %(levelname)-5s | %(name)s: %(message)s",
)
log = logging.getLogger("scrim-bot")

# Lockfile path
LOCKFILE = Path(__file__).parent / "bot.lock"

# -----------------------------------------------------------------------------
# Bot Setup
# -----------------------------------------------------------------------------

intents = discord.Intents.default()
# Slash commands and components only; voice_states lets us move members.
intents.presences = False
intents.members = False
intents.message_content = False
intents.voice_states = True


class ScrimBot(commands.Bot):
    """
    Scrim bot for a single community.

    Services are created in setup_hook() and shared by every cog as
    attributes on the bot.
    """

    def __init__(self):
        super().__init__(command_prefix="!", intents=intents)
        self.config = CONFIG
        self.db: Optional[aiosqlite.Connection] = None
        self.stats_client = None
        self.dathost_client = None
        self._startup_complete = False

    async def run_startup_checks(self) -> None:
        """
        Pre-flight checks before Discord login.
        Validates environment, database, and core requirements.
        Fails fast with clear errors if anything is missing.
        """
        db_path = self.config.db_path

        print("\n" + "=" * 60)
        print(">> Scrim Bot — Pre-flight Checks")
        print("=" * 60)

        # 1. Validate DISCORD_TOKEN
        if not self.config.discord_token:
            raise RuntimeError(
                "❌ DISCORD_TOKEN not set in environment.\n"
                "   Set it in your .env file or environment variables."
            )
        print("[✓] DISCORD_TOKEN present ............. OK")

        # 2. Validate database connectivity
        try:
            await validate_db_connectivity(db_path)
            print(f"[✓] Database connectivity ............. OK ({db_path})")
        except Exception as e:
            raise RuntimeError(
                f"❌ Database connection failed: {e}\n"
                f"   Check that {db_path} is accessible and not locked."
            )

        # 3. Initialize schema / create tables
        try:
            await init_db_once(db_path)
            print("[✓] Schema initialization ............. OK")
        except Exception as e:
            raise RuntimeError(f"❌ Schema initialization failed: {e}")

        # 4. Validate required tables exist
        try:
            schema_status = await validate_schema(db_path)
            missing = [t for t, exists in schema_status.items() if not exists]
            if missing:
                raise RuntimeError(f"Missing tables: {', '.join(missing)}")
            print("[✓] Core tables validated ............. OK")
        except Exception as e:
            raise RuntimeError(f"❌ Schema validation failed: {e}")

        # 5. Optional integrations
        print(f"[{'✓' if self.config.dathost_enabled else '-'}] DatHost launch ...................... "
              f"{'OK' if self.config.dathost_enabled else 'DISABLED'}")
        print(f"[{'✓' if self.config.stats_enabled else '-'}] Stats API (autodraft) ............... "
              f"{'OK' if self.config.stats_enabled else 'DISABLED'}")

        print("-" * 60)
        print("[+] Pre-flight checks complete")
        print("-" * 60 + "\n")

    async def setup_hook(self):
        """4-phase startup sequence."""
        print("\n" + "=" * 60)
        print(">> Scrim Bot Startup")
        print("=" * 60)

        # Phase 1: Database
        phase1_start = time.perf_counter()
        self.db = await aiosqlite.connect(self.config.db_path)
        await create_tables(self.db)
        phase1_elapsed = time.perf_counter() - phase1_start
        print(f"[1/4] Database ........................ OK ({phase1_elapsed:.2f}s)")

        # Phase 2: Services
        phase2_start = time.perf_counter()
        await self._init_services()
        phase2_elapsed = time.perf_counter() - phase2_start
        print(f"[2/4] Scrim services .................. OK ({phase2_elapsed:.2f}s)")

        # Phase 3: Load cogs
        phase3_start = time.perf_counter()
        await self._load_cogs()
        phase3_elapsed = time.perf_counter() - phase3_start
        print(f"[3/4] Cogs loaded ..................... OK ({phase3_elapsed:.2f}s)")

        # Phase 4: Sync commands
        phase4_start = time.perf_counter()
        synced = await self.tree.sync()
        log.info(f"Synced {len(synced)} global commands")
        phase4_elapsed = time.perf_counter() - phase4_start
        print(f"[4/4] Command sync .................... OK ({phase4_elapsed:.2f}s)")

        print("-" * 60)
        total = phase1_elapsed + phase2_elapsed + phase3_elapsed + phase4_elapsed
        print(f"[+] Startup complete in {total:.2f}s")
        print("-" * 60)

        self._startup_complete = True

    async def _init_services(self):
        """Build the scrim services and restore persisted state."""
        from services.dathost_client import DathostClient
        from services.draft_service import DraftAssignmentEngine
        from services.identity_service import IdentityService
        from services.launch_service import (
            LaunchSettings,
            ServerLaunchCoordinator,
            basic_auth_header,
        )
        from services.map_pool_service import MapPoolService
        from services.queue_service import QueueService
        from services.setup_orchestrator import MatchSetupOrchestrator, SetupTimeouts
        from services.setup_state import SetupState
        from services.stats_client import StatsClient

        cfg = self.config

        self.scrim_state = SetupState()
        self.identity_service = IdentityService(self.db)
        self.map_pool_service = MapPoolService(self.db)
        self.queue_service = QueueService(self.db, self.scrim_state, self.identity_service)

        await self.identity_service.load()
        await self.map_pool_service.load()
        await self.queue_service.restore()

        webhook_auth = ""
        if cfg.stats_enabled:
            self.stats_client = StatsClient(
                cfg.scrimbot_api_url, cfg.scrimbot_api_user, cfg.scrimbot_api_password
            )
            webhook_auth = basic_auth_header(cfg.scrimbot_api_user, cfg.scrimbot_api_password)

        launcher = None
        if cfg.dathost_enabled:
            self.dathost_client = DathostClient(cfg.dathost_username, cfg.dathost_password)
            launcher = ServerLaunchCoordinator(
                self.dathost_client,
                self.identity_service,
                LaunchSettings(
                    server_id=cfg.dathost_server_id,
                    match_end_url=cfg.dathost_match_end_url,
                    webhook_authorization=webhook_auth,
                    team_a_channel_id=cfg.team_a_channel_id,
                    team_b_channel_id=cfg.team_b_channel_id,
                ),
                member_mover=self.move_member,
            )

        self.setup_orchestrator = MatchSetupOrchestrator(
            state=self.scrim_state,
            queue=self.queue_service,
            maps=self.map_pool_service,
            identities=self.identity_service,
            drafts=DraftAssignmentEngine(self.identity_service, self.stats_client),
            launcher=launcher,
            timeouts=SetupTimeouts(
                ready=cfg.ready_timeout,
                map_vote=cfg.map_vote_timeout,
                draft=cfg.draft_timeout,
            ),
        )

    async def move_member(self, user_id: int, channel_id: int) -> None:
        """Move a member into a voice channel (raises if they are not connected)."""
        channel = self.get_channel(channel_id) or await self.fetch_channel(channel_id)
        member = channel.guild.get_member(user_id) or await channel.guild.fetch_member(user_id)
        await member.move_to(channel, reason="Scrim teams")

    async def _load_cogs(self):
        """Load the scrim cogs."""
        scrim_cogs = [
            "cogs.profile",  # /steamid, /teamname, /maps
            "cogs.queue",  # /queue + daily auto-clear
            "cogs.setup",  # /start, /readylist
            "cogs.admin",  # /admin ...
        ]

        loaded = 0
        failed = []

        for cog_path in scrim_cogs:
            try:
                print(f"    Loading {cog_path}...", end=" ")
                await self.load_extension(cog_path)
                loaded += 1
                print("OK")
                log.info(f"Loaded cog: {cog_path}")
            except Exception as e:
                failed.append(cog_path.split(".")[-1])
                print(f"FAILED: {e}")
                log.error(f"Failed to load {cog_path}: {e}", exc_info=True)

        log.info(f"Loaded {loaded}/{len(scrim_cogs)} cogs")
        if failed:
            log.warning(f"Failed cogs: {', '.join(failed)}")


bot = ScrimBot()


@bot.event
async def on_ready():
    log.info(f"Logged in as {bot.user} (ID: {bot.user.id if bot.user else 'n/a'})")
    print("\n" + "-" * 60)
    print("[+] SCRIM BOT IS FULLY ONLINE")
    print("-" * 60 + "\n")

    try:
        await bot.change_presence(activity=discord.Game(name="/queue join"))
    except Exception as e:
        log.warning(f"Failed to set presence: {e}")


# -----------------------------------------------------------------------------
# Shutdown
# -----------------------------------------------------------------------------


async def shutdown():
    """Graceful shutdown."""
    log.info("Shutdown: starting graceful shutdown")

    orchestrator = getattr(bot, "setup_orchestrator", None)
    if orchestrator is not None:
        await orchestrator.shutdown()

    for client in (bot.stats_client, bot.dathost_client):
        if client is not None:
            try:
                await client.close()
            except Exception:
                log.exception("Error closing HTTP client")

    if getattr(bot, "db", None):
        try:
            await bot.db.close()
            log.info("Shutdown: database connection closed")
        except Exception:
            log.exception("Error closing database")

    try:
        await bot.close()
    except Exception:
        log.exception("Error closing bot")

    log.info("Shutdown: complete")


def cleanup_lockfile():
    """Remove lockfile if it exists."""
    if LOCKFILE.exists():
        try:
            LOCKFILE.unlink()
            log.debug("Lockfile removed")
        except Exception as e:
            log.warning(f"Could not remove lockfile: {e}")


# -----------------------------------------------------------------------------
# Main Entry
# -----------------------------------------------------------------------------


async def main():
    """Main entry point with lockfile handling and pre-flight checks."""

    if LOCKFILE.exists():
        try:
            pid = LOCKFILE.read_text().strip()
            log.warning(
                f"⚠️  Lockfile exists (PID: {pid}). "
                "Previous instance may not have shut down cleanly. Continuing anyway."
            )
        except Exception:
            log.warning("⚠️  Stale lockfile detected. Continuing anyway.")

    try:
        LOCKFILE.write_text(str(os.getpid()))
        log.debug(f"Created lockfile: {LOCKFILE}")

        await bot.run_startup_checks()

        log.info("Starting Scrim Bot...")
        await bot.start(CONFIG.discord_token)

    except KeyboardInterrupt:
        log.info("Shutdown signal received (Ctrl+C)")
        await shutdown()
    except asyncio.CancelledError:
        log.info("Shutdown signal received (cancelled)")
        await shutdown()
    except Exception as e:
        log.exception(f"Fatal error: {e}")
        await shutdown()
        raise
    finally:
        cleanup_lockfile()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        cleanup_lockfile()
        print("\nBot stopped.")
