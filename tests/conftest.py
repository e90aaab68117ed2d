"""
Pytest Configuration and Fixtures for emailgate Tests
=====================================================

Purpose
-------
Shared fixtures for the emailgate test suite.

Responsibilities
----------------
- In-memory fakes for the store, mailer and chat platform used by the
  session manager unit tests
- Testcontainers PostgreSQL for the store integration tests (skipped when
  Docker is not available)
- discord.py mocks for cog testing

Architecture Notes
------------------
- Unit tests use fakes and mocks (fast, isolated)
- Integration tests use testcontainers (real PostgreSQL)
- Timeouts in the verification settings are shortened to fractions of a
  second so timer paths run quickly
"""

from __future__ import annotations

import asyncio
import itertools
import os
from types import SimpleNamespace
from typing import Any, AsyncGenerator, Callable, Dict, Generator, List, Optional, Set, Tuple

import pytest
import pytest_asyncio

os.environ.setdefault("ENVIRONMENT", "testing")

from emailgate.modules.verification.mailer import MailSender  # noqa: E402
from emailgate.modules.verification.manager import VerificationSessionManager  # noqa: E402
from emailgate.modules.verification.platform import (  # noqa: E402
    BotCapabilities,
    RoleHierarchyEntry,
    RoleHierarchyReport,
    RoleInfo,
)
from emailgate.modules.verification.settings import VerificationSettings  # noqa: E402

GUILD_ID = 111222333
USER_ID = 987654321


# ============================================================================
# IN-MEMORY FAKES (Unit Tests)
# ============================================================================


class FakeStore:
    """Dict-backed stand-in for VerificationStore (no TTL)."""

    def __init__(self) -> None:
        self.records: List[SimpleNamespace] = []
        self.configs: Dict[int, SimpleNamespace] = {}
        self._ids = itertools.count(1)
        self.fail_on: Set[str] = set()

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"store {operation} failed")

    def set_config(self, guild_id: int, domains=(), onjoin=False, role="Verified") -> SimpleNamespace:
        config = SimpleNamespace(guild_id=guild_id, domains=list(domains), onjoin=onjoin, role=role)
        self.configs[guild_id] = config
        return config

    def _matching(self, user_id, guild_id=None, code=None, verified=None):
        return [
            r
            for r in self.records
            if r.user_id == user_id
            and (guild_id is None or r.guild_id == guild_id)
            and (code is None or r.code == code)
            and (verified is None or r.verified is verified)
        ]

    async def find_record(self, user_id, *, guild_id=None, code=None, verified=None):
        self._maybe_fail("find_record")
        matches = self._matching(user_id, guild_id, code, verified)
        return matches[-1] if matches else None

    async def create_record(self, user_id, guild_id, email, code):
        self._maybe_fail("create_record")
        record = SimpleNamespace(
            id=next(self._ids),
            user_id=user_id,
            guild_id=guild_id,
            email=email,
            code=code,
            verified=False,
        )
        self.records.append(record)
        return record

    async def mark_verified(self, record_id):
        self._maybe_fail("mark_verified")
        for record in self.records:
            if record.id == record_id and not record.verified:
                record.verified = True
                return True
        return False

    async def delete_records(self, user_id, guild_id, *, verified=None):
        doomed = self._matching(user_id, guild_id, verified=verified)
        self.records = [r for r in self.records if r not in doomed]
        return len(doomed)

    async def purge_expired(self):
        return 0

    async def find_guild_config(self, guild_id):
        self._maybe_fail("find_guild_config")
        return self.configs.get(guild_id)

    async def upsert_guild_config(self, guild_id, **fields):
        config = self.configs.get(guild_id) or self.set_config(guild_id)
        for key, value in fields.items():
            setattr(config, key, value)
        return config

    async def add_domain(self, guild_id, domain):
        config = self.configs.get(guild_id) or self.set_config(guild_id)
        if domain not in config.domains:
            config.domains = [*config.domains, domain]
        return config

    async def remove_domain(self, guild_id, domain):
        config = self.configs.get(guild_id)
        if config is None:
            return None
        config.domains = [d for d in config.domains if d != domain]
        return config


class FakeMailer(MailSender):
    def __init__(self, result: bool = True) -> None:
        super().__init__(ttl_minutes=10)
        self.result = result
        self.sent: List[Tuple[str, str]] = []

    async def send(self, email: str, code: str) -> bool:
        self.sent.append((email, code))
        return self.result


class FakePlatform:
    """ChatPlatform stand-in that records DMs and role changes."""

    def __init__(self) -> None:
        self.dms: List[Tuple[int, str]] = []
        self.dm_ok = True
        self.capabilities: Optional[BotCapabilities] = BotCapabilities(
            manage_roles=True, view_channel=True
        )
        self.roles: Dict[str, RoleInfo] = {}
        self.bot_top: Optional[RoleInfo] = RoleInfo(id=1, name="EmailGate", position=10)
        self.member_roles: Dict[int, Set[int]] = {}
        self.absent_members: Set[int] = set()
        self.add_ok = True
        self.create_ok = True
        self.created: List[str] = []
        self.added: List[Tuple[int, int]] = []
        self.hierarchy_requests: List[int] = []
        self._role_ids = itertools.count(100)

    def texts(self, user_id: int) -> List[str]:
        return [text for uid, text in self.dms if uid == user_id]

    def add_guild_role(self, name: str, position: int = 2) -> RoleInfo:
        role = RoleInfo(id=next(self._role_ids), name=name, position=position)
        self.roles[name.lower()] = role
        return role

    async def send_direct_message(self, user_id: int, text: str) -> bool:
        self.dms.append((user_id, text))
        return self.dm_ok

    async def get_capabilities(self, guild_id: int) -> Optional[BotCapabilities]:
        return self.capabilities

    async def find_role(self, guild_id: int, name: str) -> Optional[RoleInfo]:
        return self.roles.get(name.lower())

    async def create_role(self, guild_id: int, name: str, colour: int) -> Optional[RoleInfo]:
        if not self.create_ok:
            return None
        self.created.append(name)
        return self.add_guild_role(name, position=1)

    async def get_bot_top_role(self, guild_id: int) -> Optional[RoleInfo]:
        return self.bot_top

    async def member_has_role(self, guild_id: int, user_id: int, role_id: int) -> Optional[bool]:
        if user_id in self.absent_members:
            return None
        return role_id in self.member_roles.get(user_id, set())

    async def add_role(self, guild_id: int, user_id: int, role_id: int) -> bool:
        if not self.add_ok:
            return False
        self.member_roles.setdefault(user_id, set()).add(role_id)
        self.added.append((user_id, role_id))
        return True

    async def role_hierarchy_report(self, guild_id: int) -> Optional[RoleHierarchyReport]:
        self.hierarchy_requests.append(guild_id)
        return RoleHierarchyReport(
            bot_top_role=self.bot_top.name if self.bot_top else None,
            bot_top_position=self.bot_top.position if self.bot_top else 0,
            roles=[
                RoleHierarchyEntry(r.name, r.position, is_bot_role=False, manageable=True)
                for r in self.roles.values()
            ],
        )


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the loop until `predicate()` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not reached")


# ============================================================================
# VERIFICATION FIXTURES
# ============================================================================


@pytest.fixture
def verification_settings() -> VerificationSettings:
    return VerificationSettings(
        email_response_timeout=0.3,
        otp_ttl=5.0,
        sweep_interval=60.0,
        external_call_timeout=1.0,
        default_role="Verified",
    )


@pytest.fixture
def store() -> FakeStore:
    fake = FakeStore()
    fake.set_config(GUILD_ID, domains=["uni.edu"])
    return fake


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest_asyncio.fixture
async def manager(
    store: FakeStore,
    mailer: FakeMailer,
    platform: FakePlatform,
    verification_settings: VerificationSettings,
) -> AsyncGenerator[VerificationSessionManager, None]:
    service = VerificationSessionManager(
        store=store, mailer=mailer, platform=platform, settings=verification_settings
    )
    yield service
    await service.shutdown()


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """
    Start a PostgreSQL testcontainer for integration tests.

    Skips the dependent tests when Docker cannot be reached.
    """
    from testcontainers.postgres import PostgresContainer

    container = PostgresContainer(image="postgres:16-alpine", driver="asyncpg")
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"Docker not available for testcontainers: {exc}")

    yield container

    container.stop()


@pytest.fixture(scope="session")
def database_url(postgres_container) -> str:
    url = postgres_container.get_connection_url()
    return url.replace("postgresql+psycopg2://", "postgresql+asyncpg://").replace(
        "postgresql://", "postgresql+asyncpg://"
    )


# ============================================================================
# DISCORD.PY MOCK FIXTURES (Cog Tests)
# ============================================================================


@pytest.fixture
def mock_bot(mocker):
    bot = mocker.MagicMock()
    bot.user.id = 123456789
    bot.user.name = "EmailGate"
    bot.command_prefix = "."
    bot.latency = 0.042
    bot.verification = mocker.MagicMock()
    bot.verification.begin_verification = mocker.AsyncMock()
    bot.verification.handle_direct_message = mocker.AsyncMock()
    bot.guild_config = mocker.MagicMock()
    bot.store = mocker.MagicMock()
    bot.store.purge_expired = mocker.AsyncMock(return_value=0)
    return bot


@pytest.fixture
def mock_context(mocker, mock_bot):
    ctx = mocker.MagicMock()
    ctx.bot = mock_bot
    ctx.prefix = "."
    ctx.author.id = USER_ID
    ctx.author.name = "TestUser"
    ctx.guild.id = GUILD_ID
    ctx.send = mocker.AsyncMock()
    ctx.reply = mocker.AsyncMock()
    return ctx
