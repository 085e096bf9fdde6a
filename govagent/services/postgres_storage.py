"""
PostgreSQL implementation of the proposal/chat store.

psycopg2 is blocking, so each operation runs in a worker thread. Vote
commits are compare-and-set on ``status = 'pending'`` which keeps the
at-most-once guarantee even when several processes share the database.
"""
import asyncio
from typing import Any, Callable, Dict, List, Optional, TypeVar

import psycopg2
from psycopg2 import errors
from psycopg2.extras import Json, RealDictCursor

from govagent.config.database_config import DatabaseConfig
from govagent.data_models.schemas import (
    AnalysisResult,
    ChatMessage,
    ChatMessageCreate,
    Proposal,
    ProposalCreate,
    VoteChoice,
)
from govagent.exceptions import (
    AlreadyVotedError,
    ConflictError,
    GovAgentError,
    LifecycleError,
    ProposalNotFoundError,
    StorageError,
)
from govagent.services.connection_pool import DatabaseConnectionPool
from govagent.services.storage import ProposalStorage
from govagent.utils.logger import logger

T = TypeVar("T")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS proposals (
    id SERIAL PRIMARY KEY,
    chain_id TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    proposer TEXT NOT NULL,
    score INTEGER NOT NULL DEFAULT 0 CHECK (score BETWEEN 0 AND 100),
    status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'voted')),
    vote_result TEXT CHECK (vote_result IN ('aye', 'nay')),
    vote_tx_hash TEXT,
    analysis JSONB,
    CHECK ((status = 'voted') = (vote_tx_hash IS NOT NULL)),
    CHECK ((vote_result IS NULL) = (vote_tx_hash IS NULL))
);
CREATE TABLE IF NOT EXISTS chat_messages (
    id SERIAL PRIMARY KEY,
    proposal_id INTEGER NOT NULL REFERENCES proposals(id),
    sender TEXT NOT NULL CHECK (sender IN ('user', 'agent')),
    content TEXT NOT NULL,
    timestamp TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS chat_messages_proposal_timestamp_idx
    ON chat_messages (proposal_id, timestamp, id);
"""

PROPOSAL_COLUMNS = "id, chain_id, title, description, proposer, score, status, vote_result, vote_tx_hash, analysis"


class PostgresStorage(ProposalStorage):
    """ProposalStorage backed by PostgreSQL through the pooled psycopg2 connections."""

    def __init__(self, config: DatabaseConfig, pool: Optional[DatabaseConnectionPool] = None):
        self._pool = pool or DatabaseConnectionPool(config)

    @property
    def pool_stats(self) -> Dict[str, Any]:
        return self._pool.get_stats()

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except GovAgentError:
            raise
        except (psycopg2.Error, RuntimeError) as e:
            logger.error("PostgresStorage: %s failed: %s", fn.__name__, e)
            raise StorageError(f"Storage operation failed: {e}") from e

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def ensure_schema(self) -> None:
        await self._run(self._ensure_schema)

    def _ensure_schema(self) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info("PostgresStorage: schema ready")

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def get_proposal(self, proposal_id: int) -> Optional[Proposal]:
        return await self._run(self._fetch_proposal, "id", proposal_id)

    async def get_proposal_by_chain_id(self, chain_id: str) -> Optional[Proposal]:
        return await self._run(self._fetch_proposal, "chain_id", chain_id)

    def _fetch_proposal(self, column: str, value: Any) -> Optional[Proposal]:
        with self._pool.connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"SELECT {PROPOSAL_COLUMNS} FROM proposals WHERE {column} = %s", (value,))
            row = cur.fetchone()
        return Proposal.model_validate(dict(row)) if row else None

    async def list_proposals(self) -> List[Proposal]:
        return await self._run(self._list_proposals)

    def _list_proposals(self) -> List[Proposal]:
        with self._pool.connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"SELECT {PROPOSAL_COLUMNS} FROM proposals ORDER BY id")
            rows = cur.fetchall()
        return [Proposal.model_validate(dict(r)) for r in rows]

    async def create_proposal(self, data: ProposalCreate) -> Proposal:
        return await self._run(self._create_proposal, data)

    def _create_proposal(self, data: ProposalCreate) -> Proposal:
        try:
            with self._pool.connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""INSERT INTO proposals (chain_id, title, description, proposer)
                        VALUES (%s, %s, %s, %s) RETURNING {PROPOSAL_COLUMNS}""",
                    (data.chain_id, data.title, data.description, data.proposer),
                )
                row = cur.fetchone()
        except errors.UniqueViolation as e:
            raise ConflictError(f"Proposal with chainId '{data.chain_id}' already exists") from e
        return Proposal.model_validate(dict(row))

    async def record_analysis(self, proposal_id: int, result: AnalysisResult) -> Proposal:
        return await self._run(self._record_analysis, proposal_id, result)

    def _record_analysis(self, proposal_id: int, result: AnalysisResult) -> Proposal:
        with self._pool.connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""UPDATE proposals SET score = %s, analysis = %s
                    WHERE id = %s AND status = 'pending' RETURNING {PROPOSAL_COLUMNS}""",
                (result.score, Json(result.model_dump()), proposal_id),
            )
            row = cur.fetchone()
        if row is None:
            if self._fetch_proposal("id", proposal_id) is None:
                raise ProposalNotFoundError(proposal_id)
            raise LifecycleError(f"Proposal {proposal_id} is already voted; analysis is frozen")
        return Proposal.model_validate(dict(row))

    async def record_vote(self, proposal_id: int, vote: VoteChoice, tx_hash: str) -> Proposal:
        if not tx_hash:
            raise LifecycleError("A vote can only be recorded with a transaction hash")
        return await self._run(self._record_vote, proposal_id, VoteChoice(vote), tx_hash)

    def _record_vote(self, proposal_id: int, vote: VoteChoice, tx_hash: str) -> Proposal:
        with self._pool.connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""UPDATE proposals SET status = 'voted', vote_result = %s, vote_tx_hash = %s
                    WHERE id = %s AND status = 'pending' RETURNING {PROPOSAL_COLUMNS}""",
                (vote.value, tx_hash, proposal_id),
            )
            row = cur.fetchone()
        if row is None:
            if self._fetch_proposal("id", proposal_id) is None:
                raise ProposalNotFoundError(proposal_id)
            raise AlreadyVotedError(proposal_id)
        return Proposal.model_validate(dict(row))

    # ------------------------------------------------------------------
    # Chat messages
    # ------------------------------------------------------------------

    async def list_messages(self, proposal_id: int) -> List[ChatMessage]:
        return await self._run(self._list_messages, proposal_id)

    def _list_messages(self, proposal_id: int) -> List[ChatMessage]:
        with self._pool.connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """SELECT id, proposal_id, sender, content, timestamp FROM chat_messages
                   WHERE proposal_id = %s ORDER BY timestamp, id""",
                (proposal_id,),
            )
            rows = cur.fetchall()
        return [ChatMessage.model_validate(dict(r)) for r in rows]

    async def create_message(self, data: ChatMessageCreate) -> ChatMessage:
        return await self._run(self._create_message, data)

    def _create_message(self, data: ChatMessageCreate) -> ChatMessage:
        try:
            with self._pool.connection() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
                # Never earlier than the latest message of the same proposal
                cur.execute(
                    """INSERT INTO chat_messages (proposal_id, sender, content, timestamp)
                       VALUES (%s, %s, %s, GREATEST(now(), COALESCE(
                           (SELECT max(timestamp) FROM chat_messages WHERE proposal_id = %s), now())))
                       RETURNING id, proposal_id, sender, content, timestamp""",
                    (data.proposal_id, data.sender.value, data.content, data.proposal_id),
                )
                row = cur.fetchone()
        except errors.ForeignKeyViolation as e:
            raise ProposalNotFoundError(data.proposal_id) from e
        return ChatMessage.model_validate(dict(row))

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def ping(self) -> bool:
        try:
            await self._run(self._ping)
            return True
        except StorageError:
            return False

    def _ping(self) -> None:
        with self._pool.connection() as conn, conn.cursor() as cur:
            cur.execute("SELECT 1")

    async def close(self) -> None:
        await asyncio.to_thread(self._pool.close)
