"""
Postgres client for the Prospect Pipeline.

Durable implementation of the ProspectRepository, the job store RPCs and the
result cache's durable tier, using SQLAlchemy 2.0 async engine + asyncpg with
raw SQL. Schema and SQL functions live in sql/schema.sql.

Tables:
- jobs (claim_job / complete_job / fail_job / requeue_stale_jobs functions only)
- runs, run_tasks
- segment_profiles, entities (pgvector embeddings)
- market_insights (UPSERT on run_id)
- result_cache (UPSERT on key)

Every mutation is one statement with its guard in the WHERE clause, so
concurrent instances never interleave a read with a write.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Sequence
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..errors import wrap_store_error
from ..logging import get_logger
from ..models import (
    CacheEntry,
    Entity,
    EntityKind,
    Job,
    MarketInsights,
    MatchTier,
    Run,
    RunPhase,
    RunStatus,
    RunTask,
    SegmentProfile,
    TaskStatus,
)
from ..models.run import PHASE_ORDER
from ..repository import CANCELLED_ERROR, ProfileMatch
from ..utils import new_id

logger = get_logger(__name__)


def _sanitize_url(url: str) -> str:
    """Remove URL query params that asyncpg does not understand.

    Neon pooler URLs include ``channel_binding=require`` and ``sslmode=require``
    which are libpq parameters. asyncpg rejects unknown connection params.
    SQLAlchemy's asyncpg dialect handles SSL via ``connect_args`` instead.
    """
    _STRIP_PARAMS = {'channel_binding', 'sslmode'}
    parsed = urlparse(url)
    if not parsed.query:
        return url
    params = parse_qs(parsed.query)
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query))


def _requires_ssl(url: str) -> bool:
    return 'sslmode=require' in url or 'neon.tech' in url


def _embedding_to_pgvector(embedding: list[float] | None) -> str | None:
    """Convert embedding list to pgvector literal string, e.g. '[0.1,0.2,...]'."""
    if embedding is None:
        return None
    return '[' + ','.join(str(f) for f in embedding) + ']'


def _pgvector_to_embedding(value: Any) -> list[float] | None:
    """Parse a pgvector text literal back into a list of floats."""
    if value is None:
        return None
    if isinstance(value, str):
        return [float(v) for v in json.loads(value)]
    return [float(v) for v in value]


def _jsonb(value: Any) -> Any:
    """asyncpg returns jsonb as text unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value)
    return value


def _str_or_none(value: Any) -> str | None:
    return str(value) if value is not None else None


class PostgresClient:
    """
    Async Postgres client backing the durable store.

    Uses SQLAlchemy 2.0 async engine with asyncpg for raw SQL execution.
    Database errors are raised as StoreError subclasses.
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize with a Postgres connection URL.

        Args:
            database_url: Postgres connection URL. If the URL starts with
                          'postgres://' or 'postgresql://', it will be
                          converted to use asyncpg.
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url

    async def connect(self, database_url: str | None = None) -> None:
        """
        Create the async engine. Idempotent, no-op if already connected.

        Args:
            database_url: Override the URL from __init__.
        """
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        connect_args: dict[str, Any] = {'prepared_statement_cache_size': 0}
        if _requires_ssl(url):
            connect_args['ssl'] = 'require'

        # Strip query params unsupported by asyncpg (e.g. channel_binding)
        url = _sanitize_url(url)

        # Normalise driver prefix for asyncpg
        if url.startswith('postgres://'):
            url = url.replace('postgres://', 'postgresql+asyncpg://', 1)
        elif url.startswith('postgresql://') and '+asyncpg' not in url:
            url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)

        self._engine = create_async_engine(
            url,
            pool_size=5,
            max_overflow=5,
            pool_pre_ping=True,
            pool_timeout=30,
            connect_args=connect_args,
        )
        logger.info('postgres_client.connected')

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('postgres_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('PostgresClient not connected, call connect() first')
        return self._engine

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('postgres_client.connectivity_check_failed')
            return False

    async def _execute(self, sql: str, params: dict[str, Any], operation: str) -> list[Any]:
        """Run one statement in its own transaction and return the row mappings."""
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(text(sql), params)
                if result.returns_rows:
                    return [row._mapping for row in result.fetchall()]
                return []
        except SQLAlchemyError as e:
            raise wrap_store_error(e, {'operation': operation}) from e

    # =========================================================================
    # Row mapping
    # =========================================================================

    @staticmethod
    def _row_to_job(row: Any) -> Job:
        return Job(
            id=str(row['id']),
            type=row['type'],
            payload=_jsonb(row['payload']) or {},
            status=row['status'],
            attempt=row['attempt'],
            max_attempts=row['max_attempts'],
            worker_id=row['worker_id'],
            next_visible_at=row['next_visible_at'],
            last_error=row['last_error'],
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )

    @staticmethod
    def _row_to_run(row: Any) -> Run:
        return Run(
            id=str(row['id']),
            owner_id=row['owner_id'],
            phase=row['phase'],
            status=row['status'],
            progress_pct=row['progress_pct'],
            error=row['error'],
            context=_jsonb(row['context']) or {},
            created_at=row['created_at'],
            updated_at=row['updated_at'],
        )

    @staticmethod
    def _row_to_task(row: Any) -> RunTask:
        return RunTask(
            id=str(row['id']),
            run_id=str(row['run_id']),
            name=row['name'],
            status=row['status'],
            attempt=row['attempt'],
            started_at=row['started_at'],
            finished_at=row['finished_at'],
            error=row['error'],
        )

    @staticmethod
    def _row_to_profile(row: Any) -> SegmentProfile:
        return SegmentProfile(
            id=str(row['id']),
            run_id=str(row['run_id']),
            kind=row['kind'],
            rank=row['rank'],
            title=row['title'],
            demographics=_jsonb(row['demographics']) or {},
            characteristics=_jsonb(row['characteristics']) or {},
            behaviors=_jsonb(row['behaviors']) or {},
            match_score=row['match_score'],
            embedding=_pgvector_to_embedding(row['embedding']),
            created_at=row['created_at'],
        )

    @staticmethod
    def _row_to_entity(row: Any) -> Entity:
        return Entity(
            id=str(row['id']),
            run_id=str(row['run_id']),
            kind=row['kind'],
            name=row['name'],
            attributes=_jsonb(row['attributes']) or {},
            embedding=_pgvector_to_embedding(row['embedding']),
            profile_id=_str_or_none(row['profile_id']),
            match_score=row['match_score'],
            match_tier=row['match_tier'],
            created_at=row['created_at'],
        )

    # =========================================================================
    # Job RPCs
    # =========================================================================

    async def claim_job(self, worker_id: str, wanted_types: Sequence[str] | None = None) -> Job | None:
        rows = await self._execute(
            'SELECT * FROM claim_job(:worker_id, CAST(:wanted_types AS text[]))',
            {'worker_id': worker_id, 'wanted_types': list(wanted_types) if wanted_types else None},
            'claim_job',
        )
        return self._row_to_job(rows[0]) if rows else None

    async def complete_job(self, job_id: str, worker_id: str) -> bool:
        rows = await self._execute(
            'SELECT complete_job(CAST(:job_id AS uuid), :worker_id) AS ok',
            {'job_id': job_id, 'worker_id': worker_id},
            'complete_job',
        )
        return bool(rows and rows[0]['ok'])

    async def fail_job(
        self,
        job_id: str,
        worker_id: str,
        error_text: str,
        backoff_seconds: int,
        dead: bool = False,
    ) -> bool:
        rows = await self._execute(
            """
            SELECT fail_job(
                CAST(:job_id AS uuid), :worker_id, :error_text, :backoff_seconds, :dead
            ) AS ok
            """,
            {
                'job_id': job_id,
                'worker_id': worker_id,
                'error_text': error_text[:2000],
                'backoff_seconds': int(backoff_seconds),
                'dead': dead,
            },
            'fail_job',
        )
        return bool(rows and rows[0]['ok'])

    async def requeue_stale_jobs(self, stale_after_seconds: int) -> int:
        """Return running jobs idle longer than stale_after_seconds to pending. Returns the count."""
        rows = await self._execute(
            'SELECT requeue_stale_jobs(:stale_after_seconds) AS requeued',
            {'stale_after_seconds': int(stale_after_seconds)},
            'requeue_stale_jobs',
        )
        return int(rows[0]['requeued']) if rows else 0

    async def enqueue_job(self, job: Job, delay_seconds: float = 0) -> Job:
        """Insert a pending job that becomes claimable after delay_seconds."""
        rows = await self._execute(
            """
            INSERT INTO jobs (
                id, type, payload, status, attempt, max_attempts,
                next_visible_at, created_at, updated_at
            ) VALUES (
                CAST(:id AS uuid), :type, CAST(:payload AS jsonb), 'pending', 0, :max_attempts,
                now() + make_interval(secs => :delay_seconds), now(), now()
            )
            RETURNING *
            """,
            {
                'id': job.id,
                'type': job.type,
                'payload': json.dumps(job.payload, default=str),
                'max_attempts': job.max_attempts,
                'delay_seconds': float(delay_seconds),
            },
            'enqueue_job',
        )
        return self._row_to_job(rows[0])

    async def get_job(self, job_id: str) -> Job | None:
        rows = await self._execute(
            'SELECT * FROM jobs WHERE id = CAST(:id AS uuid)', {'id': job_id}, 'get_job'
        )
        return self._row_to_job(rows[0]) if rows else None

    # =========================================================================
    # Runs
    # =========================================================================

    async def create_run(self, run: Run) -> Run:
        await self._execute(
            """
            INSERT INTO runs (id, owner_id, phase, status, progress_pct, error, context)
            VALUES (
                CAST(:id AS uuid), :owner_id, :phase, :status, :progress_pct, :error,
                CAST(:context AS jsonb)
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                'id': run.id,
                'owner_id': run.owner_id,
                'phase': run.phase.value,
                'status': run.status.value,
                'progress_pct': run.progress_pct,
                'error': run.error,
                'context': json.dumps(run.context),
            },
            'create_run',
        )
        return run

    async def get_run(self, run_id: str) -> Run | None:
        rows = await self._execute(
            'SELECT * FROM runs WHERE id = CAST(:id AS uuid)', {'id': run_id}, 'get_run'
        )
        return self._row_to_run(rows[0]) if rows else None

    async def update_run_progress(self, run_id: str, phase: RunPhase, progress_pct: int) -> bool:
        """
        Advance phase and progress. Never moves either backwards and never
        touches a terminal Run.
        """
        rows = await self._execute(
            """
            UPDATE runs
               SET phase = :phase,
                   progress_pct = :progress_pct,
                   status = CASE WHEN status = 'starting' AND :phase <> 'starting'
                                 THEN 'in_progress' ELSE status END,
                   updated_at = now()
             WHERE id = CAST(:id AS uuid)
               AND status NOT IN ('completed', 'failed', 'cancelled')
               AND progress_pct <= :progress_pct
               AND array_position(CAST(:phase_order AS text[]), phase) <= :phase_index
            RETURNING id
            """,
            {
                'id': run_id,
                'phase': phase.value,
                'progress_pct': progress_pct,
                'phase_order': [p.value for p in PHASE_ORDER],
                'phase_index': PHASE_ORDER.index(phase) + 1,
            },
            'update_run_progress',
        )
        return bool(rows)

    async def set_run_status(
        self, run_id: str, status: RunStatus, error: str | None = None
    ) -> bool:
        """Set the Run status unless it is already terminal."""
        completed = status == RunStatus.COMPLETED
        rows = await self._execute(
            """
            UPDATE runs
               SET status = :status,
                   error = COALESCE(:error, error),
                   phase = CASE WHEN :completed THEN 'completed' ELSE phase END,
                   progress_pct = CASE WHEN :completed THEN 100 ELSE progress_pct END,
                   updated_at = now()
             WHERE id = CAST(:id AS uuid)
               AND status NOT IN ('completed', 'failed', 'cancelled')
            RETURNING id
            """,
            {'id': run_id, 'status': status.value, 'error': error, 'completed': completed},
            'set_run_status',
        )
        return bool(rows)

    async def cancel_run(self, run_id: str) -> bool:
        cancelled = await self.set_run_status(run_id, RunStatus.CANCELLED, CANCELLED_ERROR)
        if not cancelled:
            return False
        await self._execute(
            """
            UPDATE run_tasks
               SET status = 'failed', error = :error, finished_at = now()
             WHERE run_id = CAST(:run_id AS uuid)
               AND status IN ('pending', 'running')
            """,
            {'run_id': run_id, 'error': CANCELLED_ERROR},
            'cancel_run_tasks',
        )
        return True

    # =========================================================================
    # Tasks
    # =========================================================================

    async def ensure_tasks(self, run_id: str, names: Sequence[str]) -> list[RunTask]:
        """Insert one task per name if missing. Safe to call repeatedly."""
        for name in names:
            await self._execute(
                """
                INSERT INTO run_tasks (id, run_id, name, status, attempt)
                VALUES (CAST(:id AS uuid), CAST(:run_id AS uuid), :name, 'pending', 0)
                ON CONFLICT (run_id, name) DO NOTHING
                """,
                {'id': new_id(), 'run_id': run_id, 'name': name},
                'ensure_tasks',
            )
        return await self.list_tasks(run_id)

    async def list_tasks(self, run_id: str) -> list[RunTask]:
        rows = await self._execute(
            'SELECT * FROM run_tasks WHERE run_id = CAST(:run_id AS uuid) ORDER BY name',
            {'run_id': run_id},
            'list_tasks',
        )
        return [self._row_to_task(r) for r in rows]

    async def update_task(
        self, run_id: str, name: str, status: TaskStatus, error: str | None = None
    ) -> bool:
        """Move a task forward. succeeded and failed are final."""
        if status == TaskStatus.RUNNING:
            sql = """
                UPDATE run_tasks
                   SET status = 'running',
                       attempt = attempt + 1,
                       started_at = COALESCE(started_at, now()),
                       error = COALESCE(:error, error)
                 WHERE run_id = CAST(:run_id AS uuid) AND name = :name
                   AND status IN ('pending', 'running')
                RETURNING id
            """
        elif status == TaskStatus.PENDING:
            return False
        else:
            sql = """
                UPDATE run_tasks
                   SET status = :status,
                       finished_at = now(),
                       error = COALESCE(:error, error)
                 WHERE run_id = CAST(:run_id AS uuid) AND name = :name
                   AND status IN ('pending', 'running')
                RETURNING id
            """
        rows = await self._execute(
            sql,
            {'run_id': run_id, 'name': name, 'status': status.value, 'error': error},
            'update_task',
        )
        return bool(rows)

    # =========================================================================
    # Profiles
    # =========================================================================

    async def insert_profiles(self, profiles: Sequence[SegmentProfile]) -> list[SegmentProfile]:
        inserted = []
        for profile in profiles:
            rows = await self._execute(
                """
                INSERT INTO segment_profiles (
                    id, run_id, kind, rank, title, demographics, characteristics,
                    behaviors, match_score, embedding
                ) VALUES (
                    CAST(:id AS uuid), CAST(:run_id AS uuid), :kind, :rank, :title,
                    CAST(:demographics AS jsonb), CAST(:characteristics AS jsonb),
                    CAST(:behaviors AS jsonb), :match_score, CAST(:embedding AS vector)
                )
                ON CONFLICT (run_id, kind, rank) DO NOTHING
                RETURNING id
                """,
                {
                    'id': profile.id,
                    'run_id': profile.run_id,
                    'kind': profile.kind.value,
                    'rank': profile.rank,
                    'title': profile.title,
                    'demographics': json.dumps(profile.demographics),
                    'characteristics': json.dumps(profile.characteristics),
                    'behaviors': json.dumps(profile.behaviors),
                    'match_score': profile.match_score,
                    'embedding': _embedding_to_pgvector(profile.embedding),
                },
                'insert_profiles',
            )
            if rows:
                inserted.append(profile)
        logger.debug('postgres_client.insert_profiles', count=len(inserted))
        return inserted

    async def list_profiles(
        self, run_id: str, kind: EntityKind | None = None
    ) -> list[SegmentProfile]:
        rows = await self._execute(
            """
            SELECT id, run_id, kind, rank, title, demographics, characteristics,
                   behaviors, match_score, embedding::text AS embedding, created_at
              FROM segment_profiles
             WHERE run_id = CAST(:run_id AS uuid)
               AND (CAST(:kind AS text) IS NULL OR kind = :kind)
             ORDER BY kind, rank
            """,
            {'run_id': run_id, 'kind': kind.value if kind else None},
            'list_profiles',
        )
        return [self._row_to_profile(r) for r in rows]

    async def set_profile_embedding(self, profile_id: str, embedding: list[float]) -> None:
        await self._execute(
            """
            UPDATE segment_profiles SET embedding = CAST(:embedding AS vector)
             WHERE id = CAST(:id AS uuid)
            """,
            {'id': profile_id, 'embedding': _embedding_to_pgvector(embedding)},
            'set_profile_embedding',
        )

    # =========================================================================
    # Entities
    # =========================================================================

    _ENTITY_COLUMNS = """
        id, run_id, kind, name, attributes, embedding::text AS embedding,
        profile_id, match_score, match_tier, created_at
    """

    async def insert_entity(self, entity: Entity) -> Entity:
        await self._execute(
            """
            INSERT INTO entities (
                id, run_id, kind, name, attributes, embedding, match_score
            ) VALUES (
                CAST(:id AS uuid), CAST(:run_id AS uuid), :kind, :name,
                CAST(:attributes AS jsonb), CAST(:embedding AS vector), :match_score
            )
            ON CONFLICT (id) DO NOTHING
            """,
            {
                'id': entity.id,
                'run_id': entity.run_id,
                'kind': entity.kind.value,
                'name': entity.name,
                'attributes': json.dumps(entity.attributes, default=str),
                'embedding': _embedding_to_pgvector(entity.embedding),
                'match_score': entity.match_score,
            },
            'insert_entity',
        )
        return entity

    async def get_entity(self, entity_id: str) -> Entity | None:
        rows = await self._execute(
            f'SELECT {self._ENTITY_COLUMNS} FROM entities WHERE id = CAST(:id AS uuid)',
            {'id': entity_id},
            'get_entity',
        )
        return self._row_to_entity(rows[0]) if rows else None

    async def update_entity(self, entity_id: str, attributes: dict[str, Any]) -> Entity | None:
        """Merge attributes into the entity's attribute document."""
        rows = await self._execute(
            f"""
            UPDATE entities
               SET attributes = attributes || CAST(:attributes AS jsonb)
             WHERE id = CAST(:id AS uuid)
            RETURNING {self._ENTITY_COLUMNS}
            """,
            {'id': entity_id, 'attributes': json.dumps(attributes, default=str)},
            'update_entity',
        )
        return self._row_to_entity(rows[0]) if rows else None

    async def list_entities(
        self,
        run_id: str,
        kind: EntityKind | None = None,
        unmapped_only: bool = False,
        ids: Sequence[str] | None = None,
    ) -> list[Entity]:
        rows = await self._execute(
            f"""
            SELECT {self._ENTITY_COLUMNS}
              FROM entities
             WHERE run_id = CAST(:run_id AS uuid)
               AND (CAST(:kind AS text) IS NULL OR kind = :kind)
               AND (NOT :unmapped_only OR profile_id IS NULL)
               AND (CAST(:ids AS uuid[]) IS NULL OR id = ANY (CAST(:ids AS uuid[])))
             ORDER BY created_at
            """,
            {
                'run_id': run_id,
                'kind': kind.value if kind else None,
                'unmapped_only': unmapped_only,
                'ids': list(ids) if ids is not None else None,
            },
            'list_entities',
        )
        return [self._row_to_entity(r) for r in rows]

    async def set_entity_embedding(self, entity_id: str, embedding: list[float]) -> None:
        await self._execute(
            'UPDATE entities SET embedding = CAST(:embedding AS vector) WHERE id = CAST(:id AS uuid)',
            {'id': entity_id, 'embedding': _embedding_to_pgvector(embedding)},
            'set_entity_embedding',
        )

    async def assign_profile(
        self, entity_id: str, profile_id: str, score: int, tier: MatchTier
    ) -> bool:
        """Write the assignment only if the entity is still unmapped."""
        rows = await self._execute(
            """
            UPDATE entities
               SET profile_id = CAST(:profile_id AS uuid),
                   match_score = :score,
                   match_tier = :tier
             WHERE id = CAST(:id AS uuid)
               AND profile_id IS NULL
            RETURNING id
            """,
            {'id': entity_id, 'profile_id': profile_id, 'score': score, 'tier': tier.value},
            'assign_profile',
        )
        return bool(rows)

    async def top_profiles(self, entity_id: str, limit: int = 2) -> list[ProfileMatch]:
        rows = await self._execute(
            'SELECT profile_id, similarity FROM match_entity_top_profiles(CAST(:id AS uuid), :limit)',
            {'id': entity_id, 'limit': limit},
            'top_profiles',
        )
        return [
            ProfileMatch(profile_id=str(r['profile_id']), similarity=float(r['similarity']))
            for r in rows
        ]

    async def best_profile(self, entity_id: str) -> ProfileMatch | None:
        matches = await self.top_profiles(entity_id, limit=1)
        return matches[0] if matches else None

    # =========================================================================
    # Market insights
    # =========================================================================

    async def upsert_market_insights(self, insights: MarketInsights) -> None:
        await self._execute(
            """
            INSERT INTO market_insights (run_id, payload, is_fallback)
            VALUES (CAST(:run_id AS uuid), CAST(:payload AS jsonb), :is_fallback)
            ON CONFLICT (run_id) DO UPDATE SET
                payload = EXCLUDED.payload,
                is_fallback = EXCLUDED.is_fallback,
                created_at = now()
            """,
            {
                'run_id': insights.run_id,
                'payload': json.dumps(insights.payload, default=str),
                'is_fallback': insights.is_fallback,
            },
            'upsert_market_insights',
        )

    async def get_market_insights(self, run_id: str) -> MarketInsights | None:
        rows = await self._execute(
            'SELECT * FROM market_insights WHERE run_id = CAST(:run_id AS uuid)',
            {'run_id': run_id},
            'get_market_insights',
        )
        if not rows:
            return None
        row = rows[0]
        return MarketInsights(
            run_id=str(row['run_id']),
            payload=_jsonb(row['payload']) or {},
            is_fallback=row['is_fallback'],
            created_at=row['created_at'],
        )

    # =========================================================================
    # Result cache (durable tier)
    # =========================================================================

    async def cache_get(self, key: str) -> CacheEntry | None:
        rows = await self._execute(
            'SELECT key, payload, ttl_at, created_at FROM result_cache WHERE key = :key',
            {'key': key},
            'cache_get',
        )
        if not rows:
            return None
        row = rows[0]
        return CacheEntry(
            key=row['key'],
            payload=_jsonb(row['payload']),
            ttl_at=row['ttl_at'],
            created_at=row['created_at'],
        )

    async def cache_set(self, entry: CacheEntry) -> None:
        await self._execute(
            """
            INSERT INTO result_cache (key, payload, ttl_at, created_at)
            VALUES (:key, CAST(:payload AS jsonb), :ttl_at, :created_at)
            ON CONFLICT (key) DO UPDATE SET
                payload = EXCLUDED.payload,
                ttl_at = EXCLUDED.ttl_at,
                created_at = EXCLUDED.created_at
            """,
            {
                'key': entry.key,
                'payload': json.dumps(entry.payload, default=str),
                'ttl_at': entry.ttl_at,
                'created_at': entry.created_at,
            },
            'cache_set',
        )

    async def cache_delete(self, key: str) -> None:
        await self._execute('DELETE FROM result_cache WHERE key = :key', {'key': key}, 'cache_delete')

    async def cache_purge(self, cutoff: datetime) -> int:
        rows = await self._execute(
            'DELETE FROM result_cache WHERE created_at < :cutoff RETURNING key',
            {'cutoff': cutoff},
            'cache_purge',
        )
        return len(rows)
