"""
SQLite content store for the crawl pipeline
"""
import sqlite3
import json
import logging
import uuid
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime, timedelta

from models import (
    PageSnapshot, PageSignals, CrawlJob, JobExecution, QualityIssue,
    QualityReport, AnalysisResult, NewsSource
)

logger = logging.getLogger(__name__)


class ContentStore:
    """Manages SQLite persistence for snapshots, crawled content, jobs and reports"""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.setup_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def setup_database(self):
        """Initialize SQLite database with complete schema"""
        conn = self._connect()
        cursor = conn.cursor()

        # Latest snapshot per normalized URL
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS page_snapshots (
                id INTEGER PRIMARY KEY,
                url TEXT UNIQUE,
                content_hash TEXT,
                signals TEXT,
                load_time_ms INTEGER,
                status_code INTEGER,
                fetched_at TEXT
            )
        ''')

        # Crawled content records (news, seo, competitor)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS crawled_content (
                id TEXT PRIMARY KEY,
                type TEXT,
                url TEXT,
                title TEXT,
                content TEXT,
                metadata TEXT,
                source TEXT,
                is_stale INTEGER DEFAULT 0,
                created_at TEXT,
                updated_at TEXT
            )
        ''')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_content_url ON crawled_content(url)')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS crawl_jobs (
                id TEXT PRIMARY KEY,
                name TEXT,
                type TEXT,
                schedule TEXT,
                is_active INTEGER,
                last_run TEXT,
                retry_attempts INTEGER,
                max_retries INTEGER,
                config TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS job_executions (
                id INTEGER PRIMARY KEY,
                job_id TEXT,
                started_at TEXT,
                duration_ms INTEGER,
                success INTEGER,
                error TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS quality_issues (
                id TEXT PRIMARY KEY,
                type TEXT,
                severity TEXT,
                message TEXT,
                affected_records INTEGER,
                suggested_action TEXT,
                timestamp TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS quality_reports (
                id INTEGER PRIMARY KEY,
                quality_score INTEGER,
                report TEXT,
                timestamp TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS analysis_results (
                id INTEGER PRIMARY KEY,
                url TEXT UNIQUE,
                overall_score INTEGER,
                result TEXT,
                timestamp TEXT
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS news_sources (
                id TEXT PRIMARY KEY,
                name TEXT,
                url TEXT,
                selectors TEXT,
                is_active INTEGER,
                last_crawled TEXT
            )
        ''')

        conn.commit()
        conn.close()
        logger.info("Database schema initialized successfully")

    def ping(self) -> bool:
        conn = self._connect()
        try:
            conn.execute("SELECT 1").fetchone()
            return True
        finally:
            conn.close()

    # Page snapshots

    def save_snapshot(self, snapshot: PageSnapshot):
        """Upsert the snapshot for its normalized URL, replacing any previous one"""
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute('''
                INSERT OR REPLACE INTO page_snapshots
                (url, content_hash, signals, load_time_ms, status_code, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (
                snapshot.url,
                snapshot.content_hash,
                json.dumps(snapshot.signals.to_dict()),
                snapshot.load_time_ms,
                snapshot.status_code,
                snapshot.fetched_at
            ))
            conn.commit()
            logger.debug(f"Saved snapshot for: {snapshot.url}")
        finally:
            conn.close()

    def _snapshot_from_row(self, row) -> PageSnapshot:
        return PageSnapshot(
            url=row['url'],
            content_hash=row['content_hash'],
            signals=PageSignals.from_dict(json.loads(row['signals'])),
            load_time_ms=row['load_time_ms'],
            fetched_at=row['fetched_at'],
            status_code=row['status_code']
        )

    def get_snapshot(self, url: str) -> Optional[PageSnapshot]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM page_snapshots WHERE url = ?", (url,)).fetchone()
            return self._snapshot_from_row(row) if row else None
        finally:
            conn.close()

    def count_snapshots(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM page_snapshots").fetchone()[0]
        finally:
            conn.close()

    # Crawled content

    def save_content(self, content_type: str, url: Optional[str], title: Optional[str],
                     content: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None,
                     source: Optional[str] = None, updated_at: Optional[str] = None) -> str:
        """Insert a crawled content record and return its id"""
        record_id = str(uuid.uuid4())
        now = datetime.now().isoformat()
        conn = self._connect()

        try:
            conn.execute('''
                INSERT INTO crawled_content
                (id, type, url, title, content, metadata, source, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                record_id, content_type, url, title, content,
                json.dumps(metadata or {}), source, now, updated_at or now
            ))
            conn.commit()
            logger.debug(f"Saved {content_type} content for: {url}")
        finally:
            conn.close()

        return record_id

    def save_raw_metadata(self, record_id: str, raw_metadata: str):
        """Overwrite the metadata column verbatim"""
        conn = self._connect()
        try:
            conn.execute("UPDATE crawled_content SET metadata = ? WHERE id = ?", (raw_metadata, record_id))
            conn.commit()
        finally:
            conn.close()

    def get_content(self, content_type: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Crawled content rows as dicts; metadata left as stored text"""
        conn = self._connect()
        try:
            query = "SELECT * FROM crawled_content"
            params: List[Any] = []
            if content_type:
                query += " WHERE type = ?"
                params.append(content_type)
            query += " ORDER BY updated_at DESC"
            if limit:
                query += " LIMIT ?"
                params.append(limit)
            return [dict(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    def get_content_sample(self, size: int) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM crawled_content ORDER BY RANDOM() LIMIT ?", (size,)).fetchall()
            return [dict(row) for row in rows]
        finally:
            conn.close()

    def count_content(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM crawled_content").fetchone()[0]
        finally:
            conn.close()

    def count_content_by_type(self) -> Dict[str, int]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT type, COUNT(*) AS count FROM crawled_content GROUP BY type").fetchall()
            return {row['type']: row['count'] for row in rows}
        finally:
            conn.close()

    def content_activity_since(self, since: str) -> List[Dict[str, Any]]:
        """Records created per day since the given timestamp"""
        conn = self._connect()
        try:
            rows = conn.execute('''
                SELECT substr(created_at, 1, 10) AS date, COUNT(*) AS count
                FROM crawled_content WHERE created_at >= ?
                GROUP BY substr(created_at, 1, 10) ORDER BY date
            ''', (since,)).fetchall()
            return [{'date': row['date'], 'count': row['count']} for row in rows]
        finally:
            conn.close()

    def count_stale_content(self, cutoff: str) -> int:
        conn = self._connect()
        try:
            return conn.execute(
                "SELECT COUNT(*) FROM crawled_content WHERE updated_at < ?", (cutoff,)
            ).fetchone()[0]
        finally:
            conn.close()

    def count_missing_urls(self) -> int:
        conn = self._connect()
        try:
            return conn.execute(
                "SELECT COUNT(*) FROM crawled_content WHERE url IS NULL OR url = ''"
            ).fetchone()[0]
        finally:
            conn.close()

    def get_duplicate_url_groups(self) -> List[Tuple[str, int]]:
        """(url, count) for every URL stored more than once"""
        conn = self._connect()
        try:
            rows = conn.execute('''
                SELECT url, COUNT(*) AS count FROM crawled_content
                WHERE url IS NOT NULL AND url != ''
                GROUP BY url HAVING COUNT(*) > 1
            ''').fetchall()
            return [(row['url'], row['count']) for row in rows]
        finally:
            conn.close()

    def delete_duplicate_content(self) -> int:
        """Keep the most recently updated record per URL; return rows removed"""
        conn = self._connect()
        try:
            cursor = conn.execute('''
                DELETE FROM crawled_content
                WHERE url IS NOT NULL AND url != ''
                AND rowid NOT IN (
                    SELECT row_id FROM (
                        SELECT rowid AS row_id, ROW_NUMBER() OVER (
                            PARTITION BY url ORDER BY updated_at DESC, rowid DESC
                        ) AS rn
                        FROM crawled_content
                        WHERE url IS NOT NULL AND url != ''
                    ) WHERE rn = 1
                )
            ''')
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def mark_stale_content(self, cutoff: str) -> int:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE crawled_content SET is_stale = 1 WHERE updated_at < ? AND is_stale = 0", (cutoff,)
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    # Jobs

    def save_job(self, job: CrawlJob):
        """Upsert a crawl job by id"""
        conn = self._connect()
        try:
            conn.execute('''
                INSERT OR REPLACE INTO crawl_jobs
                (id, name, type, schedule, is_active, last_run, retry_attempts, max_retries, config)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                job.id, job.name, job.type, job.schedule, int(job.is_active),
                job.last_run, job.retry_attempts, job.max_retries, json.dumps(job.config)
            ))
            conn.commit()
        finally:
            conn.close()

    def get_jobs(self) -> List[CrawlJob]:
        conn = self._connect()
        try:
            rows = conn.execute("SELECT * FROM crawl_jobs ORDER BY id").fetchall()
            return [
                CrawlJob(
                    id=row['id'],
                    name=row['name'],
                    type=row['type'],
                    schedule=row['schedule'],
                    is_active=bool(row['is_active']),
                    last_run=row['last_run'],
                    retry_attempts=row['retry_attempts'],
                    max_retries=row['max_retries'],
                    config=json.loads(row['config'] or '{}')
                ) for row in rows
            ]
        finally:
            conn.close()

    def save_job_execution(self, execution: JobExecution):
        conn = self._connect()
        try:
            conn.execute('''
                INSERT INTO job_executions (job_id, started_at, duration_ms, success, error)
                VALUES (?, ?, ?, ?, ?)
            ''', (
                execution.job_id, execution.started_at, execution.duration_ms,
                int(execution.success), execution.error
            ))
            conn.commit()
        finally:
            conn.close()

    def get_job_executions(self, job_id: Optional[str] = None, limit: int = 100) -> List[JobExecution]:
        conn = self._connect()
        try:
            query = "SELECT * FROM job_executions"
            params: List[Any] = []
            if job_id:
                query += " WHERE job_id = ?"
                params.append(job_id)
            query += " ORDER BY id DESC LIMIT ?"
            params.append(limit)
            return [
                JobExecution(
                    job_id=row['job_id'],
                    started_at=row['started_at'],
                    duration_ms=row['duration_ms'],
                    success=bool(row['success']),
                    error=row['error']
                ) for row in conn.execute(query, params).fetchall()
            ]
        finally:
            conn.close()

    # Quality

    def save_quality_issue(self, issue: QualityIssue):
        conn = self._connect()
        try:
            conn.execute('''
                INSERT OR REPLACE INTO quality_issues
                (id, type, severity, message, affected_records, suggested_action, timestamp)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', (
                issue.id, issue.type, issue.severity, issue.message,
                issue.affected_records, issue.suggested_action, datetime.now().isoformat()
            ))
            conn.commit()
        finally:
            conn.close()

    def save_quality_report(self, report: QualityReport):
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO quality_reports (quality_score, report, timestamp) VALUES (?, ?, ?)",
                (report.quality_score, json.dumps(report.to_dict()), report.timestamp)
            )
            conn.commit()
            logger.info(f"Saved quality report (score {report.quality_score})")
        finally:
            conn.close()

    def get_latest_quality_report(self) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT report FROM quality_reports ORDER BY id DESC LIMIT 1").fetchone()
            return json.loads(row['report']) if row else None
        finally:
            conn.close()

    # Analysis

    def save_analysis(self, result: AnalysisResult):
        conn = self._connect()
        try:
            conn.execute('''
                INSERT OR REPLACE INTO analysis_results (url, overall_score, result, timestamp)
                VALUES (?, ?, ?, ?)
            ''', (result.url, result.overall_score, json.dumps(result.to_dict()), result.timestamp))
            conn.commit()
            logger.info(f"Saved analysis for: {result.url}")
        finally:
            conn.close()

    def get_analysis(self, url: str) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT result FROM analysis_results WHERE url = ?", (url,)).fetchone()
            return json.loads(row['result']) if row else None
        finally:
            conn.close()

    # News sources

    def save_news_source(self, source: NewsSource):
        conn = self._connect()
        try:
            conn.execute('''
                INSERT OR REPLACE INTO news_sources (id, name, url, selectors, is_active, last_crawled)
                VALUES (?, ?, ?, ?, ?, ?)
            ''', (
                source.id, source.name, source.url, json.dumps(source.selectors),
                int(source.is_active), source.last_crawled
            ))
            conn.commit()
        finally:
            conn.close()

    def get_news_sources(self, active_only: bool = True) -> List[NewsSource]:
        conn = self._connect()
        try:
            query = "SELECT * FROM news_sources"
            if active_only:
                query += " WHERE is_active = 1"
            return [
                NewsSource(
                    id=row['id'],
                    name=row['name'],
                    url=row['url'],
                    selectors=json.loads(row['selectors'] or '{}'),
                    is_active=bool(row['is_active']),
                    last_crawled=row['last_crawled']
                ) for row in conn.execute(query).fetchall()
            ]
        finally:
            conn.close()

    # Maintenance

    def cleanup_old_data(self, days_to_keep: int = 30) -> int:
        """Remove old content, executions and reports"""
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cutoff_date = (datetime.now() - timedelta(days=days_to_keep)).isoformat()
            removed = 0

            cursor.execute("DELETE FROM crawled_content WHERE updated_at < ?", (cutoff_date,))
            removed += cursor.rowcount
            cursor.execute("DELETE FROM job_executions WHERE started_at < ?", (cutoff_date,))
            removed += cursor.rowcount
            cursor.execute("DELETE FROM quality_reports WHERE timestamp < ?", (cutoff_date,))
            removed += cursor.rowcount

            conn.commit()
            logger.info(f"Cleaned up {removed} rows older than {days_to_keep} days")
            return removed
        finally:
            conn.close()
