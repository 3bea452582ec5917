"""
Job repository backed by the metadata datasource.

Stores job executions in batch_job_execution and step executions in
batch_step_execution (see docker/init-batch-metadata.sql).
"""

import psycopg
from psycopg import errors

from cadastro_batch.batch.repository import JobRepository
from cadastro_batch.core.errors import JobExecutionAlreadyRunningError
from cadastro_batch.core.models import JobExecution, StepExecution
from cadastro_batch.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)


class PostgresJobRepository(JobRepository):
    """
    Persists execution metadata to PostgreSQL.

    The unique constraint on (job_name, run_id) is what keeps two runs with
    the same identifier from both starting.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize the repository.

        Args:
            pool: Pool of the metadata datasource
        """
        self.pool = pool

    def last_run_id(self, job_name: str) -> int | None:
        rows = self.pool.execute_query(
            "SELECT MAX(run_id) AS last_run_id FROM batch_job_execution WHERE job_name = %s",
            (job_name,),
        )
        return rows[0]["last_run_id"] if rows else None

    def create_job_execution(self, job_name: str, run_id: int) -> JobExecution:
        execution = JobExecution(job_name=job_name, run_id=run_id)

        insert_sql = """
            INSERT INTO batch_job_execution (
                job_name, run_id, status, create_time
            ) VALUES (
                %(job_name)s, %(run_id)s, %(status)s, %(create_time)s
            ) RETURNING job_execution_id;
        """

        try:
            with self.pool.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        insert_sql,
                        {
                            "job_name": execution.job_name,
                            "run_id": execution.run_id,
                            "status": execution.status,
                            "create_time": execution.create_time,
                        },
                    )
                    result = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as e:
            raise JobExecutionAlreadyRunningError(job_name, run_id) from e
        except psycopg.DatabaseError as e:
            logger.error(f"Failed to create job execution for {job_name}: {e}")
            raise

        execution.job_execution_id = result["job_execution_id"]
        logger.debug(f"Created job execution id={execution.job_execution_id} run_id={run_id}")
        return execution

    def update_job_execution(self, job_execution: JobExecution) -> None:
        self.pool.execute_command(
            """
            UPDATE batch_job_execution
            SET status = %(status)s,
                start_time = %(start_time)s,
                end_time = %(end_time)s,
                exit_description = %(exit_description)s
            WHERE job_execution_id = %(job_execution_id)s
            """,
            {
                "status": job_execution.status,
                "start_time": job_execution.start_time,
                "end_time": job_execution.end_time,
                "exit_description": job_execution.exit_description,
                "job_execution_id": job_execution.job_execution_id,
            },
        )

    def add_step_execution(self, job_execution: JobExecution, step_execution: StepExecution) -> None:
        insert_sql = """
            INSERT INTO batch_step_execution (
                job_execution_id, step_name, status,
                read_count, write_count, commit_count, rollback_count
            ) VALUES (
                %(job_execution_id)s, %(step_name)s, %(status)s,
                %(read_count)s, %(write_count)s, %(commit_count)s, %(rollback_count)s
            ) RETURNING step_execution_id;
        """

        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    insert_sql,
                    {
                        "job_execution_id": job_execution.job_execution_id,
                        **self._step_params(step_execution),
                    },
                )
                result = cur.fetchone()
            conn.commit()

        step_execution.step_execution_id = result["step_execution_id"]

    def update_step_execution(self, job_execution: JobExecution, step_execution: StepExecution) -> None:
        self.pool.execute_command(
            """
            UPDATE batch_step_execution
            SET status = %(status)s,
                read_count = %(read_count)s,
                write_count = %(write_count)s,
                commit_count = %(commit_count)s,
                rollback_count = %(rollback_count)s,
                start_time = %(start_time)s,
                end_time = %(end_time)s,
                exit_description = %(exit_description)s
            WHERE step_execution_id = %(step_execution_id)s
            """,
            {
                "step_execution_id": step_execution.step_execution_id,
                "start_time": step_execution.start_time,
                "end_time": step_execution.end_time,
                "exit_description": step_execution.exit_description,
                **self._step_params(step_execution),
            },
        )

    def find_job_executions(self, job_name: str, limit: int = 20) -> list[JobExecution]:
        job_rows = self.pool.execute_query(
            """
            SELECT job_execution_id, job_name, run_id, status, create_time,
                   start_time, end_time, exit_description
            FROM batch_job_execution
            WHERE job_name = %s
            ORDER BY run_id DESC
            LIMIT %s
            """,
            (job_name, limit),
        )
        if not job_rows:
            return []

        step_rows = self.pool.execute_query(
            """
            SELECT step_execution_id, job_execution_id, step_name, status,
                   read_count, write_count, commit_count, rollback_count,
                   start_time, end_time, exit_description
            FROM batch_step_execution
            WHERE job_execution_id = ANY(%s)
            ORDER BY step_execution_id
            """,
            ([row["job_execution_id"] for row in job_rows],),
        )

        steps_by_job: dict[int, list[StepExecution]] = {}
        for row in step_rows:
            job_execution_id = row.pop("job_execution_id")
            steps_by_job.setdefault(job_execution_id, []).append(StepExecution(**row))

        return [
            JobExecution(**row, step_executions=steps_by_job.get(row["job_execution_id"], []))
            for row in job_rows
        ]

    @staticmethod
    def _step_params(step_execution: StepExecution) -> dict:
        return {
            "step_name": step_execution.step_name,
            "status": step_execution.status,
            "read_count": step_execution.read_count,
            "write_count": step_execution.write_count,
            "commit_count": step_execution.commit_count,
            "rollback_count": step_execution.rollback_count,
        }
