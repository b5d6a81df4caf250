"""Server-side ledger functions (PostgreSQL only).

The attempted-question ledger prefers these functions and falls back to
direct table statements when they are not installed, so installing them is
optional. Other dialects skip installation.
"""

from sqlalchemy.ext.asyncio import AsyncConnection

from question_engine.core.logging import get_logger

logger = get_logger(__name__)

RECORD_ATTEMPTED_QUESTIONS = """
CREATE OR REPLACE FUNCTION record_attempted_questions(
    p_user_id UUID,
    p_subject_id UUID,
    p_question_ids UUID[]
) RETURNS INTEGER AS $$
DECLARE
    v_count INTEGER;
BEGIN
    INSERT INTO user_attempted_questions (
        id, user_id, subject_id, question_id,
        first_attempted_at, last_attempted_at, attempt_count
    )
    SELECT gen_random_uuid(), p_user_id, p_subject_id, q.question_id, NOW(), NOW(), 1
    FROM (SELECT DISTINCT unnest(p_question_ids) AS question_id) q
    ON CONFLICT (user_id, subject_id, question_id)
    DO UPDATE SET
        attempt_count = user_attempted_questions.attempt_count + 1,
        last_attempted_at = NOW();

    GET DIAGNOSTICS v_count = ROW_COUNT;
    RETURN v_count;
END;
$$ LANGUAGE plpgsql
"""

RESET_USER_ATTEMPTED_QUESTIONS = """
CREATE OR REPLACE FUNCTION reset_user_attempted_questions(
    p_user_id UUID,
    p_subject_id UUID
) RETURNS INTEGER AS $$
DECLARE
    v_deleted INTEGER;
BEGIN
    DELETE FROM user_attempted_questions
    WHERE user_id = p_user_id AND subject_id = p_subject_id;

    GET DIAGNOSTICS v_deleted = ROW_COUNT;
    RETURN v_deleted;
END;
$$ LANGUAGE plpgsql
"""

GET_ATTEMPTED_QUESTION_COUNT = """
CREATE OR REPLACE FUNCTION get_attempted_question_count(
    p_user_id UUID,
    p_subject_id UUID
) RETURNS INTEGER AS $$
    SELECT COUNT(*)::INTEGER
    FROM user_attempted_questions
    WHERE user_id = p_user_id AND subject_id = p_subject_id;
$$ LANGUAGE sql STABLE
"""

LEDGER_FUNCTIONS = {
    "record_attempted_questions": RECORD_ATTEMPTED_QUESTIONS,
    "reset_user_attempted_questions": RESET_USER_ATTEMPTED_QUESTIONS,
    "get_attempted_question_count": GET_ATTEMPTED_QUESTION_COUNT,
}


async def install_ledger_functions(conn: AsyncConnection) -> list[str]:
    """
    Create or replace the ledger functions.

    Returns the names of the installed functions (empty on non-PostgreSQL
    dialects).
    """
    if conn.dialect.name != "postgresql":
        logger.info(
            f"Skipping ledger function install on {conn.dialect.name}",
            extra={"event": "ledger_functions_skipped", "dialect": conn.dialect.name},
        )
        return []

    installed = []
    for name, ddl in LEDGER_FUNCTIONS.items():
        await conn.exec_driver_sql(ddl)
        installed.append(name)

    logger.info(
        f"Installed {len(installed)} ledger functions",
        extra={"event": "ledger_functions_installed", "functions": installed},
    )
    return installed
