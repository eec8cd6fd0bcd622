#!/usr/bin/env python3
"""
Print simple operational metrics for the Ads Library scraper.

Usage examples:
  python scripts/metrics.py --db-host 127.0.0.1
  DATABASE_URL=postgresql://... python scripts/metrics.py
"""
import argparse
from dataclasses import replace

from adlib_scraper.config import Settings
from adlib_scraper.db.postgres import sql_connect

SECTIONS = [
    (
        "Job status counts",
        """
        SELECT data->>'status' AS status, COUNT(*) AS count
          FROM documents
         WHERE collection = 'scraping_jobs'
         GROUP BY 1 ORDER BY count DESC
        """,
    ),
    (
        "Recent jobs",
        """
        SELECT id,
               data->>'status' AS status,
               data->>'startTime' AS start_time,
               data->>'endTime' AS end_time,
               data->>'creativesFound' AS found,
               data->>'creativesProcessed' AS processed,
               jsonb_array_length(COALESCE(data->'errors', '[]'::jsonb)) AS errors
          FROM documents
         WHERE collection = 'scraping_jobs'
         ORDER BY (data->>'startTime') COLLATE "C" DESC
         LIMIT 10
        """,
    ),
    (
        "Creatives created (last 14 days)",
        """
        SELECT LEFT(data->>'createdAt', 10) AS day, COUNT(*) AS count
          FROM documents
         WHERE collection = 'creatives'
           AND (data->>'createdAt') COLLATE "C" >= TO_CHAR(NOW() AT TIME ZONE 'UTC' - INTERVAL '14 days', 'YYYY-MM-DD')
         GROUP BY 1 ORDER BY 1 DESC
        """,
    ),
    (
        "Analysis coverage",
        """
        SELECT CASE
                 WHEN data->'analysis' IS NULL OR data->'analysis' = 'null'::jsonb THEN 'pending'
                 WHEN (data->'analysis'->>'confidence')::numeric = 0 THEN 'fallback'
                 ELSE 'analyzed'
               END AS analysis,
               COUNT(*) AS count
          FROM documents
         WHERE collection = 'creatives'
         GROUP BY 1 ORDER BY count DESC
        """,
    ),
    (
        "Top hook types",
        """
        SELECT data->'analysis'->>'hookType' AS hook_type, COUNT(*) AS count
          FROM documents
         WHERE collection = 'creatives' AND data->'analysis'->>'hookType' IS NOT NULL
         GROUP BY 1 ORDER BY count DESC
         LIMIT 10
        """,
    ),
]


def run_query(con, sql):
    with con.cursor() as cur:
        cur.execute(sql)
        cols = [d[0] for d in cur.description]
        rows = cur.fetchall()
    return cols, rows


def print_table(title, cols, rows):
    print(f"\n== {title} ==")
    if not rows:
        print("(no rows)")
        return
    widths = [max(len(str(c)), max((len(str(r[i])) for r in rows), default=0)) for i, c in enumerate(cols)]
    fmt = "  " + " | ".join("{:<" + str(w) + "}" for w in widths)
    print(fmt.format(*cols))
    print("  " + "-+-".join("-" * w for w in widths))
    for r in rows:
        print(fmt.format(*[str(x) for x in r]))


def main():
    ap = argparse.ArgumentParser(description="Print scraper metrics from the documents table")
    ap.add_argument("--db-host", help="Host for TCP connection (overrides DB_HOST)")
    ap.add_argument("--db-port", type=int)
    args = ap.parse_args()

    settings = Settings.from_env()
    if args.db_host:
        settings = replace(settings, db_host=args.db_host)
    if args.db_port:
        settings = replace(settings, db_port=args.db_port)
    con = sql_connect(settings)

    for title, sql in SECTIONS:
        try:
            cols, rows = run_query(con, sql)
            print_table(title, cols, rows)
        except Exception as e:
            con.rollback()
            print(f"\n== {title} ==\nERROR: {e}")

    con.close()


if __name__ == "__main__":
    main()
