from __future__ import annotations

CREATE_EVENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS sync_events (
  ts_ms BIGINT,
  endpoint TEXT,
  profile TEXT,
  vp_south DOUBLE,
  vp_west DOUBLE,
  vp_north DOUBLE,
  vp_east DOUBLE,
  stats_json TEXT
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  profile,
  endpoint,
  COUNT(*) AS n,
  AVG(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE)) AS avg_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.50) AS p50_total_ms,
  quantile_cont(try_cast(json_extract(stats_json, '$.timingsMs.total') AS DOUBLE), 0.95) AS p95_total_ms,
  AVG(CASE WHEN json_extract_string(stats_json, '$.cache.cacheHit') = 'true' THEN 1 ELSE 0 END) AS cache_hit_rate,
  SUM(CASE WHEN json_extract(stats_json, '$.error') IS NOT NULL THEN 1 ELSE 0 END) AS errors
FROM sync_events
{where_sql}
GROUP BY profile, endpoint
ORDER BY profile, endpoint
"""

INSERT_EVENTS_SQL = """
INSERT INTO sync_events
  (ts_ms, endpoint, profile, vp_south, vp_west, vp_north, vp_east, stats_json)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
"""
