"""georisk – geopolitical headline risk analysis with a durable cache.

Fetches headlines from an RSS search feed, asks an LLM (Gemini) for a
structured risk assessment of each one, and stores the result in SQLite
keyed by headline identity so a headline is never analysed twice.

Aggregate indicators (global risk index, trend series, critical events,
sector impact, map overlay) are recomputed from the store on every read
via ``georisk.aggregate.build_snapshot()``.
"""
