"""
PostgreSQL DDL. Every statement is idempotent.
"""

SCHEMA_STATEMENTS: tuple[str, ...] = (
    # -------------------------------------------------------------------------
    # Detected assets
    # -------------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS assets (
        id TEXT PRIMARY KEY,
        symbol TEXT NOT NULL,
        name TEXT NOT NULL,
        chain TEXT NOT NULL,
        contract_address TEXT NOT NULL,
        market_cap NUMERIC NOT NULL DEFAULT 0,
        volume_24h NUMERIC NOT NULL DEFAULT 0,
        price NUMERIC NOT NULL DEFAULT 0,
        price_change_24h NUMERIC NOT NULL DEFAULT 0,
        launch_time TIMESTAMPTZ NOT NULL,
        urls JSONB NOT NULL DEFAULT '{}'::jsonb,
        holders INTEGER,
        transactions_24h INTEGER,
        liquidity NUMERIC,
        total_supply NUMERIC,
        verified BOOLEAN NOT NULL DEFAULT FALSE,
        risk_score INTEGER,
        risk_factors TEXT[] NOT NULL DEFAULT '{}',
        is_posted BOOLEAN NOT NULL DEFAULT FALSE,
        is_telegram_posted BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS assets_address_chain_key
        ON assets (lower(contract_address), chain)
    """,
    "CREATE INDEX IF NOT EXISTS assets_launch_time_idx ON assets (launch_time DESC)",
    # -------------------------------------------------------------------------
    # News
    # -------------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS news (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        title_key TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        url TEXT NOT NULL DEFAULT '',
        published_at TIMESTAMPTZ NOT NULL,
        coin_symbol TEXT NOT NULL DEFAULT '',
        chain TEXT NOT NULL DEFAULT 'general',
        source TEXT NOT NULL DEFAULT '',
        token_address TEXT NOT NULL DEFAULT '',
        sentiment TEXT,
        tags TEXT[] NOT NULL DEFAULT '{}',
        is_posted BOOLEAN NOT NULL DEFAULT FALSE,
        is_telegram_posted BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE UNIQUE INDEX IF NOT EXISTS news_title_key ON news (title_key)",
    "CREATE INDEX IF NOT EXISTS news_published_at_idx ON news (published_at DESC)",
    # -------------------------------------------------------------------------
    # Publication facts (append-only)
    # -------------------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS publication_facts (
        id BIGSERIAL PRIMARY KEY,
        content_kind TEXT NOT NULL,
        item_id TEXT NOT NULL,
        destination TEXT NOT NULL,
        remote_message_id TEXT,
        content TEXT NOT NULL DEFAULT '',
        sent_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (content_kind, item_id, destination)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS publication_facts_destination_idx
        ON publication_facts (destination, content_kind)
    """,
)

TABLES: tuple[str, ...] = ("publication_facts", "news", "assets")
