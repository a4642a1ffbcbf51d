"""SQLite database schema."""

SCHEMA = """
-- Merchants polled from the upstream POS API
CREATE TABLE IF NOT EXISTS merchants (
    id TEXT PRIMARY KEY,
    public_key TEXT NOT NULL,
    alias TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    last_polled_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

-- Append-only sales history; sale ids are only unique per merchant
CREATE TABLE IF NOT EXISTS transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    merchant_id TEXT NOT NULL REFERENCES merchants(id) ON DELETE CASCADE,
    sale_id INTEGER NOT NULL,
    sale_origin TEXT,
    sale_date TIMESTAMP NOT NULL,
    amount_sats INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL,
    UNIQUE(merchant_id, sale_id)
);

-- Cumulative per-product stats, overwritten on every poll
CREATE TABLE IF NOT EXISTS products (
    merchant_id TEXT NOT NULL REFERENCES merchants(id) ON DELETE CASCADE,
    product_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    currency TEXT,
    price TEXT,
    total_transactions INTEGER NOT NULL,
    total_revenue_sats INTEGER NOT NULL,
    active INTEGER NOT NULL,
    updated_at TIMESTAMP NOT NULL,
    PRIMARY KEY (merchant_id, product_id)
);

-- Threshold configuration; triggered_at IS NULL means pending
CREATE TABLE IF NOT EXISTS milestones (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    threshold INTEGER NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    triggered_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

-- One row per pending -> triggered transition
CREATE TABLE IF NOT EXISTS milestone_triggers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    milestone_id INTEGER NOT NULL REFERENCES milestones(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    threshold INTEGER NOT NULL,
    triggered_at TIMESTAMP NOT NULL,
    total_transactions INTEGER NOT NULL,
    total_volume_sats INTEGER NOT NULL
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(sale_date DESC);
CREATE INDEX IF NOT EXISTS idx_transactions_merchant ON transactions(merchant_id);
CREATE INDEX IF NOT EXISTS idx_milestone_triggers_at ON milestone_triggers(triggered_at);
"""
