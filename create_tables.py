"""
Create the PassItPal tables in Supabase/Postgres.

users and listings are owned by the identity and listing services; they are
created here too so a fresh database can run the backend on its own.

Usage:
    DATABASE_URL=postgresql://... python create_tables.py
"""
import sys
import os
sys.path.insert(0, os.path.dirname(__file__))

import logging

import psycopg2

from config import DATABASE_URL

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger("passitpal.setup")

CREATE_SQL = """
-- Users table (identity service)
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT,
    email TEXT UNIQUE,
    mobile_number TEXT,
    role TEXT NOT NULL DEFAULT 'buyer' CHECK (role IN ('buyer', 'seller', 'admin')),
    is_blocked BOOLEAN DEFAULT FALSE,
    is_mobile_verified BOOLEAN DEFAULT FALSE,
    profile_picture_url TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

-- Listings table (listing service)
CREATE TABLE IF NOT EXISTS listings (
    id TEXT PRIMARY KEY,
    seller_id TEXT NOT NULL REFERENCES users(id),
    title TEXT NOT NULL,
    asking_price REAL,
    ad_image_url TEXT,
    is_available BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

-- Orders table
CREATE TABLE IF NOT EXISTS orders (
    id TEXT PRIMARY KEY,
    buyer_id TEXT NOT NULL REFERENCES users(id),
    seller_id TEXT NOT NULL REFERENCES users(id),
    listing_id TEXT NOT NULL REFERENCES listings(id),
    offer_price REAL NOT NULL CHECK (offer_price >= 0),
    message_to_seller TEXT CHECK (char_length(message_to_seller) <= 500),
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'accepted', 'rejected', 'completed', 'cancelled')),
    payment_status TEXT NOT NULL DEFAULT 'pending'
        CHECK (payment_status IN ('pending', 'paid', 'failed', 'refunded')),
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS orders_buyer_listing_idx ON orders (buyer_id, listing_id);
CREATE INDEX IF NOT EXISTS orders_seller_idx ON orders (seller_id);
CREATE INDEX IF NOT EXISTS orders_status_idx ON orders (status);

-- One pending offer per buyer and listing
CREATE UNIQUE INDEX IF NOT EXISTS orders_one_pending_per_buyer_listing
    ON orders (buyer_id, listing_id) WHERE status = 'pending';

-- Conversations table (participant_1 < participant_2)
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    participant_1 TEXT NOT NULL REFERENCES users(id),
    participant_2 TEXT NOT NULL REFERENCES users(id),
    last_message_id TEXT,
    created_at TIMESTAMPTZ DEFAULT NOW(),
    updated_at TIMESTAMPTZ DEFAULT NOW(),
    CHECK (participant_1 < participant_2),
    UNIQUE (participant_1, participant_2)
);

-- Messages table
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id),
    sender_id TEXT NOT NULL REFERENCES users(id),
    text TEXT NOT NULL,
    read_by TEXT[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS messages_conversation_idx ON messages (conversation_id, created_at);

-- Notifications table
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    recipient_id TEXT NOT NULL REFERENCES users(id),
    sender_id TEXT REFERENCES users(id),
    type TEXT NOT NULL CHECK (type IN (
        'message', 'listing_update', 'admin_announcement', 'promoted_listing',
        'transaction', 'new_order', 'order_cancelled'
    )),
    message TEXT NOT NULL,
    link TEXT,
    read BOOLEAN NOT NULL DEFAULT FALSE,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS notifications_recipient_idx ON notifications (recipient_id, created_at DESC);
"""

FUNCTIONS_SQL = """
CREATE OR REPLACE FUNCTION mark_conversation_read(p_conversation_id TEXT, p_user_id TEXT)
RETURNS INTEGER
LANGUAGE sql
AS $$
    WITH updated AS (
        UPDATE messages
        SET read_by = array_append(read_by, p_user_id)
        WHERE conversation_id = p_conversation_id
          AND NOT (p_user_id = ANY(read_by))
        RETURNING 1
    )
    SELECT count(*)::INTEGER FROM updated;
$$;
"""


def create_tables(conn):
    """Execute CREATE TABLE statements and the helper functions."""
    logger.info("Creating tables...")
    cur = conn.cursor()
    try:
        cur.execute(CREATE_SQL)
        cur.execute(FUNCTIONS_SQL)
        conn.commit()
        logger.info("  Tables created successfully!")
    except Exception as e:
        conn.rollback()
        logger.error(f"  Error creating tables: {e}")
        raise
    finally:
        cur.close()


def main():
    if not DATABASE_URL:
        logger.error("ERROR: DATABASE_URL must be set in .env")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("PassItPal - Database Setup")
    logger.info("=" * 60)

    conn = psycopg2.connect(DATABASE_URL, connect_timeout=10)
    try:
        create_tables(conn)
    finally:
        conn.close()

    logger.info("Setup complete! Database is ready.")


if __name__ == "__main__":
    main()
