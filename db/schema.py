# SQL schema for the VerseCoach local store

SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Words already scored once (at-most-once scoring per verse word)
CREATE TABLE IF NOT EXISTS recorded_words (
    verse_reference TEXT NOT NULL,
    word_index INTEGER NOT NULL,
    recorded_at REAL NOT NULL,
    PRIMARY KEY (verse_reference, word_index)
);

-- Verse mutations not yet confirmed by the server
CREATE TABLE IF NOT EXISTS pending_changes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    change_type TEXT NOT NULL CHECK(change_type IN ('STATUS_UPDATE', 'ADD_VERSE', 'DELETE_VERSE')),
    verse_reference TEXT NOT NULL,
    payload TEXT NOT NULL DEFAULT '{}',
    timestamp REAL NOT NULL,
    synced INTEGER NOT NULL DEFAULT 0
);

-- Namespaced documents (cached verses, stats, mastery, auth, achievements)
CREATE TABLE IF NOT EXISTS kv_store (
    namespace TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL,
    PRIMARY KEY (namespace, key)
);
"""

# Indexes for performance
INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_recorded_words_verse ON recorded_words (verse_reference);
CREATE INDEX IF NOT EXISTS idx_pending_changes_synced ON pending_changes (synced);
CREATE INDEX IF NOT EXISTS idx_pending_changes_timestamp ON pending_changes (timestamp);
CREATE INDEX IF NOT EXISTS idx_kv_store_namespace ON kv_store (namespace);
"""
