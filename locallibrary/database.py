import logging
import sqlite3

logger = logging.getLogger(__name__)


def get_db_connection(db_file: str) -> sqlite3.Connection:
    """Open a connection to the catalog database."""
    conn = sqlite3.connect(db_file)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON;")
    return conn


def create_tables(db_file: str) -> None:
    """Create the catalog tables if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS authors (
                id TEXT PRIMARY KEY,
                first_name TEXT NOT NULL CHECK(length(first_name) <= 100),
                family_name TEXT NOT NULL CHECK(length(family_name) <= 100),
                date_of_birth TEXT,
                date_of_death TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS genres (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL
            )
        """)

        # genre holds a JSON array of genre ids, in submitted order
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL REFERENCES authors(id),
                summary TEXT NOT NULL,
                isbn TEXT NOT NULL,
                genre TEXT NOT NULL DEFAULT '[]'
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS book_instances (
                id TEXT PRIMARY KEY,
                book TEXT NOT NULL REFERENCES books(id),
                imprint TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'Maintenance'
                    CHECK(status IN ('Available', 'Maintenance', 'Loaned', 'Reserved')),
                due_back TEXT
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_author ON books(author)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_book_instances_book ON book_instances(book)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_book_instances_status ON book_instances(status)")
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: str) -> None:
    """Initialize the database, creating tables when needed."""
    logger.debug("Initializing catalog database at %s", db_file)
    create_tables(db_file)
