import os
import psycopg2

# Composite indexes behind the ordered list queries. The app runs without them
# (slower tiers take over), so this script is optional.
INDEXES = [
    ("idx_donations_status_created", "donations", "status, created_at DESC"),
    ("idx_donations_donor_created", "donations", "donor_id, created_at DESC"),
    ("idx_donations_claimer_created", "donations", "claimed_by, created_at DESC"),
    ("idx_notifications_user_read_created", "notifications", "user_id, is_read, created_at DESC"),
    ("idx_status_history_donation_created", "status_history", "donation_id, created_at DESC"),
]


def add_indexes():
    db_url = os.getenv('DATABASE_URL')
    if not db_url:
        print("DATABASE_URL not found.")
        return False

    # Fix for SQLAlchemy/Psycopg2 URL compatibility
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql://", 1)

    try:
        conn = psycopg2.connect(db_url)
    except psycopg2.Error as e:
        print(f"Speed Fix Error: {e}")
        return False

    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            print("Adding composite indexes...")
            for name, table, columns in INDEXES:
                cur.execute(f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({columns});")
                print(f"  {name}")
        print("Database optimized.")
        return True
    except psycopg2.Error as e:
        print(f"Speed Fix Error: {e}")
        return False
    finally:
        conn.close()


if __name__ == "__main__":
    add_indexes()
