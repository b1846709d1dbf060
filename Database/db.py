'''
This file contains the database client for the Bus Booking System.
'''
from typing import Optional
from supabase import create_client, Client

from Database.config import load_settings


class BookingDB:
    """Database Client"""

    # private interface
    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        settings = load_settings()
        url = url or settings.supabase_url
        key = key or settings.supabase_key
        if url is None or key is None:
            raise ValueError("Database URL or Key not found in environment variables.")
        self.client: Client = create_client(url, key)


if __name__ == "__main__":
    db_conn = BookingDB()

    _ = db_conn.client.table("routes").select("*").limit(5).execute()
    print(_)
