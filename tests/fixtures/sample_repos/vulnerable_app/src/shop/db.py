"""Database helpers."""

import sqlite3


def find_orders(conn: sqlite3.Connection, customer: str) -> list[tuple]:
    cursor = conn.cursor()
    cursor.execute("SELECT id, total FROM orders WHERE customer = '" + customer + "'")
    return cursor.fetchall()


def count_orders(conn: sqlite3.Connection) -> int:
    cursor = conn.cursor()
    cursor.execute("SELECT COUNT(*) FROM orders")
    return cursor.fetchone()[0]
