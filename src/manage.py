"""Marketplace database management CLI.

Creates and drops the Protean provider tables together with the inventory
ledger and active-session tables when they are SQL-backed
(``MARKETPLACE_DATABASE_URL`` set).

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
    python src/manage.py seed-stock LISTING_ID QUANTITY
"""

import argparse
import sys


def setup_databases():
    from marketplace.domain import marketplace
    from marketplace.utils.db import setup_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Creating marketplace database schema...")
    setup_db(marketplace)
    print("Done.")


def drop_databases():
    from marketplace.domain import marketplace
    from marketplace.utils.db import drop_db

    print("Initializing marketplace domain...")
    marketplace.init()
    print("Dropping marketplace database schema...")
    drop_db(marketplace)
    print("Done.")


def seed_stock(listing_id, quantity):
    from marketplace.inventory.ledger import get_ledger

    get_ledger().set_stock(listing_id, quantity)
    print(f"Stock for {listing_id} set to {quantity}.")


def main():
    parser = argparse.ArgumentParser(description="Marketplace database management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    seed_parser = subparsers.add_parser("seed-stock", help="Set the available stock of a listing")
    seed_parser.add_argument("listing_id")
    seed_parser.add_argument("quantity", type=int)

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "seed-stock":
        seed_stock(args.listing_id, args.quantity)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
