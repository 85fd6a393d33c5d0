#!/usr/bin/env python3
"""
Create the clinic tables and seed the token counter.
Reads DB_URI from the environment (or .env) and is safe to run repeatedly.
"""

from sqlalchemy import inspect

from clinic.database import init_engine, init_schema

if __name__ == "__main__":
    print("=" * 60)
    print("Clinic Visit Portal – Schema Setup")
    print("=" * 60)

    engine = init_engine()
    init_schema(engine)

    tables = sorted(inspect(engine).get_table_names())
    print("\nTables:")
    for name in tables:
        print(f"  - {name}")
    print("\n" + "=" * 60)
    print("Schema ready. Start the API with: python -m clinic.api.app")
    print("=" * 60)
