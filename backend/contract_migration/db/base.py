from sqlalchemy.orm import declarative_base

# Target (canonical) schema.
Base = declarative_base()

# Legacy TBS schema; read-only, never created by the app outside tests and local seeding.
LegacyBase = declarative_base()
